# adaptive_tools/core/types.py
"""Data types shared by the tool execution engine."""

import json
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from adaptive_tools.core.exceptions import RetryBudgetExceededError


# ============================================================================
# TOOL DESCRIPTION
# ============================================================================

@dataclass(frozen=True)
class ToolParameter:
    """One named field of a tool's input schema."""
    name: str
    type: str = "string"
    required: bool = False
    description: str = ""


@dataclass(frozen=True)
class ToolDescriptor:
    """Immutable snapshot of a tool, as shown to the LLM."""
    name: str
    description: str = ""
    parameters: Tuple[ToolParameter, ...] = ()
    server_id: Optional[str] = None

    @classmethod
    def from_input_schema(
        cls,
        name: str,
        description: str,
        input_schema: Optional[Dict[str, Any]],
        server_id: Optional[str] = None
    ) -> "ToolDescriptor":
        """
        Build a descriptor from an MCP `inputSchema` (JSON schema object).

        Args:
            name: Tool name
            description: Human description
            input_schema: {"type": "object", "properties": {...}, "required": [...]}
            server_id: MCP server exposing the tool

        Returns:
            ToolDescriptor with one ToolParameter per property
        """
        input_schema = input_schema or {}
        properties = input_schema.get("properties") or {}
        required = set(input_schema.get("required") or [])

        parameters = []
        for param_name, spec in properties.items():
            spec = spec or {}
            param_type = spec.get("type", "string")
            if isinstance(param_type, list):
                param_type = next((t for t in param_type if t != "null"), "string")
            parameters.append(ToolParameter(
                name=param_name,
                type=param_type,
                required=param_name in required,
                description=spec.get("description", "")
            ))

        return cls(
            name=name,
            description=description or "",
            parameters=tuple(parameters),
            server_id=server_id
        )

    def to_input_schema(self) -> Dict[str, Any]:
        """Render the descriptor back to a JSON schema object."""
        return {
            "type": "object",
            "properties": {
                p.name: {"type": p.type, "description": p.description}
                for p in self.parameters
            },
            "required": [p.name for p in self.parameters if p.required]
        }

    @property
    def parameter_names(self) -> List[str]:
        return [p.name for p in self.parameters]

    @property
    def required_parameters(self) -> List[str]:
        return [p.name for p in self.parameters if p.required]

    def get_parameter(self, name: str) -> Optional[ToolParameter]:
        for param in self.parameters:
            if param.name == name:
                return param
        return None


# ============================================================================
# CALLS AND RESULTS
# ============================================================================

def generate_call_id() -> str:
    return f"call_{uuid.uuid4().hex[:24]}"


@dataclass(frozen=True)
class ToolCallRequest:
    """A tool invocation requested by the LLM. Never mutated after creation."""
    tool_name: str
    arguments: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=generate_call_id)

    def __post_init__(self):
        # Own a private copy so the caller's dict can't change us later
        object.__setattr__(self, "arguments", dict(self.arguments or {}))

    def with_arguments(self, arguments: Dict[str, Any]) -> "ToolCallRequest":
        """New request for the same call id with different arguments."""
        return ToolCallRequest(tool_name=self.tool_name, arguments=arguments, id=self.id)


@dataclass(frozen=True)
class ToolCallResult:
    """Outcome of one invocation attempt."""
    tool_name: str
    call_id: str
    success: bool
    payload: Any = None
    error: Optional[str] = None
    error_code: Optional[int] = None
    requires_retry: bool = False
    attempts: int = 1
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, request: ToolCallRequest, payload: Any, **metadata) -> "ToolCallResult":
        return cls(
            tool_name=request.tool_name,
            call_id=request.id,
            success=True,
            payload=payload,
            metadata=metadata
        )

    @classmethod
    def failed(
        cls,
        request: ToolCallRequest,
        error: str,
        error_code: Optional[int] = None,
        requires_retry: bool = False,
        **metadata
    ) -> "ToolCallResult":
        return cls(
            tool_name=request.tool_name,
            call_id=request.id,
            success=False,
            error=error,
            error_code=error_code,
            requires_retry=requires_retry,
            metadata=metadata
        )

    def with_attempts(self, attempts: int) -> "ToolCallResult":
        return replace(self, attempts=attempts)

    def with_retry_flag(self, requires_retry: bool) -> "ToolCallResult":
        return replace(self, requires_retry=requires_retry)

    def failure_notice(self) -> str:
        """User-facing failure text: the tool's own error, nothing else."""
        return f"Tool '{self.tool_name}' failed: {self.error or 'Unknown error'}"

    def to_message_content(self) -> str:
        """Content of the `tool` message fed back to the LLM."""
        if not self.success:
            return self.failure_notice()
        if isinstance(self.payload, str):
            return self.payload
        try:
            return json.dumps(self.payload, ensure_ascii=False, default=str)
        except (TypeError, ValueError):
            return str(self.payload)


# ============================================================================
# CLASSIFICATION
# ============================================================================

class ErrorCategory(Enum):
    """Failure taxonomy."""
    PARAMETER = "parameter"            # Missing / misnamed / malformed parameters
    TRANSIENT = "transient"            # Timeouts, connectivity, 5xx
    TERMINAL = "terminal"              # Auth, permissions, rate limit
    UNCLASSIFIABLE = "unclassifiable"  # The classifier itself failed


@dataclass
class ErrorClassification:
    """Verdict for one failed call. Consumed immediately, never persisted."""
    retryable: bool
    confidence: float
    reasoning: str
    suggested_fix: Optional[str] = None
    category: ErrorCategory = ErrorCategory.TERMINAL
    source: str = "heuristic"

    def __post_init__(self):
        self.confidence = max(0.0, min(1.0, float(self.confidence)))


# ============================================================================
# RETRY LIFECYCLE
# ============================================================================

class RetryState(Enum):
    ATTEMPTING = "attempting"
    GUIDANCE_ISSUED = "guidance_issued"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class RetryContext:
    """
    Bookkeeping for one original tool call across its attempts.

    Invariants:
        - 1 <= attempts <= max_attempts
        - attempts only ever increases
        - SUCCEEDED and FAILED are final
    """
    original_request: ToolCallRequest
    max_attempts: int = 3
    attempts: int = 1
    current_request: Optional[ToolCallRequest] = None
    state: RetryState = RetryState.ATTEMPTING
    history: List[Tuple[ToolCallRequest, ToolCallResult]] = field(default_factory=list)
    guidance_messages: List[str] = field(default_factory=list)
    last_missing_parameter: Optional[str] = None
    escalation_level: int = 0
    suggested_request: Optional[ToolCallRequest] = None

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.current_request is None:
            self.current_request = self.original_request

    @property
    def tool_name(self) -> str:
        return self.original_request.tool_name

    @property
    def is_done(self) -> bool:
        return self.state in (RetryState.SUCCEEDED, RetryState.FAILED)

    @property
    def has_budget(self) -> bool:
        return self.attempts < self.max_attempts

    @property
    def last_result(self) -> Optional[ToolCallResult]:
        return self.history[-1][1] if self.history else None

    def record(self, result: ToolCallResult) -> None:
        """Attach the outcome of the current attempt."""
        self.history.append((self.current_request, result))

    def begin_attempt(self, request: ToolCallRequest) -> None:
        """
        Start the next attempt with `request`.

        Raises:
            RetryBudgetExceededError: If the context is done or the budget is spent
        """
        if self.is_done:
            raise RetryBudgetExceededError(
                f"Retry context for {self.tool_name} is already {self.state.value}"
            )
        if self.attempts >= self.max_attempts:
            raise RetryBudgetExceededError(
                f"Tool {self.tool_name} already used {self.attempts}/{self.max_attempts} attempts"
            )
        self.attempts += 1
        self.current_request = request
        self.state = RetryState.ATTEMPTING

    def issue_guidance(self, message: str) -> None:
        if self.is_done:
            raise RetryBudgetExceededError(
                f"Cannot issue guidance for {self.tool_name}: context is {self.state.value}"
            )
        self.guidance_messages.append(message)
        self.state = RetryState.GUIDANCE_ISSUED

    def mark_succeeded(self) -> None:
        self.state = RetryState.SUCCEEDED

    def mark_failed(self) -> None:
        self.state = RetryState.FAILED


@dataclass
class RetryDecision:
    """What the coordinator wants done after a failure."""
    should_retry_via_llm: bool = False
    guidance_message: Optional[str] = None
    retry_request: Optional[ToolCallRequest] = None
    retry_delay: float = 0.0
    final_result: Optional[ToolCallResult] = None
    classification: Optional[ErrorClassification] = None

    @property
    def is_final(self) -> bool:
        return self.final_result is not None


# ============================================================================
# SCHEMA CACHE
# ============================================================================

@dataclass(frozen=True)
class SchemaCacheEntry:
    """Cached schema of one tool. Replaced as a whole on every write."""
    tool_name: str
    descriptor: ToolDescriptor
    schema_hash: str
    last_refreshed_at: datetime
    refresh_count: int = 1
    auto_refresh_enabled: bool = True
    last_error_at: Optional[datetime] = None
    last_error_message: Optional[str] = None


@dataclass
class RefreshSummary:
    """Result of one batch refresh run."""
    total: int = 0
    refreshed: int = 0
    changed: int = 0
    unchanged: int = 0
    skipped: int = 0
    removed: int = 0
    failed: int = 0
    errors: Dict[str, str] = field(default_factory=dict)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None


# ============================================================================
# ENGINE OUTPUTS
# ============================================================================

@dataclass
class ExecutionReport:
    """Output of one execute_all() batch."""
    results: List[ToolCallResult] = field(default_factory=list)
    requires_llm_retry: bool = False
    guidance_messages: List[str] = field(default_factory=list)

    @property
    def failures(self) -> List[ToolCallResult]:
        return [r for r in self.results if not r.success]

    @property
    def successes(self) -> List[ToolCallResult]:
        return [r for r in self.results if r.success]


@dataclass
class LLMTurn:
    """One LLM completion: either text, tool calls, or both."""
    text: str = ""
    tool_calls: List[ToolCallRequest] = field(default_factory=list)
