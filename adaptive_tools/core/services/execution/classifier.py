# adaptive_tools/core/services/execution/classifier.py
"""
Error classification for failed tool calls.

Two passes:
1. Heuristic: case-insensitive pattern tables, terminal patterns first.
2. LLM: only when no heuristic verdict reaches the confidence threshold.

The classifier never raises. Any LLM problem (provider down, circuit open,
garbage output) yields an UNCLASSIFIABLE, non-retryable verdict.
"""

import json
import re
from typing import Any, Dict, List, Optional, Protocol

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError

from adaptive_tools.config.config import settings
from adaptive_tools.config.logger import logger
from adaptive_tools.core.types import ErrorCategory, ErrorClassification


class CompletionClient(Protocol):
    async def complete(
        self,
        messages: List[Dict[str, Any]],
        model: Optional[str] = None,
        temperature: Optional[float] = 0.0,
        max_tokens: Optional[int] = None,
        json_mode: bool = False
    ) -> str:
        ...


TERMINAL_PATTERNS = [
    r"unauthori[sz]ed",
    r"forbidden",
    r"authentication",
    r"permission denied",
    r"access denied",
    r"invalid api key",
    r"\b(401|403)\b",
]

RATE_LIMIT_PATTERNS = [
    r"rate[ -]?limit",
    r"quota exceeded",
    r"too many requests",
    r"\b429\b",
]

RETRY_AFTER_PATTERNS = [
    r"retry[ -]after",
    r"try again in",
]

RETRY_AFTER_VALUE_PATTERNS = [
    r"retry[ -]after\s*:?\s*(\d+(?:\.\d+)?)\s*(ms|milliseconds?|s|secs?|seconds?|m|mins?|minutes?)?\b",
    r"try again in\s*(\d+(?:\.\d+)?)\s*(ms|milliseconds?|s|secs?|seconds?|m|mins?|minutes?)?\b",
]

PARAMETER_PATTERNS = [
    r"missing",
    r"required",
    r"invalid param",
    r"invalid argument",
    r"-32602",
    r"undefined",
    r"question:",
    r"please provide",
    r"correct parameters",
    r"unexpected (keyword|argument|parameter|property)",
    r"additional properties",
]

TRANSIENT_PATTERNS = [
    r"timeout",
    r"timed out",
    r"network",
    r"connection",
    r"non-2xx",
    r"econnreset",
    r"temporarily unavailable",
    r"service unavailable",
    r"\b5\d\d\b",
]

INVALID_PARAMS_CODE = -32602

_TERMINAL_RE = [re.compile(p, re.IGNORECASE) for p in TERMINAL_PATTERNS]
_RATE_LIMIT_RE = [re.compile(p, re.IGNORECASE) for p in RATE_LIMIT_PATTERNS]
_RETRY_AFTER_RE = [re.compile(p, re.IGNORECASE) for p in RETRY_AFTER_PATTERNS]
_RETRY_AFTER_VALUE_RE = [re.compile(p, re.IGNORECASE) for p in RETRY_AFTER_VALUE_PATTERNS]
_PARAMETER_RE = [re.compile(p, re.IGNORECASE) for p in PARAMETER_PATTERNS]
_TRANSIENT_RE = [re.compile(p, re.IGNORECASE) for p in TRANSIENT_PATTERNS]

CLASSIFIER_PROMPT = """Analyze this tool execution error and decide whether retrying with corrected parameters could succeed.

Tool: {tool_name}
Error: {error_message}

Retryable errors: missing, misnamed or malformed parameters; transient network or server failures.
Non-retryable errors: authentication, permissions, rate limits, resources that do not exist.

Respond with JSON only:
{{
  "isRetryable": boolean,
  "confidence": 0.0-1.0,
  "reasoning": "one sentence",
  "suggestedFix": "what to change, or null",
  "category": "parameter" | "transient" | "terminal"
}}"""


class ClassifierVerdict(BaseModel):
    """Strict shape of the LLM classifier answer."""
    model_config = ConfigDict(extra="ignore")

    retryable: bool = Field(validation_alias=AliasChoices("isRetryable", "retryable"))
    confidence: float = 0.5
    reasoning: str = ""
    suggested_fix: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("suggestedFix", "suggested_fix")
    )
    category: Optional[str] = None


def _matches(patterns, text: str) -> bool:
    return any(p.search(text) for p in patterns)


def parse_retry_after(error_message: str) -> Optional[float]:
    """Delay in seconds announced by a "retry after N" / "try again in N" hint, or None."""
    for pattern in _RETRY_AFTER_VALUE_RE:
        match = pattern.search(error_message or "")
        if match is None:
            continue
        amount, unit = float(match.group(1)), (match.group(2) or "s").lower()
        if unit.startswith("ms") or unit.startswith("milli"):
            return amount / 1000
        if unit.startswith("m"):
            return amount * 60
        return amount
    return None


def heuristic_classify(
    error_message: str,
    error_code: Optional[int] = None,
    max_retry_after: Optional[float] = None
) -> Optional[ErrorClassification]:
    """
    Pattern-based verdict, or None when nothing matches.

    Terminal patterns are checked before retryable ones: a message carrying
    both signals fails safe. A retry-after hint longer than `max_retry_after`
    (default: settings.max_retry_after_seconds) is terminal too.
    """
    text = error_message or ""
    ceiling = settings.max_retry_after_seconds if max_retry_after is None else max_retry_after

    if _matches(_TERMINAL_RE, text):
        return ErrorClassification(
            retryable=False,
            confidence=0.9,
            reasoning="Authentication or permission error",
            category=ErrorCategory.TERMINAL
        )

    retry_after = parse_retry_after(text)
    if retry_after is not None and retry_after > ceiling:
        return ErrorClassification(
            retryable=False,
            confidence=0.9,
            reasoning=f"Retry-after hint of {retry_after:g}s exceeds the {ceiling:g}s ceiling",
            category=ErrorCategory.TERMINAL
        )

    if _matches(_RATE_LIMIT_RE, text):
        if _matches(_RETRY_AFTER_RE, text):
            return ErrorClassification(
                retryable=True,
                confidence=0.8,
                reasoning="Rate limited with a retry-after hint",
                suggested_fix="Retry the same call after the indicated delay",
                category=ErrorCategory.TRANSIENT
            )
        return ErrorClassification(
            retryable=False,
            confidence=0.9,
            reasoning="Rate limit or quota exceeded",
            category=ErrorCategory.TERMINAL
        )

    if error_code == INVALID_PARAMS_CODE or _matches(_PARAMETER_RE, text):
        return ErrorClassification(
            retryable=True,
            confidence=0.9,
            reasoning="Parameter or validation error",
            suggested_fix="Check parameter names and required fields against the tool schema",
            category=ErrorCategory.PARAMETER
        )

    if _matches(_TRANSIENT_RE, text):
        return ErrorClassification(
            retryable=True,
            confidence=0.7,
            reasoning="Network or temporary server error",
            suggested_fix="Retry the same call",
            category=ErrorCategory.TRANSIENT
        )

    return None


def is_parameter_error(error_message: str, error_code: Optional[int] = None) -> bool:
    verdict = heuristic_classify(error_message, error_code)
    return verdict is not None and verdict.category == ErrorCategory.PARAMETER


def _extract_json(text: str) -> str:
    """Strip markdown code fences and surrounding prose around a JSON object."""
    text = text.strip()
    fenced = re.search(r"```(?:json)?\s*(.*?)```", text, re.DOTALL | re.IGNORECASE)
    if fenced:
        text = fenced.group(1).strip()
    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        return text[start:end + 1]
    return text


class ErrorClassifier:
    """Decides whether a failed tool call is worth retrying."""

    def __init__(
        self,
        llm: Optional[CompletionClient] = None,
        confidence_threshold: Optional[float] = None,
        model: Optional[str] = None,
        max_retry_after: Optional[float] = None
    ):
        self.llm = llm
        self.confidence_threshold = (
            settings.classifier_confidence_threshold
            if confidence_threshold is None else confidence_threshold
        )
        self.model = model or settings.classifier_model
        self.max_retry_after = (
            settings.max_retry_after_seconds
            if max_retry_after is None else max_retry_after
        )

    async def classify(
        self,
        tool_name: str,
        error_message: str,
        error_code: Optional[int] = None
    ) -> ErrorClassification:
        """
        Classify one failure.

        Args:
            tool_name: Tool that failed
            error_message: Error text reported by the tool or transport
            error_code: JSON-RPC error code when the server returned one

        Returns:
            ErrorClassification (never raises)
        """
        verdict = heuristic_classify(error_message, error_code, self.max_retry_after)
        if verdict is not None and verdict.confidence >= self.confidence_threshold:
            logger.info(
                f"🏷️ {tool_name}: {verdict.category.value} error "
                f"(heuristic, retryable={verdict.retryable}, confidence={verdict.confidence})"
            )
            return verdict

        if self.llm is None:
            return verdict or self._unclassifiable(tool_name, "no LLM configured")

        return await self._classify_with_llm(tool_name, error_message)

    async def _classify_with_llm(self, tool_name: str, error_message: str) -> ErrorClassification:
        prompt = CLASSIFIER_PROMPT.format(tool_name=tool_name, error_message=error_message)
        try:
            raw = await self.llm.complete(
                [
                    {"role": "system", "content": "You classify tool execution errors. Answer with JSON only."},
                    {"role": "user", "content": prompt}
                ],
                model=self.model,
                temperature=0.0,
                max_tokens=300,
                json_mode=True
            )
            parsed = ClassifierVerdict.model_validate_json(_extract_json(raw))
        except (PydanticValidationError, json.JSONDecodeError) as e:
            return self._unclassifiable(tool_name, f"unparsable response: {e}")
        except Exception as e:
            return self._unclassifiable(tool_name, str(e))

        category = self._parse_category(parsed)
        verdict = ErrorClassification(
            retryable=parsed.retryable and category != ErrorCategory.TERMINAL,
            confidence=parsed.confidence,
            reasoning=parsed.reasoning,
            suggested_fix=parsed.suggested_fix,
            category=category,
            source="llm"
        )
        logger.info(
            f"🤖 {tool_name}: {verdict.category.value} error "
            f"(llm, retryable={verdict.retryable}, confidence={verdict.confidence:.2f})"
        )
        return verdict

    @staticmethod
    def _parse_category(parsed: ClassifierVerdict) -> ErrorCategory:
        try:
            category = ErrorCategory((parsed.category or "").lower())
        except ValueError:
            category = None
        if category is None or category == ErrorCategory.UNCLASSIFIABLE:
            return ErrorCategory.PARAMETER if parsed.retryable else ErrorCategory.TERMINAL
        return category

    @staticmethod
    def _unclassifiable(tool_name: str, reason: str) -> ErrorClassification:
        logger.warning(f"⚠️ Classifier unavailable for {tool_name}: {reason}")
        return ErrorClassification(
            retryable=False,
            confidence=0.1,
            reasoning=f"Classifier unavailable: {reason}",
            category=ErrorCategory.UNCLASSIFIABLE,
            source="fallback"
        )
