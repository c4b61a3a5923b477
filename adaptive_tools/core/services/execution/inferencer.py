# adaptive_tools/core/services/execution/inferencer.py
"""Missing-parameter detection and value inference from the user's request."""

import re
from typing import Any, Dict, Optional, Tuple

from adaptive_tools.config.config import settings
from adaptive_tools.config.logger import logger
from adaptive_tools.core.types import ToolDescriptor
from .classifier import CompletionClient
from .transforms import aliases_for

CANNOT_INFER = "CANNOT_INFER"
MAX_VALUE_LENGTH = 500

_ID = r"([A-Za-z_][A-Za-z0-9_.\-]*)"
_Q = r"['\"`]?"

PARAMETER_NAME_PATTERNS = [
    re.compile(rf"missing required (?:parameter|property|field|argument)s?\s*:?\s*{_Q}{_ID}", re.IGNORECASE),
    re.compile(rf"(?:parameter|field|property|argument)\s+['\"`]{_ID}['\"`]\s+is\s+(?:missing|required|undefined)", re.IGNORECASE),
    re.compile(rf"field\s+{_Q}{_ID}{_Q}\s+is\s+undefined", re.IGNORECASE),
    re.compile(rf"required\s+(?:property|parameter|field|argument)\s+{_Q}{_ID}", re.IGNORECASE),
    re.compile(rf"['\"`]{_ID}['\"`]\s+is\s+(?:a\s+)?required", re.IGNORECASE),
    re.compile(rf"{_ID}\s+is\s+a\s+required\s+(?:field|parameter|property|argument)", re.IGNORECASE),
    re.compile(rf"invalid value for\s+{_Q}{_ID}", re.IGNORECASE),
    re.compile(rf"missing\s+{_Q}{_ID}{_Q}\s+(?:parameter|field|argument)", re.IGNORECASE),
    re.compile(rf"{_ID}\s*\n\s*field required", re.IGNORECASE),
    re.compile(rf"['\"]path['\"]\s*:\s*\[\s*['\"]{_ID}", re.IGNORECASE),
    re.compile(rf"{_ID}\s*:\s*required\b", re.IGNORECASE),
    re.compile(rf"{_ID}\s+is\s+(?:required|missing|undefined)", re.IGNORECASE),
]

# Words the generic patterns may capture that are never parameter names
_NOT_A_NAME = {
    "parameter", "parameters", "field", "fields", "property", "value", "argument",
    "arguments", "input", "it", "this", "that", "which", "is", "a", "the", "one"
}

INFERENCE_PROMPT = """A tool call failed because a parameter is missing.

Tool: {tool_name}
Missing parameter: {parameter}{parameter_details}
User request: "{user_intent}"
Arguments already sent: {current_arguments}

What value should "{parameter}" have to fulfil the user request?
Answer with the value only, on a single line, without quotes or explanation.
If the value cannot be determined from the request, answer exactly {cannot_infer}."""


def extract_parameter_name(error_message: str) -> Optional[str]:
    """
    Pull the offending parameter name out of an error message.

    Examples:
        "Missing required parameter: searchValue" → "searchValue"
        "Parameter 'query' is missing" → "query"
        "'to' is a required property" → "to"
    """
    if not error_message:
        return None
    for pattern in PARAMETER_NAME_PATTERNS:
        for match in pattern.finditer(error_message):
            name = match.group(1).strip(".-")
            if name and name.lower() not in _NOT_A_NAME:
                return name
    return None


class ParameterInferencer:
    """Finds which parameter is missing and what value it should carry."""

    def __init__(self, llm: Optional[CompletionClient] = None, model: Optional[str] = None):
        self.llm = llm
        self.model = model or settings.inference_model

    async def infer_value(
        self,
        tool_name: str,
        missing_param: str,
        user_intent: str,
        tool_schema: Optional[ToolDescriptor] = None,
        current_arguments: Optional[Dict[str, Any]] = None
    ) -> Optional[str]:
        """
        Infer a value for `missing_param`.

        A known alias already present in `current_arguments` donates its value
        without any LLM call. Otherwise the LLM is asked for a plain-text value.

        Returns:
            The value, or None when it cannot be inferred (never raises)
        """
        current_arguments = current_arguments or {}

        for alias in aliases_for(missing_param):
            value = current_arguments.get(alias)
            if value not in (None, ""):
                logger.info(f"💡 {tool_name}.{missing_param} taken from alias '{alias}'")
                return value if isinstance(value, str) else str(value)

        if self.llm is None or not user_intent:
            return None

        prompt = INFERENCE_PROMPT.format(
            tool_name=tool_name,
            parameter=missing_param,
            parameter_details=self._describe(tool_schema, missing_param),
            user_intent=user_intent,
            current_arguments=current_arguments or "{}",
            cannot_infer=CANNOT_INFER
        )
        try:
            raw = await self.llm.complete(
                [{"role": "user", "content": prompt}],
                model=self.model,
                temperature=0.0,
                max_tokens=100
            )
        except Exception as e:
            logger.warning(f"⚠️ Parameter inference failed for {tool_name}.{missing_param}: {e}")
            return None

        value = self._clean(raw)
        if value is None:
            logger.info(f"🤷 Could not infer {tool_name}.{missing_param}")
        else:
            logger.info(f"💡 Inferred {tool_name}.{missing_param} = {value[:80]!r}")
        return value

    async def infer_from_error(
        self,
        tool_name: str,
        error_message: str,
        user_intent: str,
        tool_schema: Optional[ToolDescriptor] = None,
        current_arguments: Optional[Dict[str, Any]] = None
    ) -> Tuple[Optional[str], Optional[str]]:
        """
        Returns:
            (parameter name, inferred value); either may be None
        """
        current_arguments = current_arguments or {}
        param = extract_parameter_name(error_message)

        if param is None and tool_schema is not None:
            missing = [p for p in tool_schema.required_parameters if p not in current_arguments]
            if len(missing) == 1:
                param = missing[0]

        if param is None:
            return None, None

        value = await self.infer_value(tool_name, param, user_intent, tool_schema, current_arguments)
        return param, value

    @staticmethod
    def _describe(tool_schema: Optional[ToolDescriptor], param: str) -> str:
        if tool_schema is None:
            return ""
        spec = tool_schema.get_parameter(param)
        if spec is None:
            return ""
        details = f" ({spec.type})"
        if spec.description:
            details += f": {spec.description}"
        return details

    @staticmethod
    def _clean(raw: Optional[str]) -> Optional[str]:
        if not raw:
            return None
        line = next((l.strip() for l in raw.strip().splitlines() if l.strip()), "")
        value = line.strip("\"'` ")[:MAX_VALUE_LENGTH]
        if value.upper() in {CANNOT_INFER, "NONE", "UNKNOWN", "NULL", "N/A", ""}:
            return None
        return value
