# adaptive_tools/core/services/execution/guidance.py
"""
Guidance messages injected into the conversation after a parameter error.

A guidance message tells the LLM exactly which parameter names to drop, which
one to use, and the complete argument object to send. It never suggests
sending an old name together with its replacement.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from adaptive_tools.core.types import ToolDescriptor
from .transforms import aliases_for

_QUESTION_RE = re.compile(r"question:\s*(.+)", re.IGNORECASE)


@dataclass
class Guidance:
    message: str
    wrong_parameters: List[str]
    corrected_arguments: Dict[str, Any]
    complete: bool  # True when every value in corrected_arguments is known


def find_wrong_parameters(
    arguments: Dict[str, Any],
    correct_param: Optional[str],
    descriptor: Optional[ToolDescriptor] = None
) -> List[str]:
    """
    Names in `arguments` that must be removed.

    - With a known schema: every name the schema does not declare
    - Without one: known aliases of the correct parameter, or the single
      argument sent when it is not the correct name
    """
    known = set(descriptor.parameter_names) if descriptor is not None and descriptor.parameters else None
    aliases = set(aliases_for(correct_param)) if correct_param else set()

    wrong = []
    for name in arguments:
        if name == correct_param:
            continue
        if known is not None:
            if name not in known:
                wrong.append(name)
        elif name in aliases:
            wrong.append(name)

    if not wrong and known is None and correct_param and len(arguments) == 1 and correct_param not in arguments:
        wrong = list(arguments)
    return wrong


def placeholder(param: str) -> str:
    return f"<{param}>"


def missing_required_parameters(arguments: Dict[str, Any], descriptor: Optional[ToolDescriptor]) -> List[str]:
    if descriptor is None:
        return []
    return [name for name in descriptor.required_parameters if arguments.get(name) in (None, "")]


def clarification_question(error_message: str) -> Optional[str]:
    """Text following "question:" in a tool error, if the tool asked for clarification."""
    match = _QUESTION_RE.search(error_message or "")
    return match.group(1).strip() if match else None


def build_corrected_arguments(
    arguments: Dict[str, Any],
    wrong_parameters: List[str],
    correct_param: Optional[str],
    value: Optional[Any],
    missing_required: Optional[List[str]] = None
) -> Dict[str, Any]:
    corrected = {k: v for k, v in arguments.items() if k not in wrong_parameters}
    if correct_param:
        if value is not None:
            corrected[correct_param] = value
        elif corrected.get(correct_param) in (None, ""):
            corrected[correct_param] = placeholder(correct_param)
    for name in missing_required or []:
        if corrected.get(name) in (None, ""):
            corrected[name] = placeholder(name)
    return corrected


def _quoted(names: List[str]) -> str:
    return ", ".join(f'"{n}"' for n in names)


def compose_guidance(
    tool_name: str,
    error_message: str,
    user_intent: str,
    arguments: Dict[str, Any],
    correct_param: Optional[str],
    value: Optional[Any] = None,
    descriptor: Optional[ToolDescriptor] = None,
    escalation_level: int = 0,
    suggested_fix: Optional[str] = None
) -> Guidance:
    """
    Build the guidance text for one failed call.

    When no parameter could be identified, the guidance never asks for a
    verbatim call: it lists the missing required names as placeholders if the
    schema is known, otherwise it asks the LLM to re-read the schema. Such
    guidance is never complete.

    Args:
        tool_name: Tool to call again
        error_message: Error returned by the tool
        user_intent: Original user request
        arguments: Arguments of the failed call
        correct_param: Parameter the tool actually expects (None if unknown)
        value: Inferred value for `correct_param`
        descriptor: Cached schema of the tool, when available
        escalation_level: 0 for the first correction, >0 once a correction was ignored
        suggested_fix: Classifier hint, used when no parameter could be identified
    """
    wrong = find_wrong_parameters(arguments, correct_param, descriptor)
    missing = [] if correct_param else missing_required_parameters(arguments, descriptor)
    corrected = build_corrected_arguments(arguments, wrong, correct_param, value, missing)
    identified = correct_param is not None or corrected != arguments
    complete = correct_param is not None and all(v != placeholder(k) for k, v in corrected.items())
    corrected_json = json.dumps(corrected, ensure_ascii=False)

    lines = []
    if escalation_level > 0:
        lines.append(
            f"RETRY {escalation_level + 1}: your previous call to {tool_name} did not follow the "
            f"correction and failed again with the same error."
        )
    else:
        lines.append(f"TOOL RETRY REQUIRED: {tool_name} failed because of a parameter error.")

    lines.append(f"Error: {error_message}")
    if user_intent:
        lines.append(f'Original user request: "{user_intent}"')

    if correct_param:
        lines.append(f'The correct parameter name is "{correct_param}".')
        if value is not None:
            lines.append(f'Use this value for "{correct_param}": {json.dumps(value, ensure_ascii=False)}')
        elif not complete:
            lines.append(f'Fill "{correct_param}" from the user request.')
    else:
        if descriptor is not None and descriptor.required_parameters:
            lines.append(f"Required parameters: {_quoted(descriptor.required_parameters)}.")
        if missing:
            lines.append(f"Missing required parameters: {_quoted(missing)}. Fill each one from the user request.")
        question = clarification_question(error_message)
        if question:
            lines.append(f"The tool asks: {question}")
        if suggested_fix:
            lines.append(f"Suggested fix: {suggested_fix}")

    if wrong:
        lines.append(f"Remove these parameters: {_quoted(wrong)}.")
        if correct_param:
            lines.append(f'Do NOT include {_quoted(wrong)} together with "{correct_param}".')

    if not identified:
        lines.append(
            f"Re-read the input schema of {tool_name} and state which parameter you will change "
            f"before calling it again. Do NOT send the same arguments again."
        )
    elif correct_param is None:
        lines.append(
            f"Call {tool_name} again with these arguments, replacing every <name> placeholder "
            f"with a value from the user request:"
        )
        lines.append(corrected_json)
    elif escalation_level > 0:
        lines.append(f"Copy this JSON exactly as the arguments of {tool_name}, with no other parameters:")
        lines.append(corrected_json)
        if wrong:
            lines.append(f"Forbidden parameter names: {_quoted(wrong)}.")
    else:
        lines.append(f"Call {tool_name} again with ONLY these arguments:")
        lines.append(corrected_json)

    return Guidance(
        message="\n".join(lines),
        wrong_parameters=wrong,
        corrected_arguments=corrected,
        complete=complete
    )
