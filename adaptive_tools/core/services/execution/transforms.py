# adaptive_tools/core/services/execution/transforms.py
"""Known parameter renames per tool family, applied without an LLM round-trip."""

import re
from dataclasses import dataclass
from typing import Dict, List, Optional

from adaptive_tools.config.logger import logger
from adaptive_tools.core.types import ToolCallRequest


# Well-known synonyms the LLM tends to send instead of the real parameter name
PARAMETER_ALIASES: Dict[str, List[str]] = {
    "searchValue": ["instructions", "query", "search"],
    "query": ["instructions", "search", "q"],
    "message_text": ["message", "body", "text"],
    "to": ["phone", "phone_number", "recipient"],
    "body": ["message", "content"],
}


def aliases_for(parameter: str) -> List[str]:
    return list(PARAMETER_ALIASES.get(parameter, []))


def mentions(text: str, name: str) -> bool:
    """True if `name` appears in `text` as a standalone identifier (case-insensitive)."""
    pattern = rf"(?<![A-Za-z0-9_]){re.escape(name)}(?![A-Za-z0-9_])"
    return re.search(pattern, text or "", re.IGNORECASE) is not None


@dataclass(frozen=True)
class RenameRule:
    """Rename `source` to `target` for tools whose name contains `tool_pattern`."""
    tool_pattern: str
    source: str
    target: str
    exact_tool: bool = False

    def matches_tool(self, tool_name: str) -> bool:
        if self.exact_tool:
            return tool_name == self.tool_pattern
        return self.tool_pattern in tool_name

    def applies(self, tool_name: str, error_message: str, arguments: Dict) -> bool:
        return (
            self.matches_tool(tool_name)
            and self.source in arguments
            and mentions(error_message, self.target)
        )


STATIC_RENAMES: List[RenameRule] = [
    # Outlook find emails
    RenameRule("microsoft_outlook_find_emails", "instructions", "searchValue"),
    RenameRule("microsoft_outlook_find_emails", "query", "searchValue"),
    RenameRule("microsoft_outlook_find_emails", "search", "searchValue"),
    # Gmail
    RenameRule("gmail_search_emails", "instructions", "query"),
    RenameRule("gmail_search_emails", "search", "query"),
    # Contacts
    RenameRule("search_contacts", "instructions", "query", exact_tool=True),
    RenameRule("search_contacts", "search", "query", exact_tool=True),
    # SMS
    RenameRule("clicksend_send_sms", "message", "message_text"),
    RenameRule("send_sms", "phone", "to"),
    # Web search
    RenameRule("web_search", "instructions", "query"),
    RenameRule("web_search", "search", "query"),
]


def find_rule(tool_name: str, error_message: str, arguments: Dict) -> Optional[RenameRule]:
    for rule in STATIC_RENAMES:
        if rule.applies(tool_name, error_message, arguments):
            return rule
    return None


def apply_static_transform(request: ToolCallRequest, error_message: str) -> Optional[ToolCallRequest]:
    """
    Rewrite the request with the first matching rename rule.

    Every other source name mapped to the same target for this tool is dropped
    too, so the corrected request never carries old and new names together.

    Returns:
        A new request, or None if no rule applies
    """
    rule = find_rule(request.tool_name, error_message, request.arguments)
    if rule is None:
        return None

    dropped = {
        other.source
        for other in STATIC_RENAMES
        if other.target == rule.target and other.matches_tool(request.tool_name)
    }
    arguments = {k: v for k, v in request.arguments.items() if k not in dropped}
    if arguments.get(rule.target) in (None, ""):
        arguments[rule.target] = request.arguments[rule.source]

    logger.info(
        f"🔀 Static transform for {request.tool_name}: {rule.source} → {rule.target}"
    )
    return request.with_arguments(arguments)
