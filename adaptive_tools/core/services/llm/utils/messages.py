# adaptive_tools/core/services/llm/utils/messages.py
"""Utilitaires pour formater les messages selon les providers."""

import json
from typing import List, Dict, Any, Optional, Tuple
from adaptive_tools.core.types import ToolCallRequest, ToolCallResult, ToolDescriptor


def tool_to_openai(tool: ToolDescriptor) -> Dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": tool.name,
            "description": tool.description,
            "parameters": tool.to_input_schema()
        }
    }


def tool_to_anthropic(tool: ToolDescriptor) -> Dict[str, Any]:
    return {
        "type": "custom",
        "name": tool.name,
        "description": tool.description,
        "input_schema": tool.to_input_schema()
    }


def append_tool_calls(
    messages: List[Dict[str, Any]],
    tool_calls: List[ToolCallRequest],
    text: str = ""
) -> List[Dict[str, Any]]:
    """
    Ajoute un message assistant avec tool_calls (format OpenAI, format canonique de la conversation).

    Args:
        messages: Liste des messages existants
        tool_calls: Liste des tool calls à ajouter
        text: Texte éventuel émis par le modèle avant les appels

    Returns:
        Liste des messages mise à jour
    """
    messages.append({
        "role": "assistant",
        "content": text or None,
        "tool_calls": [
            {
                "id": tc.id,
                "type": "function",
                "function": {
                    "name": tc.tool_name,
                    "arguments": json.dumps(tc.arguments, ensure_ascii=False)
                }
            }
            for tc in tool_calls
        ]
    })
    return messages


def append_tool_results(
    messages: List[Dict[str, Any]],
    results: List[ToolCallResult]
) -> List[Dict[str, Any]]:
    """Ajoute un message `tool` par résultat, dans l'ordre des appels."""
    for result in results:
        messages.append({
            "role": "tool",
            "tool_call_id": result.call_id,
            "content": result.to_message_content()
        })
    return messages


def _append_user_blocks(converted: List[Dict[str, Any]], blocks: List[Dict[str, Any]]):
    # Anthropic exige l'alternance user/assistant : on fusionne les blocs consécutifs
    if converted and converted[-1]["role"] == "user":
        converted[-1]["content"].extend(blocks)
    else:
        converted.append({"role": "user", "content": list(blocks)})


def to_anthropic_messages(
    messages: List[Dict[str, Any]]
) -> Tuple[Optional[str], List[Dict[str, Any]]]:
    """
    Convertit une conversation au format OpenAI vers le format Anthropic.

    - Les messages system en tête deviennent le paramètre `system`
    - Les messages system suivants (guidance) deviennent des blocs texte côté user
    - Les messages `tool` deviennent des blocs `tool_result`
    - Les `tool_calls` assistant deviennent des blocs `tool_use`

    Returns:
        tuple: (system_prompt ou None, messages Anthropic)
    """
    system_parts: List[str] = []
    converted: List[Dict[str, Any]] = []

    for message in messages:
        role = message.get("role")
        content = message.get("content")

        if role == "system":
            if not converted:
                system_parts.append(content or "")
            else:
                _append_user_blocks(converted, [{"type": "text", "text": content or ""}])

        elif role == "tool":
            _append_user_blocks(converted, [{
                "type": "tool_result",
                "tool_use_id": message.get("tool_call_id"),
                "content": content or ""
            }])

        elif role == "assistant":
            blocks = []
            if content:
                blocks.append({"type": "text", "text": content})
            for tc in message.get("tool_calls") or []:
                function = tc.get("function", {})
                arguments = function.get("arguments") or "{}"
                if isinstance(arguments, str):
                    try:
                        arguments = json.loads(arguments)
                    except json.JSONDecodeError:
                        arguments = {}
                blocks.append({
                    "type": "tool_use",
                    "id": tc.get("id"),
                    "name": function.get("name"),
                    "input": arguments
                })
            converted.append({"role": "assistant", "content": blocks})

        else:
            if isinstance(content, list):
                blocks = content
            else:
                blocks = [{"type": "text", "text": content or ""}]
            _append_user_blocks(converted, blocks)

    system_prompt = "\n\n".join(p for p in system_parts if p) or None
    return system_prompt, converted
