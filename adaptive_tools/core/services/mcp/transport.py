#!/usr/bin/env python3
# adaptive_tools/core/services/mcp/transport.py
"""
MCP adapters onto the engine's transport and discovery contracts.

MCPToolTransport turns raw client dicts into ToolCallResult values:
- JSON-RPC errors keep their numeric code (-32602 = invalid params)
- `isError` results carry their error text in content[0].text, sometimes as
  a JSON object {"error": "..."}
- parameter errors are flagged with requires_retry
"""

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from adaptive_tools.config.config import settings
from adaptive_tools.config.logger import logger
from adaptive_tools.core.exceptions import SchemaDiscoveryError
from adaptive_tools.core.types import ToolCallRequest, ToolCallResult, ToolDescriptor
from adaptive_tools.core.services.execution.classifier import is_parameter_error
from .base import MCPClient, SchemaDiscovery, ToolTransport
from .clients import create_mcp_client


def load_server_configs(path: str) -> List[Dict[str, Any]]:
    """
    Lit la liste des serveurs MCP depuis un fichier JSON.

    Format: [{"id": "outlook", "type": "http", "url": "http://..."}, ...]
    """
    if not path:
        return []
    config_path = Path(path)
    if not config_path.exists():
        logger.warning(f"⚠️ MCP servers file not found: {path}")
        return []
    with config_path.open(encoding="utf-8") as f:
        data = json.load(f)
    return data.get("servers", []) if isinstance(data, dict) else data


def _content_text(result: Dict[str, Any]) -> Optional[str]:
    content = result.get("content") or []
    texts = [item.get("text") for item in content if isinstance(item, dict) and item.get("text")]
    if not texts:
        return None
    return "\n".join(texts)


def _error_from_content(result: Dict[str, Any]) -> str:
    text = _content_text(result)
    if not text:
        return "Tool reported an error without details"
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        return text
    if isinstance(parsed, dict):
        return str(parsed.get("error") or parsed.get("message") or text)
    return text


def _payload_from_result(result: Any) -> Any:
    if not isinstance(result, dict) or "content" not in result:
        return result
    text = _content_text(result)
    if text is None:
        return result
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return text


def to_tool_result(request: ToolCallRequest, raw: Dict[str, Any], server_id: Optional[str] = None) -> ToolCallResult:
    """Convertit la réponse brute d'un client MCP en ToolCallResult."""
    if not raw.get("success"):
        error = raw.get("error") or "Unknown error"
        error_code = raw.get("error_code")
        return ToolCallResult.failed(
            request,
            error=error,
            error_code=error_code,
            requires_retry=is_parameter_error(error, error_code),
            server_id=server_id
        )

    result = raw.get("result")
    if isinstance(result, dict) and result.get("isError"):
        error = _error_from_content(result)
        return ToolCallResult.failed(
            request,
            error=error,
            requires_retry=is_parameter_error(error),
            server_id=server_id
        )

    return ToolCallResult.ok(request, _payload_from_result(result), server_id=server_id)


class MCPToolTransport(ToolTransport):
    """Route chaque appel vers le client MCP qui expose l'outil."""

    def __init__(self, routes: Optional[Dict[str, MCPClient]] = None, max_concurrency: Optional[int] = None):
        self.routes: Dict[str, MCPClient] = dict(routes or {})
        self.max_concurrency = max_concurrency or settings.max_concurrent_tool_calls

    def register(self, tool_name: str, client: MCPClient):
        self.routes[tool_name] = client

    async def register_server(self, client: MCPClient) -> List[str]:
        """Découvre les outils d'un serveur et les route vers lui."""
        listing = await client.list_tools()
        if not listing["success"]:
            raise SchemaDiscoveryError(
                f"Cannot list tools of server {client.server_id}: {listing['error']}",
                details={"server_id": client.server_id}
            )
        names = [tool["name"] for tool in listing["tools"]]
        for name in names:
            self.register(name, client)
        logger.info(f"🔌 Registered {len(names)} tool(s) from server {client.server_id}")
        return names

    async def execute(self, request: ToolCallRequest) -> ToolCallResult:
        client = self.routes.get(request.tool_name)
        if client is None:
            logger.error(f"No MCP server registered for tool {request.tool_name}")
            return ToolCallResult.failed(request, error=f"Tool '{request.tool_name}' is not registered")

        raw = await client.call_tool(request.tool_name, request.arguments)
        return to_tool_result(request, raw, server_id=client.server_id)


class MCPSchemaDiscovery(SchemaDiscovery):
    """Interroge `tools/list` sur chaque serveur pour obtenir les schémas courants."""

    def __init__(self, clients: Iterable[MCPClient]):
        self.clients = list(clients)

    async def _list_all(self) -> Dict[str, Tuple[MCPClient, Dict[str, Any]]]:
        tools = {}
        for client in self.clients:
            listing = await client.list_tools()
            if not listing["success"]:
                raise SchemaDiscoveryError(
                    f"Cannot list tools of server {client.server_id}: {listing['error']}",
                    details={"server_id": client.server_id}
                )
            for tool in listing["tools"]:
                tools[tool["name"]] = (client, tool)
        return tools

    async def list_tool_names(self) -> List[str]:
        return sorted(await self._list_all())

    async def fetch_schema(self, tool_name: str) -> Optional[ToolDescriptor]:
        tools = await self._list_all()
        if tool_name not in tools:
            return None
        client, tool = tools[tool_name]
        return ToolDescriptor.from_input_schema(
            name=tool["name"],
            description=tool.get("description") or "",
            input_schema=tool.get("inputSchema"),
            server_id=client.server_id
        )


async def build_mcp_stack(server_configs: List[Dict[str, Any]], http_client=None) -> Tuple[MCPToolTransport, MCPSchemaDiscovery]:
    """
    Instancie les clients MCP configurés, la transport et la discovery.

    Un serveur injoignable au démarrage est journalisé puis ignoré pour le routage.
    """
    clients = [create_mcp_client(config, http_client=http_client) for config in server_configs]
    transport = MCPToolTransport()
    for client in clients:
        try:
            await transport.register_server(client)
        except SchemaDiscoveryError as e:
            logger.error(f"❌ {e.message}")
    return transport, MCPSchemaDiscovery(clients)
