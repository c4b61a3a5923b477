#!/usr/bin/env python3
# adaptive_tools/core/services/mcp/clients.py

import httpx
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional, Tuple
from adaptive_tools.config.config import settings
from adaptive_tools.config.logger import logger
from .base import MCPClient

STDIO_LAUNCHERS = ("npx", "uvx")
INVALID_RESPONSE = "Invalid JSON-RPC response structure"


def call_outcome(result: Any = None, error: Optional[str] = None, error_code: Optional[int] = None) -> Dict[str, Any]:
    """Forme commune des réponses de call_tool()."""
    return {"success": error is None, "result": result, "error": error, "error_code": error_code}


def listing_outcome(tools: Optional[List[dict]] = None, error: Optional[str] = None) -> Dict[str, Any]:
    """Forme commune des réponses de list_tools()."""
    tools = tools or []
    return {"success": error is None, "tools": tools, "count": len(tools), "error": error}


# ============================================================================
# HTTP CLIENT
# ============================================================================

class HTTPMCPClient(MCPClient):
    """Client MCP pour serveurs HTTP (JSON-RPC sur POST {url}/mcp/)."""

    def __init__(self, server_id: str, url: str, api_key: Optional[str] = None,
                 http_client: Optional[httpx.AsyncClient] = None,
                 timeout: Optional[float] = None):
        self.server_id = server_id
        self.url = url.rstrip('/')
        self.api_key = api_key
        self.http_client = http_client
        self.timeout = timeout or settings.mcp_timeout

    def _get_headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _post(self, payload: dict) -> httpx.Response:
        mcp_url = f"{self.url}/mcp/"
        if self.http_client is not None:
            return await self.http_client.post(
                mcp_url, json=payload, headers=self._get_headers(), timeout=self.timeout
            )
        async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
            return await client.post(mcp_url, json=payload, headers=self._get_headers())

    async def _rpc(self, method: str, params: dict) -> Tuple[Any, Optional[str], Optional[int]]:
        """
        Envoie une requête JSON-RPC au serveur.

        Returns:
            (result, error, error_code) : error vaut None en cas de succès.
            error_code est le code JSON-RPC quand le serveur en fournit un (-32602, ...).
        """
        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
        logger.debug(f"MCP payload: {payload}")

        try:
            response = await self._post(payload)
        except httpx.TimeoutException:
            logger.error(f"⏱️ [HTTPMCPClient] {method} timed out on server {self.server_id}")
            return None, f"Timeout after {self.timeout}s", None
        except httpx.HTTPError as e:
            logger.error(f"❌ [HTTPMCPClient] {method} failed on server {self.server_id}: {e}")
            return None, str(e) or type(e).__name__, None

        if response.status_code != 200:
            return None, f"HTTP {response.status_code}: {response.text}", None

        try:
            data = response.json()
        except ValueError:
            return None, INVALID_RESPONSE, None

        if data.get("error"):
            return None, data["error"].get("message", "Unknown error"), data["error"].get("code")
        if "result" not in data:
            return None, INVALID_RESPONSE, None
        return data["result"], None, None

    async def call_tool(self, tool_name: str, arguments: dict) -> Dict[str, Any]:
        logger.info(f"📤 [HTTPMCPClient] Appel MCP - Server: {self.server_id}, Tool: {tool_name}")

        result, error, error_code = await self._rpc("tools/call", {"name": tool_name, "arguments": arguments})
        if error is not None:
            logger.error(f"Tool '{tool_name}' failed ({error_code}): {error}")
        return call_outcome(result, error, error_code)

    async def list_tools(self) -> Dict[str, Any]:
        result, error, _ = await self._rpc("tools/list", {})
        if error is not None:
            return listing_outcome(error=error)
        return listing_outcome(tools=(result or {}).get("tools", []))


# ============================================================================
# STDIO CLIENT
# ============================================================================

class StdioMCPClient(MCPClient):
    """Client MCP pour serveurs stdio (locaux) avec sessions éphémères."""

    def __init__(self, server_id: str, command: str, args: list, env: Optional[dict] = None):
        self.server_id = server_id
        self.command = command
        self.args = args or []
        self.env = env or {}

    @asynccontextmanager
    async def _session(self):
        """Session éphémère : lance le serveur → initialize → ferme à la sortie."""
        from mcp import ClientSession, StdioServerParameters
        from mcp.client.stdio import stdio_client

        server_params = StdioServerParameters(command=self.command, args=self.args, env=self.env)
        logger.debug(f"🚀 [StdioMCPClient] Launching stdio server: {self.command} {self.args}")

        async with stdio_client(server_params) as (read, write):
            async with ClientSession(read, write) as session:
                await session.initialize()
                yield session

    async def call_tool(self, tool_name: str, arguments: dict) -> Dict[str, Any]:
        try:
            async with self._session() as session:
                result = await session.call_tool(tool_name, arguments)
        except Exception as e:
            logger.error(f"❌ [StdioMCPClient] Error calling stdio tool '{tool_name}': {e}")
            # McpError porte le code JSON-RPC dans e.error.code
            return call_outcome(error=str(e), error_code=getattr(getattr(e, "error", None), "code", None))

        content = [
            {"type": item.type, "text": getattr(item, "text", None)}
            for item in (getattr(result, "content", None) or [])
        ]
        return call_outcome({"content": content, "isError": bool(getattr(result, "isError", False))})

    async def list_tools(self) -> Dict[str, Any]:
        try:
            async with self._session() as session:
                result = await session.list_tools()
        except Exception as e:
            logger.error(f"❌ [StdioMCPClient] Error listing stdio tools: {e}")
            return listing_outcome(error=str(e))

        tools = [
            {"name": tool.name, "description": tool.description, "inputSchema": tool.inputSchema}
            for tool in result.tools
        ]
        logger.debug(f"✅ [StdioMCPClient] Found {len(tools)} tools")
        return listing_outcome(tools=tools)


# ============================================================================
# FACTORY
# ============================================================================

def create_mcp_client(server_config: Dict[str, Any],
                      http_client: Optional[httpx.AsyncClient] = None) -> MCPClient:
    """
    Factory qui instancie le bon client selon le type de serveur.

    Args:
        server_config: {"id": ..., "type": "http"|"npx"|"uvx"|"stdio", "url"|"command", "args", "env", "api_key"}
        http_client: Client httpx partagé (serveurs HTTP uniquement)

    Raises:
        ValueError: Si le type de serveur est inconnu ou la config incomplète
    """
    server_id = server_config.get("id") or server_config.get("url") or server_config.get("command")
    server_type = server_config.get("type", "http")

    if server_type == "http":
        if not server_config.get("url"):
            raise ValueError(f"HTTP server {server_id} requires 'url'")
        return HTTPMCPClient(
            server_id=server_id,
            url=server_config["url"],
            api_key=server_config.get("api_key"),
            http_client=http_client
        )

    if server_type in STDIO_LAUNCHERS or server_type == "stdio":
        command = server_type if server_type in STDIO_LAUNCHERS else server_config.get("command")
        if not command:
            raise ValueError(f"stdio server {server_id} requires 'command'")
        return StdioMCPClient(
            server_id=server_id,
            command=command,
            args=server_config.get("args", []),
            env=server_config.get("env", {})
        )

    raise ValueError(f"Unknown server type: {server_type}. Supported: http, npx, uvx, stdio")
