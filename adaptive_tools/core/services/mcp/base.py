#!/usr/bin/env python3
# adaptive_tools/core/services/mcp/base.py

from abc import ABC, abstractmethod
from typing import Dict, Any, List, Optional
from adaptive_tools.core.types import ToolCallRequest, ToolCallResult, ToolDescriptor


class MCPClient(ABC):
    """
    Interface commune pour tous les clients MCP.

    Définit le contrat que doivent respecter les implémentations HTTP et stdio.
    """

    server_id: str = ""

    @abstractmethod
    async def call_tool(self, tool_name: str, arguments: dict) -> Dict[str, Any]:
        """
        Appelle un outil MCP.

        Args:
            tool_name: Nom de l'outil à appeler
            arguments: Arguments à passer à l'outil

        Returns:
            {
                "success": bool,
                "result": Any,
                "error": Optional[str],
                "error_code": Optional[int]  # code JSON-RPC si fourni par le serveur
            }
        """
        pass

    @abstractmethod
    async def list_tools(self) -> Dict[str, Any]:
        """
        Liste les outils disponibles sur le serveur.

        Returns:
            {
                "success": bool,
                "tools": List[dict],  # [{"name": "...", "description": "...", "inputSchema": {...}}]
                "count": int,
                "error": Optional[str]
            }
        """
        pass

    async def verify(self) -> Dict[str, Any]:
        """
        Vérifie la connexion et la santé du serveur.

        Returns:
            {
                "status": str,  # 'active', 'failed', 'unreachable'
                "status_message": Optional[str],
                "tools": List[dict]
            }
        """
        tools_result = await self.list_tools()

        if tools_result["success"]:
            return {
                "status": "active",
                "status_message": f"Server active with {tools_result['count']} tool(s)",
                "tools": tools_result["tools"]
            }

        error = tools_result.get("error") or "Unknown error"
        if "Timeout" in error or "unreachable" in error.lower():
            status = "unreachable"
        else:
            status = "failed"
        return {
            "status": status,
            "status_message": f"Verification failed: {error}",
            "tools": []
        }


class ToolTransport(ABC):
    """Exécute un appel d'outil et renvoie toujours un ToolCallResult (jamais d'exception)."""

    max_concurrency: Optional[int] = None

    @abstractmethod
    async def execute(self, request: ToolCallRequest) -> ToolCallResult:
        pass


class SchemaDiscovery(ABC):
    """Source de vérité des schémas : le serveur d'outils lui-même."""

    @abstractmethod
    async def list_tool_names(self) -> List[str]:
        """
        Raises:
            SchemaDiscoveryError: Si le catalogue ne peut pas être lu
        """
        pass

    @abstractmethod
    async def fetch_schema(self, tool_name: str) -> Optional[ToolDescriptor]:
        """
        Returns:
            Le descripteur courant, ou None si l'outil n'existe plus

        Raises:
            SchemaDiscoveryError: Si le serveur ne répond pas
        """
        pass
