# adaptive_tools/core/services/llm/adapters/base.py
"""Interface de base pour tous les adapters LLM."""

from abc import ABC, abstractmethod
from typing import Dict, Any, List
from adaptive_tools.core.types import LLMTurn, ToolDescriptor


class BaseAdapter(ABC):
    """Interface de base pour les adapters LLM."""

    def __init__(self, api_key: str):
        self.api_key = api_key
        self.client = None

    @abstractmethod
    async def complete(
        self,
        messages: List[Dict[str, Any]],
        json_mode: bool = False,
        **params
    ) -> str:
        """
        Génère une réponse texte complète (sans streaming).

        Args:
            messages: Messages au format OpenAI [{"role": "user", "content": "..."}]
            json_mode: Demande une réponse JSON quand le provider le supporte
            **params: Paramètres spécifiques au provider (déjà validés)

        Returns:
            str: Texte de la réponse
        """
        pass

    @abstractmethod
    async def complete_with_tools(
        self,
        messages: List[Dict[str, Any]],
        tools: List[ToolDescriptor],
        **params
    ) -> LLMTurn:
        """
        Génère une réponse avec support des tool calls.

        Args:
            messages: Messages au format OpenAI (tool_calls / role "tool" inclus)
            tools: Descripteurs des tools disponibles
            **params: Paramètres spécifiques au provider (déjà validés)

        Returns:
            LLMTurn: texte et tool calls demandés par le modèle
        """
        pass

    @abstractmethod
    def is_retriable_error(self, exception: Exception) -> bool:
        """
        Détermine si une erreur justifie un retry.

        Returns:
            bool: True si l'erreur est retriable (429, 500, 503, etc.)
        """
        pass
