# adaptive_tools/core/services/llm/registry.py
"""Registry des capacités et limites de chaque provider LLM."""

from typing import Dict, List, Any

PROVIDERS: Dict[str, Dict[str, Any]] = {
    "openai": {
        "name": "OpenAI",
        "temperature": {"min": 0.0, "max": 2.0, "default": 1.0},
        "max_tokens": {"max": 16000, "default": 4000},
        "supports": ["temperature", "max_tokens"],
        "models": [
            "gpt-4o",
            "gpt-4o-mini",
            "gpt-4-turbo",
            "gpt-3.5-turbo",
        ],
    },
    "anthropic": {
        "name": "Anthropic",
        "temperature": {"min": 0.0, "max": 1.0, "default": 1.0},
        "max_tokens": {"max": 4096, "default": 2048},
        "supports": ["temperature", "max_tokens"],
        "models": [
            "claude-sonnet-4-5-20250929",
            "claude-opus-4-5",
            "claude-haiku-3-5",
        ],
    },
}


def get_provider_from_model(model: str) -> str:
    """Détecte le provider à partir du nom du modèle."""
    if model.startswith("gpt-") or model.startswith("o1") or model.startswith("o3"):
        return "openai"
    elif model.startswith("claude-"):
        return "anthropic"
    else:
        raise ValueError(f"Unknown model: {model}. Cannot determine provider.")


def get_provider_config(provider: str) -> Dict[str, Any]:
    """Récupère la configuration d'un provider."""
    if provider not in PROVIDERS:
        raise ValueError(f"Unknown provider: {provider}")
    return PROVIDERS[provider]


def get_supported_params(provider: str) -> List[str]:
    return get_provider_config(provider)["supports"]


def validate_param(provider: str, param_name: str, value: Any) -> Any:
    """Valide et ajuste un paramètre selon les limites du provider."""
    config = get_provider_config(provider)

    if param_name not in config.get("supports", []):
        return None  # Paramètre non supporté, on l'ignore

    if param_name == "temperature":
        limits = config["temperature"]
        return max(limits["min"], min(limits["max"], value))

    elif param_name == "max_tokens":
        limits = config["max_tokens"]
        return min(limits["max"], value)

    return value


def build_params(provider: str, model: str, **params) -> Dict[str, Any]:
    """
    Construit les paramètres d'appel validés pour un provider.

    Les valeurs None et les paramètres non supportés sont ignorés.
    """
    result = {"model": model}
    for name, value in params.items():
        if value is None:
            continue
        validated = validate_param(provider, name, value)
        if validated is not None:
            result[name] = validated

    if provider == "anthropic" and "max_tokens" not in result:
        result["max_tokens"] = PROVIDERS["anthropic"]["max_tokens"]["default"]

    return result
