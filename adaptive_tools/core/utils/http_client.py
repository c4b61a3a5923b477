# adaptive_tools/core/utils/http_client.py
"""Shared pooled HTTP client for MCP servers and LLM providers."""

import httpx
from typing import Optional
from adaptive_tools.config.config import settings
from adaptive_tools.config.logger import logger


_http_client: Optional[httpx.AsyncClient] = None


def get_http_client() -> Optional[httpx.AsyncClient]:
    """Returns the shared client, or None when the pool was never initialized."""
    return _http_client


async def init_http_client() -> httpx.AsyncClient:
    """
    Initialize the pooled client.

    Configuration:
    - max_connections=100, max_keepalive_connections=20
    - timeout: settings.mcp_timeout total, 10s connect
    """
    global _http_client
    if _http_client is not None:
        return _http_client

    _http_client = httpx.AsyncClient(
        limits=httpx.Limits(
            max_connections=100,
            max_keepalive_connections=20
        ),
        timeout=httpx.Timeout(settings.mcp_timeout, connect=10.0),
        follow_redirects=True
    )
    logger.info(
        "✅ HTTP client pool initialized",
        extra={"max_connections": 100, "timeout_total": settings.mcp_timeout}
    )
    return _http_client


async def close_http_client():
    """Close the pooled client."""
    global _http_client
    if _http_client:
        await _http_client.aclose()
        logger.info("✅ HTTP client pool closed")
        _http_client = None
