#!/usr/bin/env python3
# adaptive_tools/api/v1/routes/health.py

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from adaptive_tools.config.config import settings
from adaptive_tools.core.services.llm.gateway import llm_gateway

router = APIRouter(prefix="", tags=["health"])


@router.get("/health")
async def health_check():
    return {"status": "ok", "app": settings.app_name, "version": "1.0.0"}


@router.get("/health/circuit-breakers")
async def get_circuit_breaker_status():
    """
    Return circuit breaker status for all LLM providers.

    Returns HTTP 200 if all circuits are CLOSED (healthy).
    Returns HTTP 503 if any circuit is OPEN (degraded).
    """
    statuses = llm_gateway.get_circuit_states()
    all_closed = all(state["state"] == "closed" for state in statuses.values())

    return JSONResponse(
        content={
            "status": "healthy" if all_closed else "degraded",
            "circuit_breakers": statuses
        },
        status_code=200 if all_closed else 503
    )
