#!/usr/bin/env python3
# adaptive_tools/api/main.py

import uvicorn
from contextlib import asynccontextmanager
from fastapi import FastAPI, APIRouter, Request
from fastapi.exceptions import RequestValidationError
from adaptive_tools.config.config import settings
from adaptive_tools.config.logger import logger
from adaptive_tools.api.v1.routes import health, schemas
from adaptive_tools.api.v1.exception_handlers import app_exception_handler, validation_exception_handler
from adaptive_tools.core.engine import ToolEngine
from adaptive_tools.core.exceptions import AppException
from adaptive_tools.core.services.execution.schema_cache import InMemorySchemaCache, PostgresSchemaCache
from adaptive_tools.core.services.llm.gateway import llm_gateway
from adaptive_tools.core.services.mcp.transport import build_mcp_stack, load_server_configs
from adaptive_tools.core.utils.http_client import init_http_client, close_http_client, get_http_client
from adaptive_tools.core.utils.scheduler import app_scheduler
from adaptive_tools.database import db


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("🚀 Démarrage de l'application")

    # Initialize HTTP client pool
    await init_http_client()

    # Re-initialize LLM adapters with pooled HTTP client
    llm_gateway.reinit_with_pooled_client()

    # Cache des schémas : Postgres si configuré, sinon mémoire
    if db.is_configured():
        await db.create_pool()
        schema_cache = PostgresSchemaCache()
    else:
        logger.warning("⚠️ No database configured, schema cache kept in memory")
        schema_cache = InMemorySchemaCache()

    # Serveurs MCP
    server_configs = load_server_configs(settings.mcp_servers_file)
    transport, discovery = await build_mcp_stack(server_configs, http_client=get_http_client())
    logger.info(f"🔌 {len(transport.routes)} tool(s) routed across {len(server_configs)} MCP server(s)")

    engine = ToolEngine(llm_gateway, transport, discovery, schema_cache)
    app.state.engine = engine
    await engine.warm_cache()

    # Démarrer le scheduler
    logger.info("📅 Configuration du scheduler...")
    engine.refresh_scheduler.register_job(app_scheduler)
    app_scheduler.start()

    logger.info("✅ Startup complete")

    yield

    app_scheduler.shutdown()
    await engine.shutdown()

    # Close HTTP client pool
    await close_http_client()

    # Close database connection pool
    await db.close_pool()
    logger.info("🛑 Arrêt de l'application")


def create_app(with_lifespan: bool = True) -> FastAPI:
    app = FastAPI(title=settings.app_name, debug=settings.debug, lifespan=lifespan if with_lifespan else None)

    # --- Handler d'exceptions globales ---
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    # --- Middleware de logging des requêtes (DEBUG uniquement) ---
    if settings.debug:
        @app.middleware("http")
        async def log_requests(request: Request, call_next):
            logger.debug(f"{request.method} {request.url.path}")
            return await call_next(request)

    # --- Router principal v1 ---
    api_v1_router = APIRouter(prefix="/api/v1")
    api_v1_router.include_router(schemas.router)

    app.include_router(api_v1_router)
    app.include_router(health.router)  # Health check reste hors versioning
    return app


app = create_app()

# --- Lancement en mode script ---
if __name__ == "__main__":
    uvicorn.run("adaptive_tools.api.main:app", host=settings.host, port=settings.port, reload=settings.debug)
