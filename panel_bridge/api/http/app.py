"""FastAPI application factory and setup."""

import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from loguru import logger
from starlette.responses import JSONResponse

from panel_bridge.api.http.app_data import ApplicationDependencies, build_dependencies
from panel_bridge.api.http.routers import health, panels
from panel_bridge.api.utils.app_startup import configure_logging
from panel_bridge.core.services.database.db_manage import create_all
from panel_bridge.runtime.config.config_data import ConfigData
from panel_bridge.runtime.context import get_config


def create_app(
    config: ConfigData | None = None,
    dependencies: ApplicationDependencies | None = None,
) -> FastAPI:
    """Build the panel application.

    Args:
        config: Configuration to run with; defaults to the process configuration
        dependencies: Pre-wired services (tests); built at startup when omitted
    """
    config = config or (dependencies.config if dependencies else get_config())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await startup(app, config)
        try:
            yield
        finally:
            await shutdown(app)

    app = FastAPI(
        title="panel-bridge",
        lifespan=lifespan,
        docs_url=None if config.app.environment == "production" else "/docs",
        redoc_url=None if config.app.environment == "production" else "/redoc",
    )
    if dependencies is not None:
        app.state.app_dependencies = dependencies

    app.middleware("http")(log_requests)
    app.include_router(panels.router)
    app.include_router(health.router)
    return app


# --- Request logging middleware ---
async def log_requests(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())

    xff = request.headers.get("x-forwarded-for")
    client_ip = (
        xff.split(",")[0].strip()
        if xff
        else request.client.host
        if request.client
        else "unknown"
    )

    # the query string carries the partner token; never log it
    base_ctx = {
        "request_id": request_id,
        "method": request.method,
        "path": request.url.path,
        "client_ip": client_ip,
        "user_agent": request.headers.get("user-agent", "unknown"),
    }

    start = time.perf_counter()

    with logger.contextualize(**base_ctx):
        try:
            logger.info("request.start")
            response = await call_next(request)

            duration_ms = (time.perf_counter() - start) * 1000
            logger.bind(
                status_code=response.status_code,
                duration_ms=round(duration_ms, 1),
            ).info("request.end")

            response.headers.setdefault("X-Request-ID", request_id)
            return response

        except Exception as exc:
            duration_ms = (time.perf_counter() - start) * 1000
            logger.bind(
                status_code=500,
                duration_ms=round(duration_ms, 1),
                error_type=type(exc).__name__,
            ).exception("request.error")
            return JSONResponse(
                status_code=500,
                content={"detail": "Internal Server Error", "request_id": request_id},
                headers={"X-Request-ID": request_id},
            )


# --- Lifecycle hooks ---
async def startup(app: FastAPI, config: ConfigData) -> None:
    configure_logging(config)
    logger.info("Starting up application in {} environment", config.app.environment)

    app.state.owns_dependencies = getattr(app.state, "app_dependencies", None) is None
    if app.state.owns_dependencies:
        # fails fast on a missing shared secret
        app.state.app_dependencies = build_dependencies(config)

    deps: ApplicationDependencies = app.state.app_dependencies
    create_all(deps.database_service)
    removed = deps.nonce_store.purge_expired()
    logger.info(f"Startup nonce purge removed {removed} record(s)")


async def shutdown(app: FastAPI) -> None:
    logger.info("Shutting down application")
    # injected services belong to the caller
    if getattr(app.state, "owns_dependencies", False):
        app.state.app_dependencies.database_service.dispose()


app = create_app()

__all__ = ["app", "create_app", "startup", "shutdown"]


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host=get_config().app.host,
        port=get_config().app.port,
        access_log=False,  # handled by the request middleware
    )
