"""Health check endpoint."""

from typing import Any

from fastapi import APIRouter, Depends
from starlette.responses import JSONResponse

from panel_bridge.api.http.deps import get_database_service
from panel_bridge.core.services.database.db_session import DbSessionService

router = APIRouter(prefix="/health", tags=["health"])


@router.get("", response_model=None)
async def health(
    database_service: DbSessionService = Depends(get_database_service),
) -> dict[str, Any] | JSONResponse:
    """Liveness plus database connectivity; 503 when the database is unreachable."""
    db_healthy = database_service.health_check()
    body = {
        "status": "healthy" if db_healthy else "unhealthy",
        "checks": {"database": {"status": "healthy" if db_healthy else "unhealthy"}},
    }
    if not db_healthy:
        return JSONResponse(status_code=503, content=body)
    return body
