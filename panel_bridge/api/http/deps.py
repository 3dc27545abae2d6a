"""FastAPI dependency implementations."""

from __future__ import annotations

from fastapi import Request

from panel_bridge.api.http.app_data import ApplicationDependencies
from panel_bridge.core.services.database.db_session import DbSessionService
from panel_bridge.core.services.identity.reconciler import IdentityReconciler
from panel_bridge.core.services.jwt.jwt_verify import TokenValidator

BEARER_PREFIX = "Bearer "


def extract_bearer_token(request: Request) -> str | None:
    """Token carried by an activation request in ``Authorization: Bearer <token>``."""
    header = request.headers.get("Authorization", "")
    if not header.startswith(BEARER_PREFIX):
        return None
    return header[len(BEARER_PREFIX):].strip() or None


def extract_query_token(request: Request) -> str | None:
    """Token carried by a content request in the ``jwt`` query parameter."""
    return request.query_params.get("jwt") or None


def get_app_dependencies(request: Request) -> ApplicationDependencies:
    return request.app.state.app_dependencies


def get_database_service(request: Request) -> DbSessionService:
    """Get the database service instance."""
    return get_app_dependencies(request).database_service


def get_token_validator(request: Request) -> TokenValidator:
    """Get the partner token validator."""
    return get_app_dependencies(request).token_validator


def get_reconciler(request: Request) -> IdentityReconciler:
    """Get the identity reconciler."""
    return get_app_dependencies(request).reconciler
