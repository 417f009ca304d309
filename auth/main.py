# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Shorty contributors

"""Authentication Service: federated login through dynamically configured
OIDC providers, with local session JWT minting.

This service provides:
- Public listing of enabled identity providers
- Authorization-code login (authorization URL + callback)
- Account linking and auto-provisioning for federated identities
- Administrative CRUD for provider configurations
"""

import os
import sys
from contextlib import asynccontextmanager
from typing import Any

# Add app directory to path
sys.path.insert(0, os.path.dirname(__file__))

import jwt
import uvicorn
from app import __version__
from app.config import load_auth_config
from app.database import create_db_engine, create_session_factory, init_db
from app.errors import AuthServiceError
from app.schemas import (
    AuthURLRequest,
    CreateProviderRequest,
    UpdateProviderRequest,
    admin_provider_view,
)
from app.service import OIDCService
from fastapi import Body, Depends, FastAPI, HTTPException, Query, Request, Response, status
from fastapi.responses import JSONResponse, RedirectResponse
from prometheus_client import CONTENT_TYPE_LATEST
from shorty_logging import create_logger, create_uvicorn_log_config
from shorty_metrics import create_metrics_collector
from sqlalchemy.exc import SQLAlchemyError
from starlette.concurrency import run_in_threadpool

# Configure structured JSON logging
logger = create_logger(logger_type="stdout", level="INFO", name="auth")

# Configure metrics
metrics = create_metrics_collector()

# Global service instance
auth_service: OIDCService | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage service lifecycle."""
    global auth_service

    # Startup
    logger.info("Starting Authentication Service...")
    config = load_auth_config()
    engine = create_db_engine(config.database_url)
    init_db(engine)
    auth_service = OIDCService(
        config=config,
        session_factory=create_session_factory(engine),
        metrics=metrics,
    )
    # Provider discovery is blocking network I/O
    await run_in_threadpool(auth_service.initialize)
    logger.info("Authentication Service started successfully")

    yield

    # Shutdown
    logger.info("Shutting down Authentication Service...")
    engine.dispose()


# Create FastAPI app
app = FastAPI(
    title="Authentication Service",
    version=__version__,
    description="Federated OIDC login with local JWT session tokens",
    lifespan=lifespan,
)


def _require_service() -> OIDCService:
    if not auth_service:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return auth_service


def _http_error(error: AuthServiceError) -> HTTPException:
    return HTTPException(status_code=error.status_code, detail=error.message)


@app.get("/")
async def root() -> dict[str, Any]:
    """Root endpoint redirects to health check."""
    return await health()


@app.get("/health")
async def health() -> dict[str, Any]:
    """Health check endpoint."""
    stats = auth_service.get_stats() if auth_service is not None else {}

    return {
        "status": "healthy",
        "service": "auth",
        "version": __version__,
        "providers_loaded": stats.get("providers_loaded", 0),
        "logins_total": stats.get("logins_total", 0),
        "callbacks_failed": stats.get("callbacks_failed", 0),
        "accounts_provisioned": stats.get("accounts_provisioned", 0),
    }


@app.get("/readyz")
async def readyz() -> dict[str, str]:
    """Readiness check endpoint."""
    if not auth_service or not auth_service.is_ready():
        raise HTTPException(status_code=503, detail="Service not ready")

    return {"status": "ready"}


@app.get("/metrics")
def prometheus_metrics() -> Response:
    """Prometheus scrape endpoint, available with METRICS_BACKEND=prometheus."""
    render = getattr(metrics, "render", None)
    if render is None:
        raise HTTPException(status_code=404, detail="Metrics backend does not expose /metrics")

    return Response(content=render(), media_type=CONTENT_TYPE_LATEST)


@app.get("/oidc/providers")
def list_providers() -> list[dict[str, Any]]:
    """List enabled identity providers.

    Example Response:
        [{"id": 1, "name": "Okta", "slug": "okta", "enabled": true}]
    """
    service = _require_service()
    return service.list_public_providers()


@app.post("/oidc/providers/{slug}/auth")
def get_auth_url(slug: str, body: AuthURLRequest | None = Body(default=None)) -> dict[str, str]:
    """Return the provider authorization URL that starts a login.

    The optional ``return_url`` receives the session token as a ``token``
    query parameter once the login completes.
    """
    service = _require_service()
    return_url = body.return_url if body else ""

    try:
        auth_url = service.create_authorization_url(slug, return_url=return_url)
    except AuthServiceError as e:
        raise _http_error(e) from e

    return {"auth_url": auth_url}


@app.get("/oidc/callback")
def oidc_callback(
    state: str = Query("", description="Round-trip state from the authorization request"),
    code: str | None = Query(None, description="Authorization code from the provider"),
    error: str | None = Query(None, description="OAuth error code"),
    error_description: str | None = Query(None, description="OAuth error description"),
) -> Response:
    """OIDC callback handler.

    Exchanges the authorization code, verifies the ID token and logs the
    matching local account in. Redirects to the login's return URL with the
    session token when one was given, otherwise returns the token as JSON.
    """
    service = _require_service()

    try:
        result = service.handle_callback(
            state=state,
            code=code,
            error=error,
            error_description=error_description,
        )
    except AuthServiceError as e:
        raise _http_error(e) from e
    except SQLAlchemyError as e:
        logger.exception("Database error during OIDC callback")
        raise HTTPException(status_code=500, detail="Failed to resolve user") from e

    if result.redirect_url:
        return RedirectResponse(url=result.redirect_url, status_code=302)

    return JSONResponse(content=result.to_dict())


def require_admin_role(request: Request) -> dict[str, Any]:
    """Validate that the caller presents an admin session token.

    Returns:
        Decoded token claims

    Raises:
        HTTPException: 401 if the token is missing or invalid, 403 if the
            caller is not an admin
    """
    service = _require_service()

    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer ") or not auth_header[7:].strip():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing or invalid Authorization header")

    token = auth_header[7:].strip()  # Remove "Bearer " prefix

    try:
        claims = service.validate_session_token(token)
    except jwt.InvalidTokenError as e:
        logger.warning("Admin token validation failed", error_type=type(e).__name__)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token") from e

    if claims.get("system_role") != "admin":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")

    return claims


@app.get("/admin/oidc/providers")
def admin_list_providers(claims: dict = Depends(require_admin_role)) -> list[dict[str, Any]]:
    """List every provider configuration (admin only)."""
    service = _require_service()
    return [admin_provider_view(row) for row in service.list_providers_admin()]


@app.post("/admin/oidc/providers", status_code=status.HTTP_201_CREATED)
def admin_create_provider(
    provider_request: CreateProviderRequest,
    claims: dict = Depends(require_admin_role),
) -> dict[str, Any]:
    """Create a provider and initialize it if enabled (admin only).

    Initialization failure does not undo the creation; the response then
    wraps the provider with a ``warning``.
    """
    service = _require_service()

    try:
        row, warning = service.create_provider(**provider_request.model_dump())
    except AuthServiceError as e:
        raise _http_error(e) from e

    logger.info("Admin created OIDC provider", admin_user_id=claims.get("user_id"), provider_id=row.id)
    metrics.increment("admin_provider_changes_total", tags={"action": "create"})

    if warning:
        return {"provider": admin_provider_view(row), "warning": warning}
    return admin_provider_view(row)


@app.put("/admin/oidc/providers/{provider_id}")
def admin_update_provider(
    provider_id: int,
    provider_request: UpdateProviderRequest,
    claims: dict = Depends(require_admin_role),
) -> dict[str, Any]:
    """Partially update a provider and rebuild its runtime client (admin only)."""
    service = _require_service()

    try:
        row, warning = service.update_provider(provider_id, provider_request.changes())
    except AuthServiceError as e:
        raise _http_error(e) from e

    logger.info("Admin updated OIDC provider", admin_user_id=claims.get("user_id"), provider_id=provider_id)
    metrics.increment("admin_provider_changes_total", tags={"action": "update"})

    response = admin_provider_view(row)
    if warning:
        response["warning"] = warning
    return response


@app.delete("/admin/oidc/providers/{provider_id}")
def admin_delete_provider(provider_id: int, claims: dict = Depends(require_admin_role)) -> dict[str, str]:
    """Delete a provider and its identity links (admin only)."""
    service = _require_service()

    try:
        service.delete_provider(provider_id)
    except AuthServiceError as e:
        raise _http_error(e) from e

    logger.info("Admin deleted OIDC provider", admin_user_id=claims.get("user_id"), provider_id=provider_id)
    metrics.increment("admin_provider_changes_total", tags={"action": "delete"})

    return {"message": "Provider deleted"}


if __name__ == "__main__":
    # Run with uvicorn
    port = int(os.getenv("PORT", "8080"))
    host = os.getenv("HOST", "0.0.0.0")
    log_level = os.getenv("LOG_LEVEL", "INFO")

    uvicorn.run(
        "main:app",
        host=host,
        port=port,
        log_config=create_uvicorn_log_config("auth", log_level),
        access_log=True,
    )
