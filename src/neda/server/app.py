# SPDX-License-Identifier: MIT
# Copyright (c) 2026 NEDA Contributors

"""Starlette ASGI application for the NEDA HTTP API.

Services are constructed once and attached to ``app.state``; endpoints read
them from there. ``create_app`` accepts pre-built services so tests can run
the whole HTTP surface over the in-memory store.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from ..core.audit import AdminActionLog
from ..core.catalog import CatalogAdmin
from ..core.config import CoreSettings
from ..core.credentials import CredentialIssuer
from ..core.db import Database
from ..core.logging import configure_logging, correlation_context
from ..core.queries import AdminQueryEngine
from ..core.trust import TrustStateMachine
from ..storage.postgres import PostgresStore
from .admin_endpoints import (
    audit_logs_endpoint,
    dashboard_stats_endpoint,
    disable_catalog_entry_endpoint,
    enable_catalog_entry_endpoint,
    grant_profile_endpoint,
    list_catalog_endpoint,
    list_payment_orders_endpoint,
    list_users_endpoint,
    reject_user_endpoint,
    revoke_profile_endpoint,
    verify_user_endpoint,
)
from .auth import TokenStore
from .config import ServerSettings, get_settings
from .credential_endpoints import (
    create_credential_endpoint,
    delete_credential_endpoint,
    list_credentials_endpoint,
    revoke_credential_endpoint,
    verify_credential_endpoint,
)
from .endpoint_utils import run_sync

logger = logging.getLogger(__name__)

# API version prefix for all REST endpoints
API_V1 = "/api/v1"

CORRELATION_HEADER = "X-Correlation-ID"


@dataclass
class Services:
    """Everything the endpoints need, built over one store handle."""

    credentials: CredentialIssuer
    trust: TrustStateMachine
    audit_log: AdminActionLog
    queries: AdminQueryEngine
    catalog: CatalogAdmin
    database: Database | None = None


def build_services(store: Any, settings: CoreSettings | None = None, database: Database | None = None) -> Services:
    """Wire the core services around an injected store."""
    audit_log = AdminActionLog(store)
    return Services(
        credentials=CredentialIssuer(store, settings=settings, audit_log=audit_log),
        trust=TrustStateMachine(store, audit_log=audit_log),
        audit_log=audit_log,
        queries=AdminQueryEngine(store),
        catalog=CatalogAdmin(store, audit_log=audit_log),
        database=database,
    )


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Bind a correlation id to every request and echo it in the response."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        incoming = request.headers.get(CORRELATION_HEADER)
        with correlation_context(incoming) as cid:
            response = await call_next(request)
        response.headers[CORRELATION_HEADER] = cid
        return response


async def health_endpoint(request: Request) -> JSONResponse:
    """Health check endpoint."""
    settings = request.app.state.settings
    services: Services = request.app.state.services

    health_data: dict[str, Any] = {
        "status": "healthy",
        "server": settings.server_name,
        "version": settings.server_version,
    }

    if services.database is None:
        health_data["database"] = "not configured"
    elif await run_sync(services.database.check_connection):
        health_data["database"] = "connected"
    else:
        health_data["database"] = "unavailable"
        health_data["status"] = "degraded"

    status_code = 200 if health_data["status"] == "healthy" else 503
    return JSONResponse(health_data, status_code=status_code)


@asynccontextmanager
async def lifespan(app: Starlette):
    """Application lifespan handler."""
    settings = app.state.settings
    logger.info("Starting NEDA server on %s:%s", settings.host, settings.port)

    yield

    database = app.state.services.database
    if database is not None:
        database.close()
    logger.info("NEDA server shutting down")


def create_app(
    services: Services,
    session_store: TokenStore,
    settings: ServerSettings | None = None,
) -> Starlette:
    """Create the Starlette ASGI application."""
    settings = settings or get_settings()

    routes = [
        Route(f"{API_V1}/health", health_endpoint, methods=["GET"]),
        # Credentials
        Route(f"{API_V1}/credentials", create_credential_endpoint, methods=["POST"]),
        Route(f"{API_V1}/credentials", list_credentials_endpoint, methods=["GET"]),
        Route(f"{API_V1}/credentials/verify", verify_credential_endpoint, methods=["POST"]),
        Route(f"{API_V1}/credentials/{{id}}/revoke", revoke_credential_endpoint, methods=["POST"]),
        Route(f"{API_V1}/credentials/{{id}}", delete_credential_endpoint, methods=["DELETE"]),
        # Admin console
        Route(f"{API_V1}/admin/users", list_users_endpoint, methods=["GET"]),
        Route(f"{API_V1}/admin/users/{{id}}/verify", verify_user_endpoint, methods=["POST"]),
        Route(f"{API_V1}/admin/users/{{id}}/reject", reject_user_endpoint, methods=["POST"]),
        Route(f"{API_V1}/admin/users/{{id}}/profiles/{{kind}}", grant_profile_endpoint, methods=["POST"]),
        Route(f"{API_V1}/admin/users/{{id}}/profiles/{{kind}}/revoke", revoke_profile_endpoint, methods=["POST"]),
        Route(f"{API_V1}/admin/stats", dashboard_stats_endpoint, methods=["GET"]),
        Route(f"{API_V1}/admin/audit-logs", audit_logs_endpoint, methods=["GET"]),
        Route(f"{API_V1}/admin/orders", list_payment_orders_endpoint, methods=["GET"]),
        Route(f"{API_V1}/admin/catalog/{{kind}}", list_catalog_endpoint, methods=["GET"]),
        Route(f"{API_V1}/admin/catalog/{{kind}}/{{id}}/enable", enable_catalog_entry_endpoint, methods=["POST"]),
        Route(f"{API_V1}/admin/catalog/{{kind}}/{{id}}/disable", disable_catalog_entry_endpoint, methods=["POST"]),
    ]

    middleware = [
        Middleware(
            CORSMiddleware,
            allow_origins=settings.allowed_origins,
            allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
            allow_headers=["Authorization", "Content-Type", CORRELATION_HEADER],
            expose_headers=[CORRELATION_HEADER],
        ),
        Middleware(CorrelationIdMiddleware),
    ]

    app = Starlette(routes=routes, middleware=middleware, lifespan=lifespan)
    app.state.settings = settings
    app.state.services = services
    app.state.session_store = session_store
    app.state.credentials = services.credentials
    app.state.trust = services.trust
    app.state.audit_log = services.audit_log
    app.state.queries = services.queries
    app.state.catalog = services.catalog
    return app


def build_app() -> Starlette:
    """Build the production app: PostgreSQL store and file-backed session tokens."""
    settings = get_settings()
    configure_logging(settings.log_level, log_file=settings.log_file)
    database = Database(settings)
    services = build_services(PostgresStore(database), settings=settings, database=database)
    return create_app(services, TokenStore(settings.token_file), settings=settings)


def run() -> None:
    """Run the server using uvicorn."""
    import uvicorn

    settings = get_settings()
    logger.info("Starting NEDA HTTP server on %s:%s", settings.host, settings.port)

    uvicorn.run(
        "neda.server.app:build_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        log_level="info",
    )


if __name__ == "__main__":
    run()
