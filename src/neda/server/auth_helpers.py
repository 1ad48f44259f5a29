# SPDX-License-Identifier: MIT
# Copyright (c) 2026 NEDA Contributors

"""Authentication and authorization helpers for REST endpoints.

Provides authenticate() and require_scope() for use by endpoint handlers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from starlette.requests import Request
from starlette.responses import JSONResponse

from .errors import AUTH_MISSING_TOKEN, FORBIDDEN_INSUFFICIENT_PERMISSION, auth_error, forbidden_error

logger = logging.getLogger(__name__)


@dataclass
class AuthenticatedClient:
    """The principal behind a verified session token."""

    principal_id: str
    scopes: list[str] = field(default_factory=list)


def authenticate(request: Request) -> AuthenticatedClient | JSONResponse:
    """Authenticate a request. Returns client on success, error JSONResponse on failure.

    Usage in endpoints::

        client = authenticate(request)
        if isinstance(client, JSONResponse):
            return client
        # client is AuthenticatedClient
    """
    auth_header = request.headers.get("Authorization", "")

    if not auth_header.startswith("Bearer "):
        return auth_error("Missing or invalid authentication token", code=AUTH_MISSING_TOKEN)

    token = request.app.state.session_store.verify(auth_header)
    if token is None:
        return auth_error("Invalid authentication token")

    return AuthenticatedClient(principal_id=token.principal_id, scopes=list(token.scopes))


def require_scope(client: AuthenticatedClient, scope: str) -> JSONResponse | None:
    """Check if client has the required scope. Returns 403 response or None."""
    if scope in client.scopes:
        return None

    logger.warning("Principal %s lacks required scope '%s'", client.principal_id, scope)
    return forbidden_error(
        f"Insufficient scope. Required: {scope}",
        code=FORBIDDEN_INSUFFICIENT_PERMISSION,
    )
