# SPDX-License-Identifier: MIT
# Copyright (c) 2026 NEDA Contributors

"""Credential (API key) REST endpoints.

Session principals manage their own keys. ``POST /credentials/verify`` takes
no session: it is how an integration proves a public key / secret pair.
"""

from __future__ import annotations

import json
import logging

from starlette.requests import Request
from starlette.responses import JSONResponse

from ..core.exceptions import NedaException
from .auth import ADMIN_SCOPE, USER_SCOPE
from .auth_helpers import AuthenticatedClient, authenticate, require_scope
from .endpoint_utils import _parse_datetime, _parse_uuid, read_json_body, run_sync, success_response
from .errors import (
    exception_response,
    internal_error,
    invalid_format_error,
    invalid_json_error,
    missing_field_error,
    not_found_error,
)

logger = logging.getLogger(__name__)


def _require_user(request: Request) -> tuple[JSONResponse | None, AuthenticatedClient | None]:
    client = authenticate(request)
    if isinstance(client, JSONResponse):
        return client, None
    if err := require_scope(client, USER_SCOPE):
        return err, None
    return None, client


async def _visible_credential(request: Request, client: AuthenticatedClient, credential_id: str):
    """The credential if the client owns it or is an admin, else None."""
    credential = await run_sync(request.app.state.credentials.get, credential_id)
    if credential.user_id != client.principal_id and ADMIN_SCOPE not in client.scopes:
        return None
    return credential


async def create_credential_endpoint(request: Request) -> JSONResponse:
    """POST /api/v1/credentials: issue a key. The secret is in this response only."""
    err, client = _require_user(request)
    if err:
        return err

    try:
        body = await read_json_body(request)
    except json.JSONDecodeError:
        return invalid_json_error()
    except NedaException as e:
        return exception_response(e)

    name = body.get("name")
    if not name:
        return missing_field_error("name")

    try:
        expires_at = _parse_datetime(body.get("expires_at"), "expires_at")
        issued = await run_sync(request.app.state.credentials.create, client.principal_id, name, expires_at)
        return success_response(issued.to_dict(), status_code=201)
    except NedaException as e:
        return exception_response(e)
    except Exception:
        logger.exception("Error creating credential")
        return internal_error()


async def list_credentials_endpoint(request: Request) -> JSONResponse:
    """GET /api/v1/credentials: the session principal's keys, newest first."""
    err, client = _require_user(request)
    if err:
        return err

    try:
        summaries = await run_sync(request.app.state.credentials.list_for_owner, client.principal_id)
        return success_response({"credentials": [s.to_dict() for s in summaries], "count": len(summaries)})
    except NedaException as e:
        return exception_response(e)
    except Exception:
        logger.exception("Error listing credentials")
        return internal_error()


async def revoke_credential_endpoint(request: Request) -> JSONResponse:
    """POST /api/v1/credentials/{id}/revoke: deactivate a key (idempotent)."""
    err, client = _require_user(request)
    if err:
        return err

    credential_id = _parse_uuid(request.path_params["id"])
    if credential_id is None:
        return invalid_format_error("id", "must be valid UUID")

    try:
        if await _visible_credential(request, client, credential_id) is None:
            return not_found_error("Credential")
        summary = await run_sync(request.app.state.credentials.revoke, credential_id, client.principal_id)
        return success_response({"credential": summary.to_dict()})
    except NedaException as e:
        return exception_response(e)
    except Exception:
        logger.exception("Error revoking credential %s", credential_id)
        return internal_error()


async def delete_credential_endpoint(request: Request) -> JSONResponse:
    """DELETE /api/v1/credentials/{id}: hard-delete an owned or revoked key."""
    err, client = _require_user(request)
    if err:
        return err

    credential_id = _parse_uuid(request.path_params["id"])
    if credential_id is None:
        return invalid_format_error("id", "must be valid UUID")

    try:
        if await _visible_credential(request, client, credential_id) is None:
            return not_found_error("Credential")
        await run_sync(request.app.state.credentials.delete, credential_id, client.principal_id)
        return success_response({"deleted": credential_id})
    except NedaException as e:
        return exception_response(e)
    except Exception:
        logger.exception("Error deleting credential %s", credential_id)
        return internal_error()


async def verify_credential_endpoint(request: Request) -> JSONResponse:
    """POST /api/v1/credentials/verify: check a public key / secret pair."""
    try:
        body = await read_json_body(request)
    except json.JSONDecodeError:
        return invalid_json_error()
    except NedaException as e:
        return exception_response(e)

    public_key = body.get("public_key")
    secret = body.get("secret")
    if not public_key:
        return missing_field_error("public_key")
    if not secret:
        return missing_field_error("secret")

    try:
        principal = await run_sync(request.app.state.credentials.verify, public_key, secret)
        return success_response({"principal_id": principal.id})
    except NedaException as e:
        return exception_response(e)
    except Exception:
        logger.exception("Error verifying credential")
        return internal_error()
