# SPDX-License-Identifier: MIT
# Copyright (c) 2026 NEDA Contributors

"""Admin console REST endpoints.

All endpoints require the ``admin`` scope. The acting admin id recorded in
the audit ledger is the session principal.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from starlette.requests import Request
from starlette.responses import JSONResponse

from ..core.exceptions import NedaException, ValidationException
from ..core.models import (
    AuditFilter,
    OrderFilter,
    OrderSort,
    Pagination,
    PrincipalFilter,
    PrincipalSort,
    ProfileKind,
    VerificationStatus,
    parse_catalog_kind,
    parse_profile_kind,
)
from .auth import ADMIN_SCOPE
from .auth_helpers import AuthenticatedClient, authenticate, require_scope
from .endpoint_utils import (
    _parse_datetime,
    _parse_enum_set,
    _parse_int,
    _parse_uuid,
    read_json_body,
    run_sync,
    success_response,
)
from .errors import exception_response, internal_error, invalid_format_error, invalid_json_error, validation_error

logger = logging.getLogger(__name__)

DEFAULT_PAGE_LIMIT = 50


def _require_admin(request: Request) -> tuple[JSONResponse | None, AuthenticatedClient | None]:
    client = authenticate(request)
    if isinstance(client, JSONResponse):
        return client, None
    if err := require_scope(client, ADMIN_SCOPE):
        return err, None
    return None, client


def _pagination(request: Request) -> Pagination:
    params = request.query_params
    return Pagination(
        page=_parse_int(params.get("page"), 1, "page"),
        limit=_parse_int(params.get("limit"), DEFAULT_PAGE_LIMIT, "limit"),
    )


async def _optional_body(request: Request) -> dict:
    return await read_json_body(request, required=False)


def _reason(body: dict[str, Any]) -> str | None:
    reason = body.get("reason")
    if reason is not None and not isinstance(reason, str):
        raise ValidationException("reason must be a string", field="reason")
    return reason


def _parse_str_set(value: str | None) -> frozenset[str]:
    if not value:
        return frozenset()
    return frozenset(item.strip() for item in value.split(",") if item.strip())


# =============================================================================
# VERIFICATION STATUS
# =============================================================================


async def _transition_endpoint(request: Request, action: str) -> JSONResponse:
    err, client = _require_admin(request)
    if err:
        return err

    user_id = _parse_uuid(request.path_params["id"])
    if user_id is None:
        return invalid_format_error("id", "must be valid UUID")

    try:
        body = await _optional_body(request)
        trust = request.app.state.trust
        handler = trust.verify_user if action == "verify" else trust.reject_user
        principal = await run_sync(handler, user_id, client.principal_id, _reason(body))
        return success_response({"user": principal.to_dict()})
    except json.JSONDecodeError:
        return invalid_json_error()
    except NedaException as e:
        return exception_response(e)
    except Exception:
        logger.exception("Error applying %s to user %s", action, user_id)
        return internal_error()


async def verify_user_endpoint(request: Request) -> JSONResponse:
    """POST /api/v1/admin/users/{id}/verify {reason?}"""
    return await _transition_endpoint(request, "verify")


async def reject_user_endpoint(request: Request) -> JSONResponse:
    """POST /api/v1/admin/users/{id}/reject {reason?}"""
    return await _transition_endpoint(request, "reject")


# =============================================================================
# PROFILES
# =============================================================================


async def grant_profile_endpoint(request: Request) -> JSONResponse:
    """POST /api/v1/admin/users/{id}/profiles/{kind} {profile_data?}"""
    err, client = _require_admin(request)
    if err:
        return err

    user_id = _parse_uuid(request.path_params["id"])
    if user_id is None:
        return invalid_format_error("id", "must be valid UUID")

    try:
        kind = parse_profile_kind(request.path_params["kind"])
        body = await _optional_body(request)
        profile_data = body.get("profile_data") or {}
        if not isinstance(profile_data, dict):
            return validation_error("profile_data must be an object")
        profile = await run_sync(request.app.state.trust.grant_profile, user_id, kind, client.principal_id, profile_data)
        return success_response({"profile": profile.to_dict()}, status_code=201)
    except json.JSONDecodeError:
        return invalid_json_error()
    except NedaException as e:
        return exception_response(e)
    except Exception:
        logger.exception("Error granting profile to user %s", user_id)
        return internal_error()


async def revoke_profile_endpoint(request: Request) -> JSONResponse:
    """POST /api/v1/admin/users/{id}/profiles/{kind}/revoke {reason?}"""
    err, client = _require_admin(request)
    if err:
        return err

    user_id = _parse_uuid(request.path_params["id"])
    if user_id is None:
        return invalid_format_error("id", "must be valid UUID")

    try:
        kind: ProfileKind = parse_profile_kind(request.path_params["kind"])
        body = await _optional_body(request)
        profile = await run_sync(
            request.app.state.trust.revoke_profile, user_id, kind, client.principal_id, _reason(body)
        )
        return success_response({"profile": profile.to_dict()})
    except json.JSONDecodeError:
        return invalid_json_error()
    except NedaException as e:
        return exception_response(e)
    except Exception:
        logger.exception("Error revoking profile of user %s", user_id)
        return internal_error()


# =============================================================================
# CATALOG
# =============================================================================


async def list_catalog_endpoint(request: Request) -> JSONResponse:
    """GET /api/v1/admin/catalog/{kind} (kind: tokens | currencies)"""
    err, _ = _require_admin(request)
    if err:
        return err

    try:
        kind = parse_catalog_kind(request.path_params["kind"])
        entries = await run_sync(request.app.state.catalog.list_entries, kind)
        return success_response({"data": [e.to_dict() for e in entries], "count": len(entries)})
    except NedaException as e:
        return exception_response(e)
    except Exception:
        logger.exception("Error listing catalog %s", request.path_params["kind"])
        return internal_error()


async def _catalog_toggle_endpoint(request: Request, enabled: bool) -> JSONResponse:
    err, client = _require_admin(request)
    if err:
        return err

    entry_id = _parse_uuid(request.path_params["id"])
    if entry_id is None:
        return invalid_format_error("id", "must be valid UUID")

    try:
        kind = parse_catalog_kind(request.path_params["kind"])
        body = await _optional_body(request)
        entry = await run_sync(
            request.app.state.catalog.set_enabled, kind, entry_id, enabled, client.principal_id, _reason(body)
        )
        return success_response({"entry": entry.to_dict()})
    except json.JSONDecodeError:
        return invalid_json_error()
    except NedaException as e:
        return exception_response(e)
    except Exception:
        logger.exception("Error updating catalog entry %s", entry_id)
        return internal_error()


async def enable_catalog_entry_endpoint(request: Request) -> JSONResponse:
    """POST /api/v1/admin/catalog/{kind}/{id}/enable {reason?}"""
    return await _catalog_toggle_endpoint(request, True)


async def disable_catalog_entry_endpoint(request: Request) -> JSONResponse:
    """POST /api/v1/admin/catalog/{kind}/{id}/disable {reason?}"""
    return await _catalog_toggle_endpoint(request, False)


# =============================================================================
# READ SIDE
# =============================================================================


async def list_users_endpoint(request: Request) -> JSONResponse:
    """GET /api/v1/admin/users

    Query params: verification_status, business_type (comma-separated),
    date_from, date_to, search, page, limit, sort_by, sort_order.
    """
    err, _ = _require_admin(request)
    if err:
        return err

    params = request.query_params
    try:
        filters = PrincipalFilter(
            verification_status=_parse_enum_set(params.get("verification_status"), VerificationStatus, "verification_status"),
            business_type=_parse_enum_set(params.get("business_type"), ProfileKind, "business_type"),
            date_from=_parse_datetime(params.get("date_from"), "date_from"),
            date_to=_parse_datetime(params.get("date_to"), "date_to"),
            search=params.get("search") or None,
        )
        sort = PrincipalSort(
            sort_by=params.get("sort_by") or "created_at",
            sort_order=(params.get("sort_order") or "desc").lower(),
        )
        page = await run_sync(request.app.state.queries.list_principals, filters, _pagination(request), sort)
        return success_response(page.to_dict())
    except NedaException as e:
        return exception_response(e)
    except Exception:
        logger.exception("Error listing users")
        return internal_error()


async def list_payment_orders_endpoint(request: Request) -> JSONResponse:
    """GET /api/v1/admin/orders?status=&date_from=&date_to=&page=&limit=&sort_by=&sort_order="""
    err, _ = _require_admin(request)
    if err:
        return err

    params = request.query_params
    try:
        filters = OrderFilter(
            status=_parse_str_set(params.get("status")),
            date_from=_parse_datetime(params.get("date_from"), "date_from"),
            date_to=_parse_datetime(params.get("date_to"), "date_to"),
        )
        sort = OrderSort(
            sort_by=params.get("sort_by") or "created_at",
            sort_order=(params.get("sort_order") or "desc").lower(),
        )
        page = await run_sync(request.app.state.queries.list_payment_orders, filters, _pagination(request), sort)
        return success_response(page.to_dict())
    except NedaException as e:
        return exception_response(e)
    except Exception:
        logger.exception("Error listing payment orders")
        return internal_error()


async def dashboard_stats_endpoint(request: Request) -> JSONResponse:
    """GET /api/v1/admin/stats"""
    err, _ = _require_admin(request)
    if err:
        return err

    try:
        stats = await run_sync(request.app.state.queries.dashboard_stats)
        return success_response({"stats": stats.to_dict()})
    except NedaException as e:
        return exception_response(e)
    except Exception:
        logger.exception("Error computing dashboard stats")
        return internal_error()


async def audit_logs_endpoint(request: Request) -> JSONResponse:
    """GET /api/v1/admin/audit-logs?date_from=&date_to=&search=&actor_id=&target_id=&page=&limit="""
    err, _ = _require_admin(request)
    if err:
        return err

    params = request.query_params
    try:
        filters = AuditFilter(
            date_from=_parse_datetime(params.get("date_from"), "date_from"),
            date_to=_parse_datetime(params.get("date_to"), "date_to"),
            search=params.get("search") or None,
            actor_id=params.get("actor_id") or None,
            target_id=params.get("target_id") or None,
        )
        page = await run_sync(request.app.state.audit_log.query, filters, _pagination(request))
        return success_response(page.to_dict())
    except NedaException as e:
        return exception_response(e)
    except Exception:
        logger.exception("Error querying audit logs")
        return internal_error()
