# SPDX-License-Identifier: MIT
# Copyright (c) 2026 NEDA Contributors

"""Shared helpers for REST endpoint parameter parsing and responses."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from datetime import UTC, datetime
from enum import Enum
from typing import Any, TypeVar
from uuid import UUID

from starlette.requests import Request
from starlette.responses import JSONResponse

from ..core.exceptions import ValidationException

E = TypeVar("E", bound=Enum)
T = TypeVar("T")


def _parse_int(value: str | None, default: int, name: str) -> int:
    """Parse an integer query parameter. Malformed values are a validation error."""
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ValidationException(f"{name} must be an integer", field=name, value=value)


def _parse_uuid(value: str) -> str | None:
    """Canonical form of a UUID path parameter, or None when malformed."""
    try:
        return str(UUID(value))
    except ValueError:
        return None


def _parse_datetime(value: str | None, name: str) -> datetime | None:
    """Parse an ISO-8601 query parameter. Naive values are taken as UTC."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        raise ValidationException(f"{name} must be an ISO-8601 timestamp", field=name, value=value)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def _parse_enum_set(value: str | None, enum_type: type[E], name: str) -> frozenset[E]:
    """Parse a comma-separated list of enum values."""
    if not value:
        return frozenset()
    members = set()
    for item in value.split(","):
        item = item.strip()
        if not item:
            continue
        try:
            members.add(enum_type(item))
        except ValueError:
            raise ValidationException(f"Unknown {name}: {item}", field=name, value=item)
    return frozenset(members)


async def read_json_body(request: Request, required: bool = True) -> dict[str, Any]:
    """Read a JSON object body. An empty body is ``{}`` unless required."""
    raw = await request.body()
    if not raw.strip():
        if required:
            raise json.JSONDecodeError("Empty body", "", 0)
        return {}
    body = json.loads(raw)
    if not isinstance(body, dict):
        raise ValidationException("JSON body must be an object")
    return body


async def run_sync(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run a blocking service call off the event loop."""
    return await asyncio.to_thread(func, *args, **kwargs)


def success_response(data: dict[str, Any], status_code: int = 200) -> JSONResponse:
    """Wrap data in the ``{"success": true, ...}`` envelope."""
    return JSONResponse({"success": True, **data}, status_code=status_code)
