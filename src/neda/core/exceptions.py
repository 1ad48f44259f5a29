# SPDX-License-Identifier: MIT
# Copyright (c) 2026 NEDA Contributors

"""Exception hierarchy for NEDA core.

Every error a core operation raises derives from ``NedaException`` and carries
a structured ``details`` dict so the HTTP layer can render a precise message.
"""

from __future__ import annotations

from typing import Any


class NedaException(Exception):  # noqa: N818
    """Base exception for all NEDA errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ValidationException(NedaException):
    """Exception for validation errors.

    Raised when:
    - A required field is missing
    - A field value is out of range (e.g. fee_percent outside [0, 100])
    - Unknown fields are supplied for a profile kind
    """

    def __init__(self, message: str, field: str | None = None, value: Any = None):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        super().__init__(message, details)
        self.field = field
        self.value = value


class InvalidTransitionError(ValidationException):
    """A verification-status transition that the state machine does not allow."""

    def __init__(self, current: str, target: str):
        super().__init__(f"Cannot transition verification status from {current} to {target}", field="verification_status", value=current)
        self.details["target"] = target
        self.current = current
        self.target = target


class ConfigException(NedaException):
    """Exception for configuration errors."""

    def __init__(self, message: str, missing_vars: list[str] | None = None):
        details = {}
        if missing_vars:
            details["missing_vars"] = missing_vars
        super().__init__(message, details)
        self.missing_vars = missing_vars or []


class NotFoundError(NedaException):
    """Exception for lookup misses on credentials, profiles, principals or records."""

    def __init__(self, resource_type: str, resource_id: str):
        message = f"{resource_type} not found: {resource_id}"
        details = {
            "resource_type": resource_type,
            "resource_id": resource_id,
        }
        super().__init__(message, details)
        self.resource_type = resource_type
        self.resource_id = resource_id


class AlreadyExistsError(NedaException):
    """Exception raised when granting a profile kind that is already active."""

    def __init__(self, message: str, existing_id: str | None = None):
        details = {}
        if existing_id:
            details["existing_id"] = existing_id
        super().__init__(message, details)
        self.existing_id = existing_id


class InvalidCredentialError(NedaException):
    """Public key / secret pair did not authenticate.

    The message is identical for every cause (unknown key, inactive key,
    expired key, wrong secret).
    """

    def __init__(self) -> None:
        super().__init__("Invalid API credentials")


class UpstreamFailure(NedaException):
    """The backing store is unavailable or timed out."""

    def __init__(self, message: str, operation: str | None = None):
        details = {}
        if operation:
            details["operation"] = operation
        super().__init__(message, details)
        self.operation = operation
