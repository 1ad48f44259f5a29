# SPDX-License-Identifier: MIT
# Copyright (c) 2026 NEDA Contributors

"""Static permission scopes attached to API credentials.

A scheme is a capability matrix of domain x action. It is fixed when a
credential is created; there is no operation that changes it afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .exceptions import ValidationException

DOMAINS = ("transactions", "profile", "api_keys", "webhooks")
ACTIONS = ("read", "write", "delete")

_DEFAULT_GRANTS: dict[str, frozenset[str]] = {
    "transactions": frozenset({"read", "write"}),
    "profile": frozenset({"read"}),
    "api_keys": frozenset({"read"}),
    "webhooks": frozenset({"read", "write"}),
}


def _check(domain: str, action: str | None = None) -> None:
    if domain not in DOMAINS:
        raise ValidationException(f"Unknown permission domain: {domain}", field="permissions", value=domain)
    if action is not None and action not in ACTIONS:
        raise ValidationException(f"Unknown permission action: {action}", field="permissions", value=action)


@dataclass(frozen=True)
class PermissionScheme:
    """Immutable domain x {read, write, delete} matrix."""

    grants: tuple[tuple[str, frozenset[str]], ...]

    @classmethod
    def default(cls) -> PermissionScheme:
        """The scheme every new credential receives."""
        return cls(grants=tuple((d, _DEFAULT_GRANTS.get(d, frozenset())) for d in DOMAINS))

    def allows(self, domain: str, action: str) -> bool:
        """Check whether ``action`` is granted on ``domain``."""
        _check(domain, action)
        return action in dict(self.grants).get(domain, frozenset())

    def to_dict(self) -> dict[str, dict[str, bool]]:
        """Serialize to the stored JSON shape: ``{domain: {action: bool}}``."""
        granted = dict(self.grants)
        return {d: {a: a in granted.get(d, frozenset()) for a in ACTIONS} for d in DOMAINS}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PermissionScheme:
        """Parse the stored JSON shape. Missing entries are treated as not granted."""
        grants: dict[str, set[str]] = {d: set() for d in DOMAINS}
        for domain, actions in (data or {}).items():
            _check(domain)
            if not isinstance(actions, dict):
                raise ValidationException(f"Permissions for {domain} must be a mapping", field="permissions")
            for action, allowed in actions.items():
                _check(domain, action)
                if allowed:
                    grants[domain].add(action)
        return cls(grants=tuple((d, frozenset(grants[d])) for d in DOMAINS))
