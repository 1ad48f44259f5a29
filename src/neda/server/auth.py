# SPDX-License-Identifier: MIT
# Copyright (c) 2026 NEDA Contributors

"""Session token authentication for the HTTP API.

Session tokens stand in for the dashboard's login sessions. Each token maps
to one principal id and a list of scopes; the ``admin`` scope unlocks the
admin console endpoints. Tokens are stored hashed in a JSON file.
"""

from __future__ import annotations

import hashlib
import json
import logging
import secrets
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

# Token prefix for identification
TOKEN_PREFIX = "nst_"

USER_SCOPE = "credentials"
ADMIN_SCOPE = "admin"


@dataclass
class SessionToken:
    """A stored session token."""

    token_hash: str
    principal_id: str
    scopes: list[str] = field(default_factory=lambda: [USER_SCOPE])
    expires_at: float | None = None
    created_at: float = field(default_factory=time.time)
    description: str = ""

    def is_expired(self) -> bool:
        """Check if token is expired."""
        if self.expires_at is None:
            return False
        return time.time() > self.expires_at

    def has_scope(self, scope: str) -> bool:
        """Check if token has a specific scope."""
        return scope in self.scopes

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for storage."""
        return {
            "token_hash": self.token_hash,
            "principal_id": self.principal_id,
            "scopes": self.scopes,
            "expires_at": self.expires_at,
            "created_at": self.created_at,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionToken:
        """Create from dictionary."""
        return cls(
            token_hash=data["token_hash"],
            principal_id=data["principal_id"],
            scopes=data.get("scopes", [USER_SCOPE]),
            expires_at=data.get("expires_at"),
            created_at=data.get("created_at", time.time()),
            description=data.get("description", ""),
        )


def hash_token(token: str) -> str:
    """Hash a token using SHA-256."""
    return hashlib.sha256(token.encode()).hexdigest()


def generate_token() -> str:
    """Generate a new secure token."""
    # 32 bytes of randomness, hex encoded (64 chars)
    return f"{TOKEN_PREFIX}{secrets.token_hex(32)}"


class TokenStore:
    """File-based session token storage with hashed tokens."""

    def __init__(self, token_file: Path):
        self.token_file = Path(token_file)
        self._tokens: dict[str, SessionToken] = {}  # hash -> token
        self._load()

    def _load(self) -> None:
        """Load tokens from file."""
        if not self.token_file.exists():
            self._tokens = {}
            return

        try:
            with open(self.token_file) as f:
                data = json.load(f)
            self._tokens = {t["token_hash"]: SessionToken.from_dict(t) for t in data.get("tokens", [])}
            logger.info("Loaded %d session tokens from %s", len(self._tokens), self.token_file)
        except (OSError, json.JSONDecodeError, KeyError, ValueError) as e:
            logger.error("Failed to load session tokens from %s: %s", self.token_file, e)
            self._tokens = {}

    def _save(self) -> None:
        """Save tokens to file."""
        self.token_file.parent.mkdir(parents=True, exist_ok=True)

        data = {"tokens": [t.to_dict() for t in self._tokens.values()]}
        with open(self.token_file, "w") as f:
            json.dump(data, f, indent=2)
        # Owner read/write only
        self.token_file.chmod(0o600)

    def create(
        self,
        principal_id: str,
        description: str = "",
        scopes: list[str] | None = None,
        expires_at: float | None = None,
    ) -> str:
        """Create a new token and return the raw token (shown only once).

        Args:
            principal_id: Principal the token authenticates as
            description: Human-readable description
            scopes: Permission scopes (default: ["credentials"])
            expires_at: Optional expiration timestamp

        Returns:
            The raw token string (must be saved by caller, not stored)
        """
        raw_token = generate_token()
        token_hash = hash_token(raw_token)

        self._tokens[token_hash] = SessionToken(
            token_hash=token_hash,
            principal_id=principal_id,
            scopes=scopes or [USER_SCOPE],
            expires_at=expires_at,
            description=description,
        )
        self._save()

        logger.info("Created session token for principal %s", principal_id)
        return raw_token

    def verify(self, raw_token: str) -> SessionToken | None:
        """Return the stored token for a raw bearer value, or None if invalid or expired."""
        if not raw_token:
            return None

        if raw_token.startswith("Bearer "):
            raw_token = raw_token[7:]

        token = self._tokens.get(hash_token(raw_token))
        if token is None:
            logger.warning("Session token not found")
            return None

        if token.is_expired():
            logger.debug("Session token for principal %s is expired", token.principal_id)
            return None

        return token

    def revoke(self, token_hash: str) -> bool:
        """Revoke a token by its hash. Returns True if it existed."""
        token = self._tokens.pop(token_hash, None)
        if token is None:
            return False
        self._save()
        logger.info("Revoked session token for principal %s", token.principal_id)
        return True

    def list_tokens(self) -> list[SessionToken]:
        return list(self._tokens.values())

    def get_by_principal(self, principal_id: str) -> list[SessionToken]:
        return [t for t in self._tokens.values() if t.principal_id == principal_id]
