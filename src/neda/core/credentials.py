# SPDX-License-Identifier: MIT
# Copyright (c) 2026 NEDA Contributors

"""API credential lifecycle: issue, verify, revoke, delete.

A credential is a public key (``neda_`` + 64 hex chars) paired with a secret
(64 hex chars). The secret is shown to its owner exactly once, in the
``IssuedCredential`` returned by ``create``; only its SHA-256 digest is
stored. Verification failures all raise the same ``InvalidCredentialError``
so callers cannot tell an unknown key from a wrong secret.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from datetime import UTC, datetime
from typing import Any

from .audit import API_KEY_RESOURCE, AdminActionLog
from .config import CoreSettings, get_config
from .db import generate_id
from .exceptions import InvalidCredentialError, NotFoundError, ValidationException
from .models import (
    AdminActionType,
    Credential,
    CredentialSummary,
    IssuedCredential,
    Principal,
    utcnow,
)
from .permissions import PermissionScheme

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 100

# Compared against when the public key is unknown, so every failure costs one digest comparison
_UNKNOWN_KEY_HASH = hashlib.sha256(b"").hexdigest()


def hash_secret(secret: str) -> str:
    """Hash a credential secret using SHA-256."""
    return hashlib.sha256(secret.encode()).hexdigest()


def generate_public_key(prefix: str) -> str:
    """Generate a new public key: prefix + 32 random bytes as hex."""
    return f"{prefix}{secrets.token_hex(32)}"


def generate_secret() -> str:
    """Generate a new secret: 32 random bytes as hex (64 chars)."""
    return secrets.token_hex(32)


def _validate_name(name: str | None) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationException("Credential name is required", field="name")
    if len(cleaned) > MAX_NAME_LENGTH:
        raise ValidationException(f"Credential name must be at most {MAX_NAME_LENGTH} characters", field="name")
    return cleaned


def _validate_expiry(expires_at: datetime | None, now: datetime) -> datetime | None:
    if expires_at is None:
        return None
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=UTC)
    if expires_at <= now:
        raise ValidationException("expires_at must be in the future", field="expires_at", value=expires_at.isoformat())
    return expires_at


class CredentialIssuer:
    """Owns every credential operation against the injected store.

    Args:
        store: Store handle (``PostgresStore`` or ``InMemoryStore``).
        settings: Core settings; only ``api_key_prefix`` is read.
        audit_log: Ledger writer, defaults to one over the same store.
    """

    def __init__(self, store: Any, settings: CoreSettings | None = None, audit_log: AdminActionLog | None = None):
        self.store = store
        self.settings = settings or get_config()
        self.audit_log = audit_log or AdminActionLog(store)

    def create(self, owner_id: str, name: str, expires_at: datetime | None = None) -> IssuedCredential:
        """Issue a new credential with the default permission scheme.

        Returns:
            The issued credential. Its ``secret`` is never retrievable again.

        Raises:
            ValidationException: Empty or over-long name, or an expiry in the past.
            NotFoundError: Unknown owner.
        """
        now = utcnow()
        name = _validate_name(name)
        expires_at = _validate_expiry(expires_at, now)
        secret = generate_secret()

        with self.store.transaction() as uow:
            if uow.principals.get(owner_id) is None:
                raise NotFoundError("User", owner_id)
            credential = uow.credentials.add(
                Credential(
                    id=generate_id(),
                    user_id=owner_id,
                    name=name,
                    public_key=generate_public_key(self.settings.api_key_prefix),
                    secret_hash=hash_secret(secret),
                    permissions=PermissionScheme.default(),
                    is_active=True,
                    expires_at=expires_at,
                    created_at=now,
                    updated_at=now,
                )
            )
            self.audit_log.append(
                uow,
                actor_id=owner_id,
                action=AdminActionType.CREATE_API_KEY,
                resource_type=API_KEY_RESOURCE,
                resource_id=credential.id,
                details={"name": name, "public_key": credential.public_key, "target_user_id": owner_id},
            )

        logger.info("Created credential %s for user %s", credential.id, owner_id)
        return IssuedCredential(credential=credential.summary(), secret=secret)

    def verify(self, public_key: str, secret: str) -> Principal:
        """Authenticate a public key / secret pair and return its owner.

        Raises:
            InvalidCredentialError: For every failure cause, with one message.
        """
        if not public_key or not secret:
            raise InvalidCredentialError()

        now = utcnow()
        with self.store.transaction() as uow:
            credential = uow.credentials.get_active_by_public_key(public_key)
            expected = credential.secret_hash if credential else _UNKNOWN_KEY_HASH
            matches = hmac.compare_digest(expected, hash_secret(secret))
            if credential is None or not matches or credential.is_expired(now):
                logger.info("Credential verification failed")
                raise InvalidCredentialError()

            principal = uow.principals.get(credential.user_id)
            if principal is None:
                raise InvalidCredentialError()
            uow.credentials.touch_last_used(credential.id, now)

        return principal

    def revoke(self, credential_id: str, actor_id: str) -> CredentialSummary:
        """Deactivate a credential. Revoking an inactive credential changes nothing.

        Raises:
            NotFoundError: Unknown credential.
        """
        now = utcnow()
        with self.store.transaction() as uow:
            credential = uow.credentials.get(credential_id)
            if credential is None:
                raise NotFoundError("Credential", credential_id)
            if uow.credentials.deactivate(credential_id, now):
                self.audit_log.append(
                    uow,
                    actor_id=actor_id,
                    action=AdminActionType.REVOKE_API_KEY,
                    resource_type=API_KEY_RESOURCE,
                    resource_id=credential_id,
                    details={"public_key": credential.public_key, "target_user_id": credential.user_id},
                )
                logger.info("Revoked credential %s", credential_id)
                credential.is_active = False
                credential.updated_at = now
        return credential.summary()

    def delete(self, credential_id: str, actor_id: str) -> None:
        """Hard-delete a credential owned by ``actor_id`` or already revoked.

        Raises:
            NotFoundError: Unknown credential.
            ValidationException: Active credential owned by someone else.
        """
        with self.store.transaction() as uow:
            credential = uow.credentials.get(credential_id)
            if credential is None:
                raise NotFoundError("Credential", credential_id)
            if credential.is_active and credential.user_id != actor_id:
                raise ValidationException(
                    "Only the owner may delete an active credential; revoke it first",
                    field="credential_id",
                    value=credential_id,
                )
            uow.credentials.delete(credential_id)
            self.audit_log.append(
                uow,
                actor_id=actor_id,
                action=AdminActionType.DELETE_API_KEY,
                resource_type=API_KEY_RESOURCE,
                resource_id=credential_id,
                details={"public_key": credential.public_key, "target_user_id": credential.user_id},
            )
        logger.info("Deleted credential %s", credential_id)

    def list_for_owner(self, owner_id: str) -> list[CredentialSummary]:
        """Summaries of every credential the owner holds, newest first."""
        with self.store.transaction(read_only=True) as uow:
            return [c.summary() for c in uow.credentials.list_for_owners([owner_id])]

    def get(self, credential_id: str) -> CredentialSummary:
        with self.store.transaction(read_only=True) as uow:
            credential = uow.credentials.get(credential_id)
        if credential is None:
            raise NotFoundError("Credential", credential_id)
        return credential.summary()
