# SPDX-License-Identifier: MIT
# Copyright (c) 2026 NEDA Contributors

"""Administrative trust-state engine.

Admins move a principal between verification states and grant or revoke its
Sender/Provider profiles. Each call runs in one unit of work that locks the
target principal row, applies the change and appends the audit record; if
any step fails nothing is written.

Allowed verification transitions:

    pending  -> verified | rejected
    verified -> rejected
    rejected -> verified
"""

from __future__ import annotations

import logging
from typing import Any

from .audit import ADMIN_ACTION_RESOURCE, AdminActionLog
from .db import generate_id
from .exceptions import AlreadyExistsError, InvalidTransitionError, NotFoundError
from .models import (
    PROFILE_TYPES,
    AdminActionType,
    Principal,
    Profile,
    ProfileKind,
    VerificationStatus,
    build_profile,
    utcnow,
)

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[VerificationStatus, frozenset[VerificationStatus]] = {
    VerificationStatus.PENDING: frozenset({VerificationStatus.VERIFIED, VerificationStatus.REJECTED}),
    VerificationStatus.VERIFIED: frozenset({VerificationStatus.REJECTED}),
    VerificationStatus.REJECTED: frozenset({VerificationStatus.VERIFIED}),
}


class TrustStateMachine:
    """Verification and profile transitions, each paired with its audit record."""

    def __init__(self, store: Any, audit_log: AdminActionLog | None = None):
        self.store = store
        self.audit_log = audit_log or AdminActionLog(store)

    def verify_user(self, user_id: str, actor_id: str, reason: str | None = None) -> Principal:
        """Move a pending or rejected principal to verified."""
        return self._transition(user_id, actor_id, VerificationStatus.VERIFIED, AdminActionType.VERIFY_USER, reason)

    def reject_user(self, user_id: str, actor_id: str, reason: str | None = None) -> Principal:
        """Move a pending or verified principal to rejected."""
        return self._transition(user_id, actor_id, VerificationStatus.REJECTED, AdminActionType.REJECT_USER, reason)

    def _transition(
        self,
        user_id: str,
        actor_id: str,
        target: VerificationStatus,
        action: AdminActionType,
        reason: str | None,
    ) -> Principal:
        with self.store.transaction() as uow:
            principal = uow.principals.lock(user_id)
            if principal is None:
                raise NotFoundError("User", user_id)
            current = principal.verification_status
            if target not in ALLOWED_TRANSITIONS[current]:
                raise InvalidTransitionError(current.value, target.value)

            updated = uow.principals.set_verification_status(user_id, target, utcnow())
            self.audit_log.append(
                uow,
                actor_id=actor_id,
                action=action,
                resource_type=ADMIN_ACTION_RESOURCE,
                resource_id=user_id,
                reason=reason,
                details={
                    "action_type": action.value,
                    "target_user_id": user_id,
                    "previous_status": current.value,
                    "new_status": target.value,
                },
            )

        logger.info("User %s %s -> %s by %s", user_id, current.value, target.value, actor_id)
        return updated

    def grant_profile(
        self,
        user_id: str,
        kind: ProfileKind,
        actor_id: str,
        data: dict[str, Any] | None = None,
    ) -> Profile:
        """Create an active profile of ``kind`` for the principal.

        Raises:
            NotFoundError: Unknown user.
            AlreadyExistsError: An active profile of this kind exists.
            ValidationException: ``data`` has unknown fields or out-of-range values.
        """
        attributes = PROFILE_TYPES[kind].validate_attributes(data or {})
        now = utcnow()
        action = AdminActionType.grant(kind)

        with self.store.transaction() as uow:
            if uow.principals.lock(user_id) is None:
                raise NotFoundError("User", user_id)
            existing = uow.profiles.get_active(user_id, kind)
            if existing is not None:
                raise AlreadyExistsError(
                    f"User already has an active {kind.value} profile",
                    existing_id=existing.id,
                )
            # The unique index still guards writers that bypass the row lock
            profile = uow.profiles.add(
                build_profile(
                    kind,
                    id=generate_id(),
                    user_id=user_id,
                    is_active=True,
                    created_at=now,
                    updated_at=now,
                    **attributes,
                )
            )
            self.audit_log.append(
                uow,
                actor_id=actor_id,
                action=action,
                resource_type=ADMIN_ACTION_RESOURCE,
                resource_id=user_id,
                details={
                    "action_type": action.value,
                    "target_user_id": user_id,
                    "profile_id": profile.id,
                    "profile_data": attributes,
                },
            )

        logger.info("Granted %s profile %s to %s by %s", kind.value, profile.id, user_id, actor_id)
        return profile

    def revoke_profile(
        self,
        user_id: str,
        kind: ProfileKind,
        actor_id: str,
        reason: str | None = None,
    ) -> Profile:
        """Deactivate the principal's active profile of ``kind``.

        When the latest profile of that kind is already inactive nothing
        changes, but the attempt is still audited with ``changed = False``.

        Raises:
            NotFoundError: Unknown user, or no profile of this kind ever existed.
        """
        action = AdminActionType.revoke(kind)

        with self.store.transaction() as uow:
            if uow.principals.lock(user_id) is None:
                raise NotFoundError("User", user_id)
            profile = uow.profiles.get_active(user_id, kind)
            changed = profile is not None
            if profile is not None:
                profile = uow.profiles.deactivate(profile.id, utcnow())
            else:
                profile = uow.profiles.latest(user_id, kind)
                if profile is None:
                    raise NotFoundError(f"{kind.value.capitalize()} profile", user_id)

            self.audit_log.append(
                uow,
                actor_id=actor_id,
                action=action,
                resource_type=ADMIN_ACTION_RESOURCE,
                resource_id=user_id,
                reason=reason,
                details={
                    "action_type": action.value,
                    "target_user_id": user_id,
                    "profile_id": profile.id,
                    "changed": changed,
                },
            )

        if changed:
            logger.info("Revoked %s profile %s of %s by %s", kind.value, profile.id, user_id, actor_id)
        return profile
