"""Tests for neda.core.trust.TrustStateMachine."""

from __future__ import annotations

import threading
from unittest.mock import patch

import pytest

from neda.core.exceptions import AlreadyExistsError, InvalidTransitionError, NotFoundError, ValidationException
from neda.core.models import ProfileKind, ProviderProfile, SenderProfile, VerificationStatus
from neda.core.trust import ALLOWED_TRANSITIONS

MISSING_USER = "00000000-0000-0000-0000-0000000000ff"


def _status(store, user_id):
    with store.transaction(read_only=True) as uow:
        return uow.principals.get(user_id).verification_status


# ============================================================================
# Verification transitions
# ============================================================================


class TestVerificationTransitions:
    def test_transition_table(self):
        assert ALLOWED_TRANSITIONS[VerificationStatus.PENDING] == {VerificationStatus.VERIFIED, VerificationStatus.REJECTED}
        assert ALLOWED_TRANSITIONS[VerificationStatus.VERIFIED] == {VerificationStatus.REJECTED}
        assert ALLOWED_TRANSITIONS[VerificationStatus.REJECTED] == {VerificationStatus.VERIFIED}

    def test_verify_pending(self, trust, make_principal, admin_id, store):
        user = make_principal()
        updated = trust.verify_user(user.id, admin_id, "documents checked")
        assert updated.verification_status is VerificationStatus.VERIFIED
        assert _status(store, user.id) is VerificationStatus.VERIFIED

    def test_reject_then_verify_again(self, trust, make_principal, admin_id):
        user = make_principal()
        trust.reject_user(user.id, admin_id)
        assert trust.verify_user(user.id, admin_id).verification_status is VerificationStatus.VERIFIED

    def test_reject_verified(self, trust, make_principal, admin_id):
        user = make_principal(status=VerificationStatus.VERIFIED)
        assert trust.reject_user(user.id, admin_id).verification_status is VerificationStatus.REJECTED

    @pytest.mark.parametrize(
        "status,method",
        [
            (VerificationStatus.VERIFIED, "verify_user"),
            (VerificationStatus.REJECTED, "reject_user"),
        ],
    )
    def test_same_state_is_rejected(self, trust, make_principal, admin_id, audit_records, store, status, method):
        user = make_principal(status=status)
        with pytest.raises(InvalidTransitionError) as exc_info:
            getattr(trust, method)(user.id, admin_id)
        assert exc_info.value.current == status.value
        assert _status(store, user.id) is status
        assert audit_records() == []

    def test_unknown_user(self, trust, admin_id, audit_records):
        with pytest.raises(NotFoundError):
            trust.verify_user(MISSING_USER, admin_id)
        assert audit_records() == []

    def test_audit_record(self, trust, make_principal, admin_id, audit_records):
        user = make_principal()
        trust.verify_user(user.id, admin_id, "kyb passed")

        (record,) = audit_records()
        assert record.action == "verify_user"
        assert record.actor_id == admin_id
        assert record.resource_type == "admin_action"
        assert record.resource_id == user.id
        assert record.reason == "kyb passed"
        assert record.details["previous_status"] == "pending"
        assert record.details["new_status"] == "verified"
        assert record.details["target_user_id"] == user.id

    def test_audit_failure_rolls_back_status(self, trust, make_principal, admin_id, store):
        user = make_principal()
        with patch.object(trust.audit_log, "append", side_effect=RuntimeError("ledger down")):
            with pytest.raises(RuntimeError):
                trust.verify_user(user.id, admin_id)
        assert _status(store, user.id) is VerificationStatus.PENDING


# ============================================================================
# Profiles
# ============================================================================


class TestGrantProfile:
    def test_grant_sender(self, trust, make_principal, admin_id):
        user = make_principal()
        profile = trust.grant_profile(user.id, ProfileKind.SENDER, admin_id, {"fee_percent": "1.5", "is_partner": True})
        assert isinstance(profile, SenderProfile)
        assert profile.is_active
        assert profile.fee_percent == 1.5
        assert profile.is_partner is True

    def test_grant_provider_defaults(self, trust, make_principal, admin_id):
        user = make_principal(business_type=ProfileKind.PROVIDER)
        profile = trust.grant_profile(user.id, ProfileKind.PROVIDER, admin_id)
        assert isinstance(profile, ProviderProfile)
        assert profile.provision_mode == "auto"
        assert profile.visibility_mode == "public"

    def test_both_kinds_may_coexist(self, trust, make_principal, admin_id):
        user = make_principal()
        trust.grant_profile(user.id, ProfileKind.SENDER, admin_id)
        trust.grant_profile(user.id, ProfileKind.PROVIDER, admin_id)

    def test_second_active_grant_conflicts(self, trust, make_principal, admin_id, audit_records):
        user = make_principal()
        first = trust.grant_profile(user.id, ProfileKind.SENDER, admin_id)
        with pytest.raises(AlreadyExistsError) as exc_info:
            trust.grant_profile(user.id, ProfileKind.SENDER, admin_id)
        assert exc_info.value.existing_id == first.id
        assert len(audit_records()) == 1

    def test_regrant_after_revoke(self, trust, make_principal, admin_id):
        user = make_principal()
        first = trust.grant_profile(user.id, ProfileKind.SENDER, admin_id)
        trust.revoke_profile(user.id, ProfileKind.SENDER, admin_id)
        second = trust.grant_profile(user.id, ProfileKind.SENDER, admin_id)
        assert second.id != first.id
        assert second.is_active

    def test_unknown_field_rejected(self, trust, make_principal, admin_id):
        user = make_principal()
        with pytest.raises(ValidationException, match="trading_name"):
            trust.grant_profile(user.id, ProfileKind.SENDER, admin_id, {"trading_name": "x"})

    def test_fee_out_of_range(self, trust, make_principal, admin_id, store):
        user = make_principal()
        with pytest.raises(ValidationException):
            trust.grant_profile(user.id, ProfileKind.SENDER, admin_id, {"fee_percent": 101})
        with store.transaction(read_only=True) as uow:
            assert uow.profiles.get_active(user.id, ProfileKind.SENDER) is None

    def test_unknown_user(self, trust, admin_id):
        with pytest.raises(NotFoundError):
            trust.grant_profile(MISSING_USER, ProfileKind.SENDER, admin_id)

    def test_audit_record(self, trust, make_principal, admin_id, audit_records):
        user = make_principal()
        profile = trust.grant_profile(user.id, ProfileKind.PROVIDER, admin_id, {"trading_name": "FX Desk"})
        (record,) = audit_records()
        assert record.action == "grant_provider_profile"
        assert record.details["profile_id"] == profile.id
        assert record.details["profile_data"] == {"trading_name": "FX Desk"}

    def test_audit_failure_leaves_no_profile(self, trust, make_principal, admin_id, store):
        user = make_principal()
        with patch.object(trust.audit_log, "append", side_effect=RuntimeError("ledger down")):
            with pytest.raises(RuntimeError):
                trust.grant_profile(user.id, ProfileKind.SENDER, admin_id)
        with store.transaction(read_only=True) as uow:
            assert uow.profiles.list_for_users([user.id]) == []


class TestRevokeProfile:
    def test_revoke_active(self, trust, make_principal, admin_id, audit_records):
        user = make_principal()
        granted = trust.grant_profile(user.id, ProfileKind.SENDER, admin_id)
        revoked = trust.revoke_profile(user.id, ProfileKind.SENDER, admin_id, "fraud review")

        assert revoked.id == granted.id
        assert revoked.is_active is False
        record = audit_records()[-1]
        assert record.action == "revoke_sender_profile"
        assert record.reason == "fraud review"
        assert record.details["changed"] is True

    def test_revoke_inactive_is_audited_noop(self, trust, make_principal, admin_id, audit_records):
        user = make_principal()
        trust.grant_profile(user.id, ProfileKind.SENDER, admin_id)
        trust.revoke_profile(user.id, ProfileKind.SENDER, admin_id)
        again = trust.revoke_profile(user.id, ProfileKind.SENDER, admin_id)

        assert again.is_active is False
        records = audit_records()
        assert [r.action for r in records] == [
            "grant_sender_profile",
            "revoke_sender_profile",
            "revoke_sender_profile",
        ]
        assert records[-1].details["changed"] is False

    def test_never_granted(self, trust, make_principal, admin_id, audit_records):
        user = make_principal()
        with pytest.raises(NotFoundError) as exc_info:
            trust.revoke_profile(user.id, ProfileKind.PROVIDER, admin_id)
        assert exc_info.value.resource_type == "Provider profile"
        assert audit_records() == []

    def test_only_named_kind_is_revoked(self, trust, make_principal, admin_id, store):
        user = make_principal()
        trust.grant_profile(user.id, ProfileKind.SENDER, admin_id)
        trust.grant_profile(user.id, ProfileKind.PROVIDER, admin_id)
        trust.revoke_profile(user.id, ProfileKind.SENDER, admin_id)
        with store.transaction(read_only=True) as uow:
            assert uow.profiles.get_active(user.id, ProfileKind.SENDER) is None
            assert uow.profiles.get_active(user.id, ProfileKind.PROVIDER) is not None

    def test_unknown_user(self, trust, admin_id):
        with pytest.raises(NotFoundError):
            trust.revoke_profile(MISSING_USER, ProfileKind.SENDER, admin_id)


# ============================================================================
# Concurrency
# ============================================================================


class TestConcurrentGrants:
    THREADS = 8

    def test_same_key_grants_are_serialized(self, trust, make_principal, admin_id, store, audit_records):
        user = make_principal()
        barrier = threading.Barrier(self.THREADS)
        outcomes: list[str] = []
        errors: list[Exception] = []

        def grant():
            barrier.wait()
            try:
                trust.grant_profile(user.id, ProfileKind.SENDER, admin_id)
                outcomes.append("ok")
            except AlreadyExistsError:
                outcomes.append("exists")
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=grant) for _ in range(self.THREADS)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert sorted(outcomes) == ["exists"] * (self.THREADS - 1) + ["ok"]
        with store.transaction(read_only=True) as uow:
            profiles = uow.profiles.list_for_users([user.id])
        assert sum(1 for p in profiles if p.is_active) == 1
        assert [r.action for r in audit_records()] == ["grant_sender_profile"]

    def test_different_kinds_do_not_conflict(self, trust, make_principal, admin_id, store):
        user = make_principal()
        barrier = threading.Barrier(2)
        errors: list[Exception] = []

        def grant(kind):
            barrier.wait()
            try:
                trust.grant_profile(user.id, kind, admin_id)
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=grant, args=(kind,)) for kind in ProfileKind]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        with store.transaction(read_only=True) as uow:
            profiles = uow.profiles.list_for_users([user.id])
        assert {p.kind for p in profiles if p.is_active} == set(ProfileKind)
