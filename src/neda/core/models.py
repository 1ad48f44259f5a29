# SPDX-License-Identifier: MIT
# Copyright (c) 2026 NEDA Contributors

"""Domain records for the NEDA credential and trust core.

These dataclasses are the only shapes that cross the repository boundary.
They convert from database rows with ``from_row`` and serialize to JSON with
``to_dict``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, ClassVar
from uuid import UUID

from .exceptions import ValidationException
from .permissions import PermissionScheme


def utcnow() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(UTC)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _str_id(value: Any) -> str | None:
    if value is None:
        return None
    return str(value) if isinstance(value, UUID) else value


class VerificationStatus(StrEnum):
    """Trust state of a principal's account."""

    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


class ProfileKind(StrEnum):
    """Role a profile grants to its principal."""

    SENDER = "sender"
    PROVIDER = "provider"


class CatalogKind(StrEnum):
    """Admin-toggleable catalogs of supported assets."""

    TOKEN = "token"
    CURRENCY = "currency"


class AdminActionType(StrEnum):
    """Action names written to the audit ledger."""

    VERIFY_USER = "verify_user"
    REJECT_USER = "reject_user"
    GRANT_SENDER_PROFILE = "grant_sender_profile"
    GRANT_PROVIDER_PROFILE = "grant_provider_profile"
    REVOKE_SENDER_PROFILE = "revoke_sender_profile"
    REVOKE_PROVIDER_PROFILE = "revoke_provider_profile"
    CREATE_API_KEY = "create_api_key"
    REVOKE_API_KEY = "revoke_api_key"
    DELETE_API_KEY = "delete_api_key"
    ENABLE_TOKEN = "enable_token"
    DISABLE_TOKEN = "disable_token"
    ENABLE_CURRENCY = "enable_currency"
    DISABLE_CURRENCY = "disable_currency"

    @classmethod
    def grant(cls, kind: ProfileKind) -> AdminActionType:
        return cls(f"grant_{kind.value}_profile")

    @classmethod
    def revoke(cls, kind: ProfileKind) -> AdminActionType:
        return cls(f"revoke_{kind.value}_profile")

    @classmethod
    def catalog(cls, kind: CatalogKind, enabled: bool) -> AdminActionType:
        return cls(f"{'enable' if enabled else 'disable'}_{kind.value}")


# =============================================================================
# PRINCIPALS
# =============================================================================


@dataclass
class Principal:
    """An authenticated account (``user_profiles`` row)."""

    id: str
    business_type: ProfileKind
    verification_status: VerificationStatus = VerificationStatus.PENDING
    company_name: str | None = None
    email: str | None = None
    website: str | None = None
    phone: str | None = None
    address: str | None = None
    country: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "business_type": self.business_type.value,
            "verification_status": self.verification_status.value,
            "company_name": self.company_name,
            "email": self.email,
            "website": self.website,
            "phone": self.phone,
            "address": self.address,
            "country": self.country,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Principal:
        return cls(
            id=_str_id(row["id"]),
            business_type=ProfileKind(row["business_type"]),
            verification_status=VerificationStatus(row["verification_status"]),
            company_name=row.get("company_name"),
            email=row.get("email"),
            website=row.get("website"),
            phone=row.get("phone"),
            address=row.get("address"),
            country=row.get("country"),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


# =============================================================================
# CREDENTIALS
# =============================================================================


@dataclass
class Credential:
    """A stored API key. Only the SHA-256 digest of the secret is kept."""

    id: str
    user_id: str
    name: str
    public_key: str
    secret_hash: str = field(repr=False)
    permissions: PermissionScheme = field(default_factory=PermissionScheme.default)
    is_active: bool = True
    last_used_at: datetime | None = None
    expires_at: datetime | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        return (now or utcnow()) >= self.expires_at

    def summary(self) -> CredentialSummary:
        """Public view of the credential, without the secret hash."""
        return CredentialSummary(
            id=self.id,
            user_id=self.user_id,
            name=self.name,
            public_key=self.public_key,
            permissions=self.permissions,
            is_active=self.is_active,
            last_used_at=self.last_used_at,
            expires_at=self.expires_at,
            created_at=self.created_at,
        )

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Credential:
        return cls(
            id=_str_id(row["id"]),
            user_id=_str_id(row["user_id"]),
            name=row["name"],
            public_key=row["public_key"],
            secret_hash=row["secret_hash"],
            permissions=PermissionScheme.from_dict(row.get("permissions") or {}),
            is_active=row["is_active"],
            last_used_at=row.get("last_used_at"),
            expires_at=row.get("expires_at"),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


@dataclass
class CredentialSummary:
    """What list/get operations return: never the secret, never its hash."""

    id: str
    user_id: str
    name: str
    public_key: str
    permissions: PermissionScheme
    is_active: bool
    last_used_at: datetime | None
    expires_at: datetime | None
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "public_key": self.public_key,
            "permissions": self.permissions.to_dict(),
            "is_active": self.is_active,
            "last_used_at": _iso(self.last_used_at),
            "expires_at": _iso(self.expires_at),
            "created_at": _iso(self.created_at),
        }


@dataclass
class IssuedCredential:
    """Result of credential creation. The only object that ever holds the secret."""

    credential: CredentialSummary
    secret: str = field(repr=False)

    @property
    def public_key(self) -> str:
        return self.credential.public_key

    def to_dict(self) -> dict[str, Any]:
        return {
            "credential": self.credential.to_dict(),
            "public_key": self.public_key,
            "secret": self.secret,
        }


# =============================================================================
# PROFILES (tagged union: SenderProfile | ProviderProfile)
# =============================================================================


@dataclass
class Profile:
    """Common base of every profile variant."""

    kind: ClassVar[ProfileKind]
    ATTRIBUTES: ClassVar[tuple[str, ...]] = ()

    id: str
    user_id: str
    is_active: bool = True
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def attributes(self) -> dict[str, Any]:
        """Kind-specific fields, as stored in the ``attributes`` column."""
        return {name: getattr(self, name) for name in self.ATTRIBUTES}

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "kind": self.kind.value,
            "is_active": self.is_active,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            **self.attributes(),
        }

    @classmethod
    def validate_attributes(cls, data: dict[str, Any]) -> dict[str, Any]:
        """Reject unknown fields for this kind. Subclasses add range checks."""
        unknown = sorted(set(data) - set(cls.ATTRIBUTES))
        if unknown:
            raise ValidationException(
                f"Unknown {cls.kind.value} profile fields: {', '.join(unknown)}",
                field=unknown[0],
            )
        return dict(data)


@dataclass
class SenderProfile(Profile):
    """Sender role: originates payment orders through the API."""

    kind: ClassVar[ProfileKind] = ProfileKind.SENDER
    ATTRIBUTES: ClassVar[tuple[str, ...]] = (
        "webhook_url",
        "domain_whitelist",
        "is_partner",
        "fee_percent",
        "fee_address",
        "refund_address",
    )

    webhook_url: str | None = None
    domain_whitelist: list[str] = field(default_factory=list)
    is_partner: bool = False
    fee_percent: float = 0.0
    fee_address: str | None = None
    refund_address: str | None = None

    @classmethod
    def validate_attributes(cls, data: dict[str, Any]) -> dict[str, Any]:
        data = super().validate_attributes(data)
        if "fee_percent" in data:
            try:
                fee = float(data["fee_percent"])
            except (TypeError, ValueError):
                raise ValidationException("fee_percent must be a number", field="fee_percent", value=data["fee_percent"])
            if math.isnan(fee) or not 0 <= fee <= 100:
                raise ValidationException("fee_percent must be between 0 and 100", field="fee_percent", value=fee)
            data["fee_percent"] = fee
        if "domain_whitelist" in data:
            whitelist = data["domain_whitelist"]
            if not isinstance(whitelist, list) or not all(isinstance(d, str) for d in whitelist):
                raise ValidationException("domain_whitelist must be a list of strings", field="domain_whitelist")
        if "is_partner" in data and not isinstance(data["is_partner"], bool):
            raise ValidationException("is_partner must be a boolean", field="is_partner", value=data["is_partner"])
        return data


@dataclass
class ProviderProfile(Profile):
    """Provider role: supplies liquidity and settles orders."""

    kind: ClassVar[ProfileKind] = ProfileKind.PROVIDER
    ATTRIBUTES: ClassVar[tuple[str, ...]] = (
        "trading_name",
        "host_identifier",
        "provision_mode",
        "visibility_mode",
        "is_kyb_verified",
    )
    PROVISION_MODES: ClassVar[tuple[str, ...]] = ("auto", "manual")
    VISIBILITY_MODES: ClassVar[tuple[str, ...]] = ("public", "private")

    trading_name: str | None = None
    host_identifier: str | None = None
    provision_mode: str = "auto"
    visibility_mode: str = "public"
    is_kyb_verified: bool = False

    @classmethod
    def validate_attributes(cls, data: dict[str, Any]) -> dict[str, Any]:
        data = super().validate_attributes(data)
        if "provision_mode" in data and data["provision_mode"] not in cls.PROVISION_MODES:
            raise ValidationException("provision_mode must be 'auto' or 'manual'", field="provision_mode", value=data["provision_mode"])
        if "visibility_mode" in data and data["visibility_mode"] not in cls.VISIBILITY_MODES:
            raise ValidationException("visibility_mode must be 'public' or 'private'", field="visibility_mode", value=data["visibility_mode"])
        if "is_kyb_verified" in data and not isinstance(data["is_kyb_verified"], bool):
            raise ValidationException("is_kyb_verified must be a boolean", field="is_kyb_verified", value=data["is_kyb_verified"])
        return data


PROFILE_TYPES: dict[ProfileKind, type[Profile]] = {
    ProfileKind.SENDER: SenderProfile,
    ProfileKind.PROVIDER: ProviderProfile,
}


def parse_profile_kind(value: str) -> ProfileKind:
    """Parse a profile kind, raising ValidationException for unknown values."""
    try:
        return ProfileKind(value)
    except ValueError:
        raise ValidationException(f"Unknown profile kind: {value}", field="kind", value=value)


def build_profile(kind: ProfileKind, **fields: Any) -> Profile:
    """Construct the variant for ``kind``."""
    return PROFILE_TYPES[kind](**fields)


def profile_from_row(row: dict[str, Any]) -> Profile:
    """Dispatch a ``profiles`` row to its variant by the ``kind`` column."""
    kind = ProfileKind(row["kind"])
    cls = PROFILE_TYPES[kind]
    stored = row.get("attributes") or {}
    return cls(
        id=_str_id(row["id"]),
        user_id=_str_id(row["user_id"]),
        is_active=row["is_active"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        **{k: v for k, v in stored.items() if k in cls.ATTRIBUTES},
    )


# =============================================================================
# AUDIT
# =============================================================================


@dataclass
class AuditRecord:
    """Immutable ledger entry for one mutating operation."""

    id: str
    actor_id: str
    action: str
    resource_type: str
    resource_id: str
    reason: str | None = None
    details: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "actor_id": self.actor_id,
            "action": self.action,
            "resource_type": self.resource_type,
            "resource_id": self.resource_id,
            "reason": self.reason,
            "details": self.details,
            "created_at": _iso(self.created_at),
        }

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> AuditRecord:
        # The reason travels inside the details column
        details = row.get("details") or {}
        return cls(
            id=_str_id(row["id"]),
            actor_id=_str_id(row["actor_id"]),
            action=row["action"],
            resource_type=row["resource_type"],
            resource_id=_str_id(row["resource_id"]),
            reason=details.get("reason"),
            details=details,
            created_at=row["created_at"],
        )


# =============================================================================
# LEDGER RECORDS
# =============================================================================


@dataclass
class TransactionSummary:
    """A transaction record, aggregated but never processed by this core."""

    id: str
    user_id: str
    transaction_type: str
    status: str
    amount: float
    currency: str
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "transaction_type": self.transaction_type,
            "status": self.status,
            "amount": self.amount,
            "currency": self.currency,
            "created_at": _iso(self.created_at),
        }

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> TransactionSummary:
        return cls(
            id=_str_id(row["id"]),
            user_id=_str_id(row["user_id"]),
            transaction_type=row["transaction_type"],
            status=row["status"],
            amount=float(row["amount"]),
            currency=row["currency"],
            created_at=row["created_at"],
        )


@dataclass
class PaymentOrder:
    """A payment order, listed and aggregated for the admin console."""

    id: str
    user_id: str | None
    status: str
    amount_in_usd: float
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "status": self.status,
            "amount_in_usd": self.amount_in_usd,
            "created_at": _iso(self.created_at),
        }

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> PaymentOrder:
        return cls(
            id=_str_id(row["id"]),
            user_id=_str_id(row.get("user_id")),
            status=row["status"],
            amount_in_usd=float(row["amount_in_usd"]),
            created_at=row["created_at"],
        )


# =============================================================================
# CATALOG
# =============================================================================

CATALOG_PATHS: dict[str, CatalogKind] = {
    "tokens": CatalogKind.TOKEN,
    "currencies": CatalogKind.CURRENCY,
}


@dataclass
class CatalogEntry:
    """A supported token (by symbol) or fiat currency (by code)."""

    id: str
    kind: CatalogKind
    code: str
    is_enabled: bool = True
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "code": self.code,
            "is_enabled": self.is_enabled,
            "updated_at": _iso(self.updated_at),
        }

    @classmethod
    def from_row(cls, kind: CatalogKind, row: dict[str, Any]) -> CatalogEntry:
        return cls(
            id=_str_id(row["id"]),
            kind=kind,
            code=row["code"],
            is_enabled=row["is_enabled"],
            updated_at=row.get("updated_at"),
        )


def parse_catalog_kind(value: str) -> CatalogKind:
    """Parse a catalog path segment (``tokens`` or ``currencies``)."""
    try:
        return CATALOG_PATHS[value]
    except KeyError:
        raise ValidationException(f"Unknown catalog: {value}", field="catalog", value=value)


# =============================================================================
# QUERY SHAPES
# =============================================================================

MAX_PAGE_LIMIT = 200


@dataclass(frozen=True)
class Pagination:
    """1-based page window."""

    page: int = 1
    limit: int = 50

    def __post_init__(self) -> None:
        if self.page < 1:
            raise ValidationException("page must be >= 1", field="page", value=self.page)
        if not 1 <= self.limit <= MAX_PAGE_LIMIT:
            raise ValidationException(f"limit must be between 1 and {MAX_PAGE_LIMIT}", field="limit", value=self.limit)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


@dataclass
class Page:
    """One page of results plus the size of the whole result set."""

    rows: list[Any]
    total_count: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_count / self.limit) if self.limit else 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "data": [r.to_dict() for r in self.rows],
            "count": self.total_count,
            "page": self.page,
            "limit": self.limit,
            "total_pages": self.total_pages,
        }


@dataclass(frozen=True)
class AuditFilter:
    date_from: datetime | None = None
    date_to: datetime | None = None
    search: str | None = None
    actor_id: str | None = None
    target_id: str | None = None


@dataclass(frozen=True)
class PrincipalFilter:
    verification_status: frozenset[VerificationStatus] = frozenset()
    business_type: frozenset[ProfileKind] = frozenset()
    date_from: datetime | None = None
    date_to: datetime | None = None
    search: str | None = None


SORTABLE_PRINCIPAL_FIELDS = ("created_at", "updated_at", "company_name", "verification_status", "email")
SORTABLE_ORDER_FIELDS = ("created_at", "amount_in_usd", "status")


@dataclass(frozen=True)
class Sort:
    """Whitelisted column and direction; ``FIELDS`` names the sortable columns."""

    FIELDS: ClassVar[tuple[str, ...]] = ()

    sort_by: str = "created_at"
    sort_order: str = "desc"

    def __post_init__(self) -> None:
        if self.sort_by not in self.FIELDS:
            raise ValidationException(f"Cannot sort by {self.sort_by}", field="sort_by", value=self.sort_by)
        if self.sort_order not in ("asc", "desc"):
            raise ValidationException("sort_order must be 'asc' or 'desc'", field="sort_order", value=self.sort_order)

    @property
    def descending(self) -> bool:
        return self.sort_order == "desc"


@dataclass(frozen=True)
class PrincipalSort(Sort):
    FIELDS: ClassVar[tuple[str, ...]] = SORTABLE_PRINCIPAL_FIELDS


@dataclass(frozen=True)
class OrderFilter:
    status: frozenset[str] = frozenset()
    date_from: datetime | None = None
    date_to: datetime | None = None


@dataclass(frozen=True)
class OrderSort(Sort):
    FIELDS: ClassVar[tuple[str, ...]] = SORTABLE_ORDER_FIELDS


@dataclass
class PrincipalRow:
    """A principal with its related records, read in one composite query."""

    principal: Principal
    profiles: list[Profile] = field(default_factory=list)
    credentials: list[CredentialSummary] = field(default_factory=list)
    recent_transactions: list[TransactionSummary] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.principal.to_dict(),
            "sender_profiles": [p.to_dict() for p in self.profiles if p.kind is ProfileKind.SENDER],
            "provider_profiles": [p.to_dict() for p in self.profiles if p.kind is ProfileKind.PROVIDER],
            "api_keys": [c.to_dict() for c in self.credentials],
            "transactions": [t.to_dict() for t in self.recent_transactions],
        }


@dataclass
class DashboardStats:
    """Admin dashboard aggregates. ``degraded`` names sub-aggregates that failed."""

    total_users: int = 0
    verified_users: int = 0
    pending_verification: int = 0
    rejected_users: int = 0
    total_providers: int = 0
    active_providers: int = 0
    total_senders: int = 0
    active_senders: int = 0
    total_payment_orders: int = 0
    completed_orders: int = 0
    pending_orders: int = 0
    failed_orders: int = 0
    total_volume_usd: float = 0.0
    monthly_volume_usd: float = 0.0
    total_transactions: int = 0
    monthly_transactions: int = 0
    active_tokens: int = 0
    active_currencies: int = 0
    degraded: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {k: (list(v) if isinstance(v, list) else v) for k, v in self.__dict__.items()}
