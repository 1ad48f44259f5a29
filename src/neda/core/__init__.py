"""NEDA Core - services and domain records."""

from .audit import AdminActionLog
from .catalog import CatalogAdmin
from .credentials import CredentialIssuer
from .exceptions import (
    AlreadyExistsError,
    ConfigException,
    InvalidCredentialError,
    InvalidTransitionError,
    NedaException,
    NotFoundError,
    UpstreamFailure,
    ValidationException,
)
from .logging import configure_logging, get_logger
from .models import (
    AuditRecord,
    CatalogEntry,
    CatalogKind,
    Credential,
    CredentialSummary,
    DashboardStats,
    IssuedCredential,
    Page,
    Pagination,
    PaymentOrder,
    Principal,
    PrincipalRow,
    Profile,
    ProfileKind,
    ProviderProfile,
    SenderProfile,
    VerificationStatus,
)
from .permissions import PermissionScheme
from .queries import AdminQueryEngine
from .trust import TrustStateMachine

__all__ = [
    "AdminActionLog",
    "AdminQueryEngine",
    "AlreadyExistsError",
    "AuditRecord",
    "CatalogAdmin",
    "CatalogEntry",
    "CatalogKind",
    "ConfigException",
    "Credential",
    "CredentialIssuer",
    "CredentialSummary",
    "DashboardStats",
    "InvalidCredentialError",
    "InvalidTransitionError",
    "IssuedCredential",
    "NedaException",
    "NotFoundError",
    "Page",
    "Pagination",
    "PaymentOrder",
    "PermissionScheme",
    "Principal",
    "PrincipalRow",
    "Profile",
    "ProfileKind",
    "ProviderProfile",
    "SenderProfile",
    "TrustStateMachine",
    "UpstreamFailure",
    "ValidationException",
    "VerificationStatus",
    "configure_logging",
    "get_logger",
]
