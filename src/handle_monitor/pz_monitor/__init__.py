"""PZ (personalization) monitor: per-handle verification and pass pacing."""

from .config import MonitorPolicy, MonitorProfile, load_profile
from .contracts import (
    ASSET_BG,
    ASSET_PFP,
    FINDING_KINDS,
    AdminCredentialSet,
    HandleRecord,
    OutcomeKind,
    PassSummary,
    PersonalizationRecord,
    ReferenceMetadata,
    ValidatorAllowlist,
    VerificationOutcome,
    reference_asset_for,
)
from .errors import (
    ConfigError,
    DatumDecodeError,
    HandleMonitorError,
    InfrastructureError,
    NotFoundError,
    reason_code,
)
from .scheduler import BackoffPolicy, MonitorClock, PacingScheduler, compute_interval_seconds
from .verifier import HandleVerifier

__all__ = [
    "ASSET_BG",
    "ASSET_PFP",
    "FINDING_KINDS",
    "AdminCredentialSet",
    "BackoffPolicy",
    "ConfigError",
    "DatumDecodeError",
    "HandleMonitorError",
    "HandleRecord",
    "HandleVerifier",
    "InfrastructureError",
    "MonitorClock",
    "MonitorPolicy",
    "MonitorProfile",
    "NotFoundError",
    "OutcomeKind",
    "PacingScheduler",
    "PassSummary",
    "PersonalizationRecord",
    "ReferenceMetadata",
    "ValidatorAllowlist",
    "VerificationOutcome",
    "compute_interval_seconds",
    "load_profile",
    "reason_code",
    "reference_asset_for",
]
