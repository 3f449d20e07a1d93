"""PZ monitor record contracts and verification outcomes (Phase 1)."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping

# CIP-68 asset name labels (hex prefixes of the asset name).
LABEL_100 = "000643b0"
LABEL_222 = "000de140"
LABEL_444 = "001bc280"
POLICY_ID_HEX_LENGTH = 56

ASSET_BG = "bg"
ASSET_PFP = "pfp"


class OutcomeKind(str, Enum):
    VERIFIED = "VERIFIED"
    BYPASSED_BY_ADMIN = "BYPASSED_BY_ADMIN"
    BYPASSED_BY_VALIDATOR = "BYPASSED_BY_VALIDATOR"
    OWNERSHIP_MISMATCH = "OWNERSHIP_MISMATCH"
    IMAGE_MISMATCH = "IMAGE_MISMATCH"
    ERROR = "ERROR"


FINDING_KINDS: frozenset[OutcomeKind] = frozenset(
    {OutcomeKind.OWNERSHIP_MISMATCH, OutcomeKind.IMAGE_MISMATCH}
)


def normalize_hash(value: str | None) -> str:
    text = str(value or "").strip().lower()
    if text.startswith("0x"):
        text = text[2:]
    return text


@dataclass(frozen=True)
class HandleRecord:
    name: str
    resolved_address: str | None = None
    bg_asset: str | None = None
    pfp_asset: str | None = None
    bg_image: str | None = None
    pfp_image: str | None = None
    og_number: int | None = None
    image: str = ""

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "HandleRecord":
        resolved = payload.get("resolved_addresses")
        address = resolved.get("ada") if isinstance(resolved, Mapping) else None
        return cls(
            name=str(payload.get("name") or ""),
            resolved_address=_none_if_blank(address),
            bg_asset=_none_if_blank(payload.get("bg_asset")),
            pfp_asset=_none_if_blank(payload.get("pfp_asset")),
            bg_image=_none_if_blank(payload.get("bg_image")),
            pfp_image=_none_if_blank(payload.get("pfp_image")),
            og_number=_int_or_none(payload.get("og_number")),
            image=str(payload.get("image") or ""),
        )


@dataclass(frozen=True)
class PersonalizationRecord:
    designer: dict[str, Any] | None = None
    validated_by: str | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "PersonalizationRecord":
        designer = payload.get("designer")
        return cls(
            designer=dict(designer) if isinstance(designer, Mapping) else None,
            validated_by=_none_if_blank(payload.get("validated_by")),
        )


@dataclass(frozen=True)
class ReferenceMetadata:
    validator_hash: str | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "ReferenceMetadata":
        script = payload.get("script")
        validator_hash = script.get("validatorHash") if isinstance(script, Mapping) else None
        return cls(validator_hash=_none_if_blank(validator_hash))


@dataclass(frozen=True)
class AssetAmount:
    unit: str
    quantity: str


@dataclass(frozen=True)
class AssetBalance:
    address: str
    amounts: tuple[AssetAmount, ...]

    def holds(self, unit: str) -> bool:
        return any(amount.unit == unit for amount in self.amounts)


@dataclass(frozen=True)
class AssetUtxo:
    tx_hash: str
    output_index: int
    address: str
    amounts: tuple[AssetAmount, ...]
    inline_datum: str | None = None


@dataclass(frozen=True)
class AdminCredentialSet:
    """Pass-scoped snapshot of trusted admin credential hashes."""

    credentials: frozenset[str] = frozenset()

    @classmethod
    def from_hashes(cls, hashes: Iterable[str]) -> "AdminCredentialSet":
        return cls(credentials=frozenset(h for h in (normalize_hash(item) for item in hashes) if h))

    def contains(self, credential: str | None) -> bool:
        key = normalize_hash(credential)
        return bool(key) and key in self.credentials

    def __len__(self) -> int:
        return len(self.credentials)


@dataclass(frozen=True)
class ValidatorAllowlist:
    """Pass-scoped snapshot of trusted personalization contract hashes."""

    validator_hashes: frozenset[str] = frozenset()

    @classmethod
    def from_hashes(cls, hashes: Iterable[str | None]) -> "ValidatorAllowlist":
        return cls(validator_hashes=frozenset(str(item) for item in hashes if item))

    def contains(self, validator_hash: str | None) -> bool:
        return bool(validator_hash) and validator_hash in self.validator_hashes

    def __len__(self) -> int:
        return len(self.validator_hashes)


@dataclass(frozen=True)
class VerificationOutcome:
    handle: str
    kind: OutcomeKind
    asset: str | None = None
    claimed: str | None = None
    computed: str | None = None
    stage: str | None = None
    detail: str | None = None

    @property
    def is_finding(self) -> bool:
        return self.kind in FINDING_KINDS

    @classmethod
    def verified(cls, handle: str) -> "VerificationOutcome":
        return cls(handle=handle, kind=OutcomeKind.VERIFIED)

    @classmethod
    def bypassed_by_admin(cls, handle: str) -> "VerificationOutcome":
        return cls(handle=handle, kind=OutcomeKind.BYPASSED_BY_ADMIN)

    @classmethod
    def bypassed_by_validator(cls, handle: str) -> "VerificationOutcome":
        return cls(handle=handle, kind=OutcomeKind.BYPASSED_BY_VALIDATOR)

    @classmethod
    def ownership_mismatch(cls, handle: str, *, asset: str) -> "VerificationOutcome":
        return cls(handle=handle, kind=OutcomeKind.OWNERSHIP_MISMATCH, asset=asset)

    @classmethod
    def image_mismatch(cls, handle: str, *, claimed: str, computed: str) -> "VerificationOutcome":
        return cls(handle=handle, kind=OutcomeKind.IMAGE_MISMATCH, claimed=claimed, computed=computed)

    @classmethod
    def error(cls, handle: str, *, stage: str, detail: str) -> "VerificationOutcome":
        return cls(handle=handle, kind=OutcomeKind.ERROR, stage=stage, detail=detail)

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"handle": self.handle, "kind": self.kind.value}
        for key in ("asset", "claimed", "computed", "stage", "detail"):
            value = getattr(self, key)
            if value is not None:
                payload[key] = value
        return payload


@dataclass
class PassSummary:
    pass_index: int
    record_count: int = 0
    group_count: int = 0
    interval_seconds: float = 0.0
    started_at_utc: str | None = None
    finished_at_utc: str | None = None
    counts: dict[str, int] = field(default_factory=dict)

    def record(self, outcome: VerificationOutcome) -> None:
        key = outcome.kind.value
        self.counts[key] = self.counts.get(key, 0) + 1

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    def as_dict(self) -> dict[str, Any]:
        return {
            "pass_index": self.pass_index,
            "record_count": self.record_count,
            "group_count": self.group_count,
            "interval_seconds": self.interval_seconds,
            "started_at_utc": self.started_at_utc,
            "finished_at_utc": self.finished_at_utc,
            "counts": dict(sorted(self.counts.items())),
        }


def split_asset_id(asset_id: str) -> tuple[str, str]:
    return asset_id[:POLICY_ID_HEX_LENGTH], asset_id[POLICY_ID_HEX_LENGTH:]


def reference_asset_for(asset_id: str | None) -> str | None:
    """Return the (100) reference asset id for a (222)/(444) asset, else None."""
    if not asset_id:
        return None
    policy_id, asset_name = split_asset_id(asset_id)
    for label in (LABEL_222, LABEL_444):
        if asset_name.startswith(label):
            return f"{policy_id}{LABEL_100}{asset_name[len(label):]}"
    return None


def _none_if_blank(value: Any) -> str | None:
    text = str(value or "").strip()
    return text or None


def _int_or_none(value: Any) -> int | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return int(value)
