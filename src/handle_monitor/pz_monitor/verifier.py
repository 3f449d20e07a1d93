"""Per-handle personalization verification (Phase 4).

Each handle is walked through a linear sequence of checks; the first check
that reaches a verdict ends the evaluation:

1. empty name                       -> VERIFIED (no calls)
2. personalization validated_by     -> BYPASSED_BY_ADMIN
3. bg/pfp asset ownership           -> OWNERSHIP_MISMATCH (bg before pfp)
4. reference token validator hash   -> BYPASSED_BY_VALIDATOR
5. rendered image CID vs claimed    -> VERIFIED or IMAGE_MISMATCH

Any upstream failure yields a single ERROR outcome tagged with the stage that
failed. Nothing is retried here; retries happen on the next pass.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Callable, Protocol

from .cid import compute_cid, ipfs_uri
from .contracts import (
    ASSET_BG,
    ASSET_PFP,
    AdminCredentialSet,
    AssetBalance,
    AssetUtxo,
    HandleRecord,
    PersonalizationRecord,
    ReferenceMetadata,
    ValidatorAllowlist,
    VerificationOutcome,
    reference_asset_for,
)
from .datum import custom_dollar_symbol_from_datum
from .errors import NotFoundError, error_detail, reason_code


logger = logging.getLogger("handle_monitor.pz.verifier")

STAGE_PERSONALIZATION = "personalization"
STAGE_HANDLE = "handle"
STAGE_RESOLUTION = "resolution"
STAGE_BALANCE = "balance"
STAGE_REFERENCE_TOKEN = "reference_token"
STAGE_BG_ASSET_DATUM = "bg_asset_datum"
STAGE_DATUM_DECODE = "datum_decode"
STAGE_RENDER = "render"
STAGE_CID = "cid"

DEFAULT_RENDER_SIZE = 2048


class HandleSource(Protocol):
    def fetch_handle(self, name: str) -> HandleRecord:
        ...

    def fetch_personalization(self, name: str) -> PersonalizationRecord | None:
        ...

    def fetch_reference_metadata(self, name: str) -> ReferenceMetadata | None:
        ...


class LedgerSource(Protocol):
    def get_address_balance(self, address: str) -> AssetBalance:
        ...

    def get_asset_utxo(self, asset_id: str) -> AssetUtxo:
        ...


class ImageRenderer(Protocol):
    def render(
        self,
        *,
        handle: str,
        options: dict[str, Any],
        size: int = DEFAULT_RENDER_SIZE,
        disable_dollar_symbol: bool = False,
    ) -> bytes:
        ...


class _StageFailed(Exception):
    def __init__(self, stage: str, cause: BaseException) -> None:
        self.stage = stage
        self.cause = cause
        super().__init__(f"{stage}:{cause}")


@dataclass
class HandleVerifier:
    handles: HandleSource
    ledger: LedgerSource
    renderer: ImageRenderer
    identifier_of: Callable[[bytes], str] = compute_cid
    render_size: int = DEFAULT_RENDER_SIZE

    def verify(
        self,
        name: str,
        *,
        admin_credentials: AdminCredentialSet,
        validator_allowlist: ValidatorAllowlist,
    ) -> VerificationOutcome:
        if not name:
            return VerificationOutcome.verified(name)
        try:
            return self._evaluate(
                name,
                admin_credentials=admin_credentials,
                validator_allowlist=validator_allowlist,
            )
        except _StageFailed as failure:
            logger.debug(
                "PZ verify failed handle=%s stage=%s reason=%s",
                name,
                failure.stage,
                reason_code(failure.cause),
            )
            return VerificationOutcome.error(
                name,
                stage=failure.stage,
                detail=f"{reason_code(failure.cause)}:{error_detail(failure.cause)}",
            )

    def _evaluate(
        self,
        name: str,
        *,
        admin_credentials: AdminCredentialSet,
        validator_allowlist: ValidatorAllowlist,
    ) -> VerificationOutcome:
        personalization = _stage(STAGE_PERSONALIZATION, self.handles.fetch_personalization, name)
        if personalization is not None and admin_credentials.contains(personalization.validated_by):
            return VerificationOutcome.bypassed_by_admin(name)

        handle = _stage(STAGE_HANDLE, self.handles.fetch_handle, name)
        if not handle.resolved_address:
            return VerificationOutcome.error(
                name,
                stage=STAGE_RESOLUTION,
                detail="RESOLVED_ADDRESS_MISSING",
            )
        balance = _stage(STAGE_BALANCE, self.ledger.get_address_balance, handle.resolved_address)
        if handle.bg_asset and not balance.holds(handle.bg_asset):
            return VerificationOutcome.ownership_mismatch(name, asset=ASSET_BG)
        if handle.pfp_asset and not balance.holds(handle.pfp_asset):
            return VerificationOutcome.ownership_mismatch(name, asset=ASSET_PFP)

        reference = _stage(STAGE_REFERENCE_TOKEN, self.handles.fetch_reference_metadata, name)
        if reference is not None and validator_allowlist.contains(reference.validator_hash):
            return VerificationOutcome.bypassed_by_validator(name)

        options = build_render_options(handle, personalization)
        disable_dollar_symbol = self._resolve_disable_dollar_symbol(handle)
        image = _stage(
            STAGE_RENDER,
            lambda: self.renderer.render(
                handle=name,
                options=options,
                size=self.render_size,
                disable_dollar_symbol=disable_dollar_symbol,
            ),
        )
        computed = _stage(STAGE_CID, self.identifier_of, image)
        if ipfs_uri(computed) == handle.image:
            return VerificationOutcome.verified(name)
        return VerificationOutcome.image_mismatch(name, claimed=handle.image, computed=ipfs_uri(computed))

    def _resolve_disable_dollar_symbol(self, handle: HandleRecord) -> bool:
        if not handle.bg_asset or not handle.bg_image:
            return False
        reference_asset = reference_asset_for(handle.bg_asset)
        if reference_asset is None:
            return False
        try:
            utxo = self.ledger.get_asset_utxo(reference_asset)
        except NotFoundError:
            logger.debug("PZ bg reference asset has no utxo handle=%s asset=%s", handle.name, reference_asset)
            return False
        except Exception as exc:
            raise _StageFailed(STAGE_BG_ASSET_DATUM, exc) from exc
        if not utxo.inline_datum:
            return False
        value = _stage(STAGE_DATUM_DECODE, custom_dollar_symbol_from_datum, utxo.inline_datum)
        return bool(value)


def build_render_options(
    handle: HandleRecord,
    personalization: PersonalizationRecord | None,
) -> dict[str, Any]:
    """Designer settings overlaid with the record fields.

    A field the record does not carry is removed rather than sent as null.
    """
    options: dict[str, Any] = dict(personalization.designer or {}) if personalization else {}
    record_fields = {
        "pfp_image": handle.pfp_image,
        "pfp_asset": handle.pfp_asset,
        "bg_image": handle.bg_image,
        "bg_asset": handle.bg_asset,
        "og_number": handle.og_number,
    }
    for key, value in record_fields.items():
        if value is None:
            options.pop(key, None)
        else:
            options[key] = value
    return options


def _stage(stage: str, func: Callable[..., Any], *args: Any) -> Any:
    try:
        return func(*args)
    except Exception as exc:
        raise _StageFailed(stage, exc) from exc
