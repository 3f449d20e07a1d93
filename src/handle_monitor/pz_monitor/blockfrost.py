"""Blockfrost ledger reads: address balances and asset UTxOs (Phase 3)."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping
from urllib.parse import quote

import requests

from .contracts import AssetAmount, AssetBalance, AssetUtxo
from .errors import InfrastructureError, NotFoundError
from .sessions import ThreadLocalSession


@dataclass
class BlockfrostClient:
    base_url: str
    project_id: str = ""
    timeout_seconds: float = 30.0
    session: requests.Session | None = None

    def __post_init__(self) -> None:
        self._sessions = ThreadLocalSession(self.session)

    def get_address_balance(self, address: str) -> AssetBalance:
        payload = self._get_json(f"/addresses/{quote(address, safe='')}", missing_code="ADDRESS_NOT_FOUND")
        if not isinstance(payload, Mapping):
            raise InfrastructureError("BLOCKFROST_INVALID_RESPONSE", "address info must be a mapping")
        return AssetBalance(
            address=str(payload.get("address") or address),
            amounts=_amounts(payload.get("amount")),
        )

    def get_latest_asset_tx_hash(self, asset_id: str) -> str:
        payload = self._get_json(
            f"/assets/{quote(asset_id, safe='')}/transactions?order=desc&count=1",
            missing_code="ASSET_NOT_FOUND",
        )
        if not isinstance(payload, list) or not payload or not isinstance(payload[0], Mapping):
            raise NotFoundError("ASSET_TRANSACTION_NOT_FOUND", asset_id)
        tx_hash = str(payload[0].get("tx_hash") or "").strip()
        if not tx_hash:
            raise NotFoundError("ASSET_TRANSACTION_NOT_FOUND", asset_id)
        return tx_hash

    def get_asset_utxo(self, asset_id: str) -> AssetUtxo:
        """Return the output of the asset's latest transaction that holds it."""
        tx_hash = self.get_latest_asset_tx_hash(asset_id)
        payload = self._get_json(f"/txs/{tx_hash}/utxos", missing_code="TX_NOT_FOUND")
        outputs = payload.get("outputs") if isinstance(payload, Mapping) else None
        if not isinstance(outputs, list):
            raise InfrastructureError("BLOCKFROST_INVALID_RESPONSE", "tx utxos must carry outputs")
        for output in outputs:
            if not isinstance(output, Mapping):
                continue
            amounts = _amounts(output.get("amount"))
            if not any(amount.unit == asset_id for amount in amounts):
                continue
            inline_datum = str(output.get("inline_datum") or "").strip() or None
            return AssetUtxo(
                tx_hash=tx_hash,
                output_index=int(output.get("output_index") or 0),
                address=str(output.get("address") or ""),
                amounts=amounts,
                inline_datum=inline_datum,
            )
        raise NotFoundError("ASSET_OUTPUT_NOT_FOUND", asset_id)

    def _get_json(self, path: str, *, missing_code: str) -> Any:
        url = self.base_url.rstrip("/") + path
        headers = {"project_id": self.project_id} if self.project_id else {}
        try:
            response = self._sessions.current().get(url, headers=headers, timeout=self.timeout_seconds)
        except requests.Timeout as exc:
            raise InfrastructureError("BLOCKFROST_TIMEOUT", path) from exc
        except requests.RequestException as exc:
            raise InfrastructureError("BLOCKFROST_UNAVAILABLE", str(exc)[:256]) from exc
        if response.status_code == 404:
            raise NotFoundError(missing_code, path)
        if response.status_code >= 400:
            text = str(getattr(response, "text", "") or "").strip()[:256]
            raise InfrastructureError("BLOCKFROST_HTTP_ERROR", f"http_{response.status_code}:{text}")
        try:
            return response.json()
        except ValueError as exc:
            raise InfrastructureError("BLOCKFROST_INVALID_JSON", str(exc)[:256]) from exc


def _amounts(raw: Any) -> tuple[AssetAmount, ...]:
    if not isinstance(raw, list):
        return tuple()
    amounts: list[AssetAmount] = []
    for item in raw:
        if not isinstance(item, Mapping):
            continue
        unit = str(item.get("unit") or "").strip()
        if unit:
            amounts.append(AssetAmount(unit=unit, quantity=str(item.get("quantity") or "0")))
    return tuple(amounts)
