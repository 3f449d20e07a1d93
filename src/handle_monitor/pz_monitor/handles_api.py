"""Handle API and image renderer clients (Phase 3)."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Mapping
from urllib.parse import quote

import requests

from .contracts import HandleRecord, PersonalizationRecord, ReferenceMetadata
from .errors import InfrastructureError, NotFoundError
from .sessions import ThreadLocalSession


logger = logging.getLogger("handle_monitor.pz.handles_api")

PZ_CONTRACT_SCRIPT_TYPE = "pz_contract"


@dataclass
class HandleApiClient:
    base_url: str
    user_agent: str = "handle-monitor"
    api_key: str | None = None
    timeout_seconds: float = 30.0
    session: requests.Session | None = None

    def __post_init__(self) -> None:
        self._sessions = ThreadLocalSession(self.session)

    def fetch_all_handle_names(self) -> list[str]:
        response = self._get("/handles", accept="text/plain")
        self._raise_for_status(response, what="handle names")
        names = str(response.text or "").split("\n")
        logger.debug("PZ handle names fetched count=%s", len(names))
        return names

    def fetch_handle(self, name: str) -> HandleRecord:
        response = self._get(f"/handles/{_quote(name)}")
        if response.status_code == 404:
            raise NotFoundError("HANDLE_NOT_FOUND", name)
        self._raise_for_status(response, what=f"handle {name}")
        return HandleRecord.from_payload(self._json_mapping(response, what=f"handle {name}"))

    def fetch_personalization(self, name: str) -> PersonalizationRecord | None:
        payload = self._optional_mapping(f"/handles/{_quote(name)}/personalized", what=f"personalization {name}")
        return None if payload is None else PersonalizationRecord.from_payload(payload)

    def fetch_reference_metadata(self, name: str) -> ReferenceMetadata | None:
        payload = self._optional_mapping(f"/handles/{_quote(name)}/reference_token", what=f"reference token {name}")
        return None if payload is None else ReferenceMetadata.from_payload(payload)

    def fetch_pz_validator_hashes(self) -> list[str]:
        response = self._get(f"/scripts?type={PZ_CONTRACT_SCRIPT_TYPE}")
        self._raise_for_status(response, what="pz scripts")
        payload = _parse_json(response, what="pz scripts")
        if isinstance(payload, Mapping):
            details = list(payload.values())
        elif isinstance(payload, list):
            details = payload
        else:
            raise InfrastructureError("HANDLE_API_INVALID_RESPONSE", "pz scripts must be a mapping")
        hashes: list[str] = []
        for item in details:
            if not isinstance(item, Mapping):
                continue
            validator_hash = str(item.get("validatorHash") or "").strip()
            if validator_hash:
                hashes.append(validator_hash)
        return hashes

    def _optional_mapping(self, path: str, *, what: str) -> Mapping[str, Any] | None:
        response = self._get(path)
        if response.status_code in (204, 404):
            return None
        self._raise_for_status(response, what=what)
        if not str(getattr(response, "text", "") or "").strip():
            return None
        payload = _parse_json(response, what=what)
        if not isinstance(payload, Mapping) or not payload:
            return None
        return payload

    def _json_mapping(self, response: Any, *, what: str) -> Mapping[str, Any]:
        payload = _parse_json(response, what=what)
        if not isinstance(payload, Mapping):
            raise InfrastructureError("HANDLE_API_INVALID_RESPONSE", f"{what} must be a mapping")
        return payload

    def _get(self, path: str, *, accept: str = "application/json") -> Any:
        headers = {
            "Accept": accept,
            "Content-Type": accept,
            "User-Agent": self.user_agent,
        }
        if self.api_key:
            headers["api-key"] = self.api_key
        url = self.base_url.rstrip("/") + path
        try:
            return self._sessions.current().get(url, headers=headers, timeout=self.timeout_seconds)
        except requests.Timeout as exc:
            raise InfrastructureError("HANDLE_API_TIMEOUT", path) from exc
        except requests.RequestException as exc:
            raise InfrastructureError("HANDLE_API_UNAVAILABLE", str(exc)[:256]) from exc

    @staticmethod
    def _raise_for_status(response: Any, *, what: str) -> None:
        if response.status_code >= 400:
            raise InfrastructureError(
                "HANDLE_API_HTTP_ERROR",
                f"{what}:http_{response.status_code}:{_response_text(response)}",
            )


@dataclass
class HandleImageRenderer:
    base_url: str
    user_agent: str = "handle-monitor"
    timeout_seconds: float = 30.0
    session: requests.Session | None = None

    def __post_init__(self) -> None:
        self._sessions = ThreadLocalSession(self.session)

    def render(
        self,
        *,
        handle: str,
        options: Mapping[str, Any],
        size: int = 2048,
        disable_dollar_symbol: bool = False,
    ) -> bytes:
        body = {
            "handle": handle,
            "options": dict(options),
            "size": size,
            "disableDollarSymbol": disable_dollar_symbol,
        }
        headers = {"Content-Type": "application/json", "User-Agent": self.user_agent}
        url = self.base_url.rstrip("/") + "/render"
        try:
            response = self._sessions.current().post(url, json=body, headers=headers, timeout=self.timeout_seconds)
        except requests.Timeout as exc:
            raise InfrastructureError("RENDER_TIMEOUT", handle) from exc
        except requests.RequestException as exc:
            raise InfrastructureError("RENDER_UNAVAILABLE", str(exc)[:256]) from exc
        if response.status_code != 200:
            raise InfrastructureError("RENDER_FAILED", f"{response.status_code}|{_response_text(response)}")
        content = getattr(response, "content", None)
        if not isinstance(content, (bytes, bytearray)):
            raise InfrastructureError("RENDER_FAILED", "renderer returned no bytes")
        return bytes(content)


def _parse_json(response: Any, *, what: str) -> Any:
    try:
        return response.json()
    except ValueError as exc:
        raise InfrastructureError("HANDLE_API_INVALID_JSON", f"{what}:{exc}") from exc


def _response_text(response: Any) -> str:
    value = getattr(response, "text", "")
    text = str(value or "").strip()
    return text[:256]


def _quote(name: str) -> str:
    return quote(name, safe="")
