"""PZ monitor profile loader (Phase 1)."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError

from .contracts import LABEL_222
from .errors import ConfigError

_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")

HANDLE_POLICY_ID = "f0ff48bbb7bbe9d59a40f1ce90e9e9d0ff5002ec48f232b49ca0fb9a"
PZ_SETTINGS_HANDLE_NAME = "pz_settings"
PZ_SETTINGS_ASSET_NAME = LABEL_222 + PZ_SETTINGS_HANDLE_NAME.encode("utf-8").hex()


class MonitorPolicy(BaseModel):
    parallel: int = 3
    total_time_seconds: float = 5 * 86_400
    render_size: int = 2048
    backoff_min_seconds: float = 10.0
    backoff_max_seconds: float = 20.0
    backoff_max_attempts: int | None = None
    request_timeout_seconds: float = 30.0
    max_passes: int | None = None
    findings_path: str | None = None


class MonitorProfile(BaseModel):
    profile_id: str = "local"
    network: str = "preview"
    production: bool = False
    handle_api_endpoint: str | None = None
    image_renderer_endpoint: str | None = None
    blockfrost_endpoint: str | None = None
    handle_api_key: str = ""
    blockfrost_api_key: str = ""
    user_agent: str = "handle-monitor"
    handle_policy_id: str = HANDLE_POLICY_ID
    log_level: str = "INFO"
    log_paths: list[str] = Field(default_factory=list)
    monitor: MonitorPolicy = Field(default_factory=MonitorPolicy)

    @property
    def network_host(self) -> str:
        network = self.network.strip().lower()
        return "" if network == "mainnet" else f"{network}."

    def resolved_handle_api_endpoint(self) -> str:
        return (self.handle_api_endpoint or f"https://{self.network_host}api.handle.me").rstrip("/")

    def resolved_renderer_endpoint(self) -> str:
        return (self.image_renderer_endpoint or f"https://{self.network_host}render.handle.me").rstrip("/")

    def resolved_blockfrost_endpoint(self) -> str:
        network = self.network.strip().lower() or "mainnet"
        return (self.blockfrost_endpoint or f"https://cardano-{network}.blockfrost.io/api/v0").rstrip("/")

    @property
    def pz_settings_asset_id(self) -> str:
        return f"{self.handle_policy_id}{PZ_SETTINGS_ASSET_NAME}"


def _expand_str(value: str) -> str:
    def replacer(match: re.Match[str]) -> str:
        token = match.group(1)
        if ":-" in token:
            key, default = token.split(":-", 1)
            actual = os.getenv(key, "")
            return actual if actual.strip() else default
        actual = os.getenv(token, "")
        if not actual.strip():
            raise ConfigError(f"missing environment variable: {token}")
        return actual

    return _VAR_PATTERN.sub(replacer, value)


def _expand_payload(value: Any) -> Any:
    if isinstance(value, str):
        return _expand_str(value)
    if isinstance(value, list):
        return [_expand_payload(item) for item in value]
    if isinstance(value, dict):
        return {str(key): _expand_payload(item) for key, item in value.items()}
    return value


def _blank_to_none(payload: dict[str, Any]) -> dict[str, Any]:
    return {key: (None if isinstance(item, str) and not item.strip() else item) for key, item in payload.items()}


def load_profile(path: Path) -> MonitorProfile:
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError("monitor profile must be a mapping")
    expanded = _expand_payload(data)
    monitor = expanded.get("monitor")
    if monitor is not None and not isinstance(monitor, dict):
        raise ConfigError("monitor section must be a mapping")
    if isinstance(monitor, dict):
        expanded["monitor"] = _blank_to_none(monitor)
    for key in ("handle_api_endpoint", "image_renderer_endpoint", "blockfrost_endpoint"):
        if isinstance(expanded.get(key), str) and not expanded[key].strip():
            expanded[key] = None
    try:
        profile = MonitorProfile(**expanded)
    except ValidationError as exc:
        raise ConfigError(f"invalid monitor profile: {exc}") from exc
    _validate(profile)
    return profile


def _validate(profile: MonitorProfile) -> None:
    policy = profile.monitor
    if policy.parallel < 1:
        raise ConfigError("monitor.parallel must be >= 1")
    if policy.total_time_seconds <= 0:
        raise ConfigError("monitor.total_time_seconds must be > 0")
    if policy.backoff_min_seconds < 0 or policy.backoff_max_seconds < policy.backoff_min_seconds:
        raise ConfigError("monitor backoff bounds must satisfy 0 <= min <= max")
    if policy.request_timeout_seconds <= 0:
        raise ConfigError("monitor.request_timeout_seconds must be > 0")
