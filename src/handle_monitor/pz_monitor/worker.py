"""PZ monitor runtime worker: wiring, prerequisite source and CLI."""

from __future__ import annotations

import argparse
from dataclasses import dataclass
import json
import logging
from pathlib import Path
from typing import Any

import requests

from .blockfrost import BlockfrostClient
from .config import MonitorProfile, load_profile
from .contracts import AdminCredentialSet, ValidatorAllowlist, VerificationOutcome
from .datum import admin_credentials_from_settings
from .errors import InfrastructureError
from .handles_api import HandleApiClient, HandleImageRenderer
from .logging_utils import configure_logging, parse_level
from .observability import OutcomeSink, build_outcome_sink
from .scheduler import BackoffPolicy, MonitorClock, PacingScheduler
from .verifier import HandleVerifier


logger = logging.getLogger("handle_monitor.pz.worker")


@dataclass
class ApiPrerequisiteSource:
    """Loads the pass-wide trust snapshots and the record name list."""

    handles: HandleApiClient
    ledger: BlockfrostClient
    settings_asset_id: str

    def load_admin_credentials(self) -> AdminCredentialSet:
        utxo = self.ledger.get_asset_utxo(self.settings_asset_id)
        if not utxo.inline_datum:
            raise InfrastructureError("PZ_SETTINGS_DATUM_MISSING", self.settings_asset_id)
        return AdminCredentialSet.from_hashes(admin_credentials_from_settings(utxo.inline_datum))

    def load_validator_allowlist(self) -> ValidatorAllowlist:
        return ValidatorAllowlist.from_hashes(self.handles.fetch_pz_validator_hashes())

    def load_handle_names(self) -> list[str]:
        return self.handles.fetch_all_handle_names()


class PzMonitorWorker:
    def __init__(
        self,
        profile: MonitorProfile,
        *,
        session: requests.Session | None = None,
        sink: OutcomeSink | None = None,
    ) -> None:
        self.profile = profile
        policy = profile.monitor
        self.session = session
        self.handles = HandleApiClient(
            base_url=profile.resolved_handle_api_endpoint(),
            user_agent=profile.user_agent,
            api_key=None if profile.production else (profile.handle_api_key or None),
            timeout_seconds=policy.request_timeout_seconds,
            session=self.session,
        )
        self.ledger = BlockfrostClient(
            base_url=profile.resolved_blockfrost_endpoint(),
            project_id=profile.blockfrost_api_key,
            timeout_seconds=policy.request_timeout_seconds,
            session=self.session,
        )
        self.renderer = HandleImageRenderer(
            base_url=profile.resolved_renderer_endpoint(),
            user_agent=profile.user_agent,
            timeout_seconds=policy.request_timeout_seconds,
            session=self.session,
        )
        self.verifier = HandleVerifier(
            handles=self.handles,
            ledger=self.ledger,
            renderer=self.renderer,
            render_size=policy.render_size,
        )
        self.prerequisites = ApiPrerequisiteSource(
            handles=self.handles,
            ledger=self.ledger,
            settings_asset_id=profile.pz_settings_asset_id,
        )
        self.sink = sink or build_outcome_sink(policy.findings_path)

    def build_scheduler(self, *, max_passes: int | None = None) -> PacingScheduler:
        policy = self.profile.monitor
        return PacingScheduler(
            verifier=self.verifier,
            prerequisites=self.prerequisites,
            sink=self.sink,
            parallel=policy.parallel,
            total_time_seconds=policy.total_time_seconds,
            backoff=BackoffPolicy(
                min_seconds=policy.backoff_min_seconds,
                max_seconds=policy.backoff_max_seconds,
                max_attempts=policy.backoff_max_attempts,
            ),
            clock=MonitorClock(max_passes=max_passes if max_passes is not None else policy.max_passes),
        )

    def run_once(self) -> dict[str, Any]:
        scheduler = self.build_scheduler(max_passes=1)
        scheduler.run()
        if scheduler.last_summary is None:
            return {"pass_index": 0, "record_count": 0, "counts": {}}
        return scheduler.last_summary.as_dict()

    def run_forever(self) -> int:
        return self.build_scheduler().run()

    def verify_one(self, name: str) -> VerificationOutcome:
        outcome = self.verifier.verify(
            name,
            admin_credentials=self.prerequisites.load_admin_credentials(),
            validator_allowlist=self.prerequisites.load_validator_allowlist(),
        )
        self.sink.emit(outcome, pass_index=0)
        return outcome


def main() -> None:
    parser = argparse.ArgumentParser(description="PZ handle personalization monitor")
    parser.add_argument("--profile", required=True, help="Path to monitor profile YAML")
    parser.add_argument("--once", action="store_true", help="Run one pass and exit")
    parser.add_argument("--handle", help="Verify a single handle and exit")
    args = parser.parse_args()

    profile = load_profile(Path(args.profile))
    configure_logging(parse_level(profile.log_level), profile.log_paths)
    worker = PzMonitorWorker(profile)

    if args.handle:
        outcome = worker.verify_one(args.handle)
        logger.info("PZ monitor verdict: %s", json.dumps(outcome.as_dict(), sort_keys=True, ensure_ascii=True))
        return
    if args.once:
        payload = worker.run_once()
        logger.info("PZ monitor pass: %s", json.dumps(payload, sort_keys=True, ensure_ascii=True))
        return
    worker.run_forever()


if __name__ == "__main__":
    main()
