"""PZ monitor pass pacing and prerequisite backoff (Phase 5)."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
import math
import random
import time
from typing import Callable, Protocol, Sequence

from .contracts import AdminCredentialSet, PassSummary, ValidatorAllowlist, VerificationOutcome
from .errors import InfrastructureError, error_detail, reason_code
from .observability import OutcomeSink, log_pass_summary


logger = logging.getLogger("handle_monitor.pz.scheduler")

STAGE_INTERNAL = "internal"


class PrerequisiteSource(Protocol):
    def load_admin_credentials(self) -> AdminCredentialSet:
        ...

    def load_validator_allowlist(self) -> ValidatorAllowlist:
        ...

    def load_handle_names(self) -> list[str]:
        ...


class Verifier(Protocol):
    def verify(
        self,
        name: str,
        *,
        admin_credentials: AdminCredentialSet,
        validator_allowlist: ValidatorAllowlist,
    ) -> VerificationOutcome:
        ...


@dataclass(frozen=True)
class PassPrerequisites:
    admin_credentials: AdminCredentialSet
    validator_allowlist: ValidatorAllowlist
    handle_names: tuple[str, ...]


@dataclass
class BackoffPolicy:
    """Randomized bounded backoff between prerequisite attempts."""

    min_seconds: float = 10.0
    max_seconds: float = 20.0
    max_attempts: int | None = None
    rng: random.Random = field(default_factory=random.Random)

    def __post_init__(self) -> None:
        if self.min_seconds < 0 or self.max_seconds < self.min_seconds:
            raise ValueError("backoff bounds must satisfy 0 <= min_seconds <= max_seconds")
        if self.max_attempts is not None and self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1 when set")

    def delay(self) -> float:
        return self.rng.uniform(self.min_seconds, self.max_seconds)

    def exhausted(self, attempt: int) -> bool:
        return self.max_attempts is not None and attempt >= self.max_attempts


@dataclass
class MonitorClock:
    """Termination signal for the pass loop: pass count and/or wall-clock deadline."""

    max_passes: int | None = None
    deadline_seconds: float | None = None
    monotonic: Callable[[], float] = time.monotonic

    def __post_init__(self) -> None:
        self._started = self.monotonic()

    def finished(self, passes_completed: int) -> bool:
        if self.max_passes is not None and passes_completed >= self.max_passes:
            return True
        if self.deadline_seconds is not None and self.monotonic() - self._started >= self.deadline_seconds:
            return True
        return False


def group_count(total: int, parallel: int) -> int:
    return max(1, math.ceil(total / max(1, parallel)))


def compute_interval_seconds(total_time_seconds: float, total: int, parallel: int) -> float:
    """Delay between group launches so that the whole sweep takes ~total_time_seconds."""
    interval_ms = math.floor(total_time_seconds * 1000 / group_count(total, parallel))
    return interval_ms / 1000.0


def chunk(names: Sequence[str], size: int) -> list[tuple[str, ...]]:
    width = max(1, size)
    return [tuple(names[start : start + width]) for start in range(0, len(names), width)]


@dataclass
class PacingScheduler:
    verifier: Verifier
    prerequisites: PrerequisiteSource
    sink: OutcomeSink
    parallel: int = 3
    total_time_seconds: float = 5 * 86_400
    backoff: BackoffPolicy = field(default_factory=BackoffPolicy)
    clock: MonitorClock = field(default_factory=MonitorClock)
    sleeper: Callable[[float], None] = time.sleep
    monotonic: Callable[[], float] = time.monotonic

    def __post_init__(self) -> None:
        if self.parallel < 1:
            raise ValueError("parallel must be >= 1")
        if self.total_time_seconds <= 0:
            raise ValueError("total_time_seconds must be > 0")
        self.passes_completed = 0
        self.last_summary: PassSummary | None = None

    def run(self) -> int:
        while not self.clock.finished(self.passes_completed):
            prerequisites = self.acquire_prerequisites()
            if prerequisites is None:
                break
            self.last_summary = self.run_pass(prerequisites, pass_index=self.passes_completed + 1)
            self.passes_completed += 1
        return self.passes_completed

    def acquire_prerequisites(self) -> PassPrerequisites | None:
        attempt = 0
        while not self.clock.finished(self.passes_completed):
            attempt += 1
            try:
                return self._load_prerequisites()
            except Exception as exc:
                logger.error(
                    "PZ prerequisites unavailable attempt=%s reason=%s detail=%s",
                    attempt,
                    reason_code(exc),
                    error_detail(exc),
                )
                if self.backoff.exhausted(attempt):
                    raise InfrastructureError("PREREQUISITES_EXHAUSTED", f"attempts={attempt}") from exc
                self.sleeper(self.backoff.delay())
        return None

    def _load_prerequisites(self) -> PassPrerequisites:
        admin_credentials = self.prerequisites.load_admin_credentials()
        validator_allowlist = self.prerequisites.load_validator_allowlist()
        names = self.prerequisites.load_handle_names()
        return PassPrerequisites(
            admin_credentials=admin_credentials,
            validator_allowlist=validator_allowlist,
            handle_names=tuple(names),
        )

    def run_pass(self, prerequisites: PassPrerequisites, *, pass_index: int) -> PassSummary:
        names = prerequisites.handle_names
        groups = chunk(names, self.parallel)
        interval = compute_interval_seconds(self.total_time_seconds, len(names), self.parallel)
        summary = PassSummary(
            pass_index=pass_index,
            record_count=len(names),
            group_count=len(groups),
            interval_seconds=interval,
            started_at_utc=_utc_now(),
        )
        logger.info(
            "Monitor %s Handles every %s ms (pass=%s handles=%s admins=%s validators=%s)",
            self.parallel,
            round(interval * 1000),
            pass_index,
            len(names),
            len(prerequisites.admin_credentials),
            len(prerequisites.validator_allowlist),
        )
        with ThreadPoolExecutor(max_workers=self.parallel, thread_name_prefix="pz-verify") as executor:
            for group in groups:
                started = self.monotonic()
                futures = {
                    executor.submit(
                        self.verifier.verify,
                        name,
                        admin_credentials=prerequisites.admin_credentials,
                        validator_allowlist=prerequisites.validator_allowlist,
                    ): name
                    for name in group
                }
                for future in as_completed(futures):
                    outcome = self._outcome_of(future, name=futures[future])
                    summary.record(outcome)
                    self.sink.emit(outcome, pass_index=pass_index)
                remaining = interval - (self.monotonic() - started)
                if remaining > 0:
                    self.sleeper(remaining)
        summary.finished_at_utc = _utc_now()
        log_pass_summary(summary)
        return summary

    @staticmethod
    def _outcome_of(future, *, name: str) -> VerificationOutcome:
        try:
            return future.result()
        except Exception as exc:
            logger.exception("PZ verify raised handle=%s", name)
            return VerificationOutcome.error(
                name,
                stage=STAGE_INTERNAL,
                detail=f"{reason_code(exc)}:{error_detail(exc)}",
            )


def _utc_now() -> str:
    return datetime.now(tz=timezone.utc).isoformat()
