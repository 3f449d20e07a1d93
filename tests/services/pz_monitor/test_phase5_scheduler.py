from __future__ import annotations

import logging
import random
import threading
import time

import pytest

from handle_monitor.pz_monitor.contracts import (
    AdminCredentialSet,
    OutcomeKind,
    ValidatorAllowlist,
    VerificationOutcome,
)
from handle_monitor.pz_monitor.errors import InfrastructureError
from handle_monitor.pz_monitor.scheduler import (
    BackoffPolicy,
    MonitorClock,
    PacingScheduler,
    PassPrerequisites,
    chunk,
    compute_interval_seconds,
)


class _RecordingSink:
    def __init__(self) -> None:
        self.outcomes: list[tuple[int, VerificationOutcome]] = []

    def emit(self, outcome: VerificationOutcome, *, pass_index: int) -> None:
        self.outcomes.append((pass_index, outcome))


class _StaticPrerequisites:
    def __init__(self, names: list[str], failures: int = 0) -> None:
        self.names = names
        self.failures = failures
        self.attempts = 0

    def load_admin_credentials(self) -> AdminCredentialSet:
        self.attempts += 1
        if self.attempts <= self.failures:
            raise InfrastructureError("BLOCKFROST_HTTP_ERROR", "http_500")
        return AdminCredentialSet.from_hashes(["aa"])

    def load_validator_allowlist(self) -> ValidatorAllowlist:
        return ValidatorAllowlist.from_hashes(["v1"])

    def load_handle_names(self) -> list[str]:
        return list(self.names)


class _CountingVerifier:
    def __init__(self, *, hold_seconds: float = 0.0, fail_on: str | None = None) -> None:
        self.hold_seconds = hold_seconds
        self.fail_on = fail_on
        self.seen: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def verify(
        self,
        name: str,
        *,
        admin_credentials: AdminCredentialSet,
        validator_allowlist: ValidatorAllowlist,
    ) -> VerificationOutcome:
        with self._lock:
            self.seen.append(name)
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.hold_seconds:
                time.sleep(self.hold_seconds)
            if name == self.fail_on:
                raise RuntimeError("verifier exploded")
            return VerificationOutcome.verified(name)
        finally:
            with self._lock:
                self.in_flight -= 1


def _scheduler(
    *,
    names: list[str],
    parallel: int = 3,
    total_time_seconds: float = 86_400,
    failures: int = 0,
    verifier: _CountingVerifier | None = None,
    backoff: BackoffPolicy | None = None,
    max_passes: int | None = 1,
    sleeps: list[float] | None = None,
) -> tuple[PacingScheduler, _RecordingSink]:
    sink = _RecordingSink()
    recorded = sleeps if sleeps is not None else []
    scheduler = PacingScheduler(
        verifier=verifier or _CountingVerifier(),
        prerequisites=_StaticPrerequisites(names, failures=failures),
        sink=sink,
        parallel=parallel,
        total_time_seconds=total_time_seconds,
        backoff=backoff or BackoffPolicy(rng=random.Random(7)),
        clock=MonitorClock(max_passes=max_passes),
        sleeper=recorded.append,
        monotonic=lambda: 0.0,
    )
    return scheduler, sink


def test_interval_for_one_hundred_records_across_three_workers() -> None:
    assert compute_interval_seconds(86_400, 100, 3) == 2541.176


def test_interval_with_no_records_uses_one_group() -> None:
    assert compute_interval_seconds(60, 0, 3) == 60.0


def test_chunk_groups_preserve_order() -> None:
    assert chunk(["a", "b", "c", "d"], 3) == [("a", "b", "c"), ("d",)]
    assert chunk([], 3) == []


def test_pass_paces_each_group_and_logs_cadence(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO, logger="handle_monitor.pz.scheduler")
    names = [f"h{index}" for index in range(100)]
    sleeps: list[float] = []
    scheduler, sink = _scheduler(names=names, sleeps=sleeps)

    assert scheduler.run() == 1

    assert len(sink.outcomes) == 100
    assert {pass_index for pass_index, _ in sink.outcomes} == {1}
    assert sleeps == [2541.176] * 34
    assert "Monitor 3 Handles every 2541176 ms" in caplog.text
    summary = scheduler.last_summary
    assert summary is not None
    assert summary.group_count == 34
    assert summary.counts == {"VERIFIED": 100}


def test_no_more_than_parallel_records_in_flight() -> None:
    verifier = _CountingVerifier(hold_seconds=0.01)
    scheduler, _ = _scheduler(names=[f"h{index}" for index in range(10)], parallel=3, verifier=verifier)
    scheduler.run()
    assert sorted(verifier.seen) == sorted(f"h{index}" for index in range(10))
    assert 1 <= verifier.max_in_flight <= 3


def test_verifier_exception_becomes_internal_error_and_pass_continues() -> None:
    verifier = _CountingVerifier(fail_on="h1")
    scheduler, sink = _scheduler(names=["h0", "h1", "h2", "h3"], verifier=verifier)
    scheduler.run()
    outcomes = {outcome.handle: outcome for _, outcome in sink.outcomes}
    assert len(outcomes) == 4
    assert outcomes["h1"].kind == OutcomeKind.ERROR
    assert outcomes["h1"].stage == "internal"
    assert outcomes["h1"].detail == "INTERNAL_ERROR:verifier exploded"
    assert outcomes["h3"].kind == OutcomeKind.VERIFIED


def test_prerequisite_failures_back_off_then_recover(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.ERROR, logger="handle_monitor.pz.scheduler")
    sleeps: list[float] = []
    scheduler, sink = _scheduler(names=["h0"], failures=2, sleeps=sleeps)

    assert scheduler.run() == 1

    backoffs = sleeps[:2]
    assert len(backoffs) == 2
    assert all(10.0 <= delay <= 20.0 for delay in backoffs)
    assert caplog.text.count("PZ prerequisites unavailable") == 2
    assert "BLOCKFROST_HTTP_ERROR" in caplog.text
    assert len(sink.outcomes) == 1


def test_bounded_backoff_gives_up() -> None:
    sleeps: list[float] = []
    scheduler, sink = _scheduler(
        names=["h0"],
        failures=10,
        backoff=BackoffPolicy(min_seconds=1, max_seconds=2, max_attempts=3, rng=random.Random(1)),
        sleeps=sleeps,
    )
    with pytest.raises(InfrastructureError) as exc:
        scheduler.run()
    assert exc.value.code == "PREREQUISITES_EXHAUSTED"
    assert len(sleeps) == 2
    assert sink.outcomes == []


def test_multiple_passes_use_fresh_prerequisites() -> None:
    scheduler, sink = _scheduler(names=["h0", "h1"], max_passes=2)
    assert scheduler.run() == 2
    assert [pass_index for pass_index, _ in sink.outcomes].count(2) == 2
    assert scheduler.prerequisites.attempts == 2  # type: ignore[attr-defined]


def test_clock_deadline_stops_loop() -> None:
    now = [0.0]
    clock = MonitorClock(deadline_seconds=5, monotonic=lambda: now[0])
    assert not clock.finished(10)
    now[0] = 5.0
    assert clock.finished(0)


def test_run_pass_accepts_explicit_prerequisites() -> None:
    scheduler, sink = _scheduler(names=[])
    summary = scheduler.run_pass(
        PassPrerequisites(
            admin_credentials=AdminCredentialSet(),
            validator_allowlist=ValidatorAllowlist(),
            handle_names=("", "alice"),
        ),
        pass_index=9,
    )
    assert summary.record_count == 2
    assert sorted(outcome.handle for _, outcome in sink.outcomes) == ["", "alice"]
    assert {pass_index for pass_index, _ in sink.outcomes} == {9}


@pytest.mark.parametrize(
    "kwargs",
    [{"min_seconds": -1}, {"min_seconds": 5, "max_seconds": 1}, {"max_attempts": 0}],
)
def test_backoff_policy_rejects_invalid_bounds(kwargs: dict[str, float]) -> None:
    with pytest.raises(ValueError):
        BackoffPolicy(**kwargs)


def test_scheduler_rejects_invalid_parallelism() -> None:
    with pytest.raises(ValueError):
        _scheduler(names=[], parallel=0)
