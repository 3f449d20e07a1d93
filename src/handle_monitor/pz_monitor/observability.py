"""PZ monitor outcome sinks and pass reporting (Phase 6)."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import json
import logging
from pathlib import Path
import threading
from typing import Any, Protocol, Sequence

from .contracts import OutcomeKind, PassSummary, VerificationOutcome


logger = logging.getLogger("handle_monitor.pz.observability")


class OutcomeSink(Protocol):
    def emit(self, outcome: VerificationOutcome, *, pass_index: int) -> None:
        """Report a single terminal verification outcome."""


class LoggingOutcomeSink:
    def emit(self, outcome: VerificationOutcome, *, pass_index: int) -> None:
        if outcome.kind == OutcomeKind.ERROR:
            logger.error(
                "PZ handle error pass=%s handle=%s stage=%s detail=%s",
                pass_index,
                outcome.handle,
                outcome.stage,
                outcome.detail,
            )
        elif outcome.kind == OutcomeKind.OWNERSHIP_MISMATCH:
            logger.warning(
                "PZ handle does not own %s_asset pass=%s handle=%s",
                outcome.asset,
                pass_index,
                outcome.handle,
            )
        elif outcome.kind == OutcomeKind.IMAGE_MISMATCH:
            logger.warning(
                "PZ handle image mismatch pass=%s handle=%s claimed=%s computed=%s",
                pass_index,
                outcome.handle,
                outcome.claimed,
                outcome.computed,
            )
        else:
            logger.debug("PZ handle %s pass=%s handle=%s", outcome.kind.value, pass_index, outcome.handle)


@dataclass
class JsonlOutcomeSink:
    """Append-only findings file; verified and bypassed outcomes are skipped."""

    path: Path
    include_all: bool = False
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def emit(self, outcome: VerificationOutcome, *, pass_index: int) -> None:
        if not self.include_all and outcome.kind not in {
            OutcomeKind.OWNERSHIP_MISMATCH,
            OutcomeKind.IMAGE_MISMATCH,
            OutcomeKind.ERROR,
        }:
            return
        record = {
            "observed_at_utc": _utc_now(),
            "pass_index": pass_index,
            "outcome": outcome.as_dict(),
        }
        line = json.dumps(record, sort_keys=True, ensure_ascii=True) + "\n"
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(line)


@dataclass
class CompositeOutcomeSink:
    sinks: Sequence[OutcomeSink]

    def emit(self, outcome: VerificationOutcome, *, pass_index: int) -> None:
        for sink in self.sinks:
            try:
                sink.emit(outcome, pass_index=pass_index)
            except Exception as exc:
                logger.warning("PZ outcome sink failed sink=%s error=%s", type(sink).__name__, str(exc)[:256])


def build_outcome_sink(findings_path: str | None) -> OutcomeSink:
    sinks: list[OutcomeSink] = [LoggingOutcomeSink()]
    if findings_path:
        sinks.append(JsonlOutcomeSink(path=Path(findings_path)))
    return CompositeOutcomeSink(sinks=sinks)


def log_pass_summary(summary: PassSummary) -> dict[str, Any]:
    payload = summary.as_dict()
    logger.info("PZ monitor pass complete: %s", json.dumps(payload, sort_keys=True, ensure_ascii=True))
    return payload


def _utc_now() -> str:
    return datetime.now(tz=timezone.utc).isoformat()
