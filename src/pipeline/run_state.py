"""Run record and phase state machine owned by the orchestrator."""

import time
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum


class RunStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class RunPhase(str, Enum):
    COLLECTING = "collecting"
    RESOLVING = "resolving"
    ENRICHING = "enriching"
    SCORING = "scoring"
    ANALYZING = "analyzing"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


# Forward-only transitions; FAILED is reachable from every non-terminal phase.
_PHASE_ORDER = [
    RunPhase.COLLECTING,
    RunPhase.RESOLVING,
    RunPhase.ENRICHING,
    RunPhase.SCORING,
    RunPhase.ANALYZING,
    RunPhase.PERSISTING,
    RunPhase.DONE,
]


class RunStateError(Exception):
    """Illegal phase transition or double finalization."""


@dataclass
class PipelineRun:
    trigger_type: str = "manual"
    mode: str = "full"
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    status: RunStatus = RunStatus.RUNNING
    phase: RunPhase = RunPhase.COLLECTING
    counts: dict[str, int] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    completed_at: datetime | None = None
    duration_seconds: float | None = None
    _t0: float = field(default_factory=time.monotonic, repr=False)

    @property
    def is_finalized(self) -> bool:
        return self.status != RunStatus.RUNNING

    def advance(self, phase: RunPhase) -> None:
        """Move forward to `phase`. Phases may be skipped, never revisited."""
        if self.is_finalized:
            raise RunStateError(f"run {self.id} already finalized ({self.status.value})")
        if phase == RunPhase.FAILED:
            raise RunStateError("use fail() to enter the failed phase")
        if _PHASE_ORDER.index(phase) <= _PHASE_ORDER.index(self.phase) and phase != self.phase:
            raise RunStateError(f"cannot move from {self.phase.value} back to {phase.value}")
        self.phase = phase

    def record(self, **counts: int) -> None:
        self.counts.update(counts)

    def complete(self) -> None:
        self.advance(RunPhase.DONE)
        self._finalize(RunStatus.COMPLETED)

    def fail(self, error: str) -> None:
        if self.is_finalized:
            raise RunStateError(f"run {self.id} already finalized ({self.status.value})")
        self.errors.append(error)
        self.phase = RunPhase.FAILED
        self._finalize(RunStatus.FAILED)

    def _finalize(self, status: RunStatus) -> None:
        self.status = status
        self.completed_at = datetime.now(UTC)
        self.duration_seconds = round(time.monotonic() - self._t0, 3)


@dataclass(frozen=True)
class RunResult:
    run_id: str
    status: RunStatus
    counts: dict[str, int]
    errors: list[str]
    duration_seconds: float

    @classmethod
    def from_run(cls, run: PipelineRun) -> "RunResult":
        return cls(
            run_id=run.id,
            status=run.status,
            counts=dict(run.counts),
            errors=list(run.errors),
            duration_seconds=run.duration_seconds or 0.0,
        )
