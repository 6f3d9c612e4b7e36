"""Domain models for work items, attempts, and persisted dispatch state."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path


def utc_now() -> datetime:
    """Current UTC timestamp."""

    return datetime.now(tz=UTC)


class OutcomeStatus(str, Enum):
    """Classifier verdict for one attempt."""

    SUCCESS = "success"
    FAILURE = "failure"


class ItemStatus(str, Enum):
    """Per-item lifecycle states shared by both dispatch modes."""

    PENDING = "pending"
    ATTEMPTING = "attempting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    DEAD_LETTERED = "dead_lettered"


class PolicyDecision(str, Enum):
    """Retry policy answer after a failed attempt."""

    RETRY = "retry"
    DEAD_LETTER = "dead_letter"


class ReviewVerdict(str, Enum):
    """Review results recorded by the parallel dispatcher."""

    APPROVED = "approved"
    SUSPECT = "suspect"


@dataclass(frozen=True, slots=True)
class WorkItem:
    """One unit of dispatch: a file path or a ``path:line`` position."""

    index: int
    identity: str

    @property
    def path(self) -> Path:
        head, _, tail = self.identity.rpartition(":")
        if head and tail.isdigit():
            return Path(head)
        return Path(self.identity)

    @property
    def line(self) -> int | None:
        head, _, tail = self.identity.rpartition(":")
        if head and tail.isdigit():
            return int(tail)
        return None

    @property
    def position(self) -> int:
        """One-based position for progress reporting."""

        return self.index + 1


@dataclass(slots=True)
class Outcome:
    """Classifier result for one attempt."""

    status: OutcomeStatus
    reason: str | None = None
    verdict: ReviewVerdict | None = None

    @property
    def ok(self) -> bool:
        return self.status == OutcomeStatus.SUCCESS

    @classmethod
    def success(cls, *, verdict: ReviewVerdict | None = None) -> Outcome:
        return cls(status=OutcomeStatus.SUCCESS, verdict=verdict)

    @classmethod
    def failure(cls, reason: str) -> Outcome:
        return cls(status=OutcomeStatus.FAILURE, reason=reason)


@dataclass(frozen=True, slots=True)
class AttemptRecord:
    """Immutable record of one finished worker invocation."""

    item: WorkItem
    attempt_number: int
    started_at: datetime
    raw_output: str
    exit_code: int | None
    timed_out: bool
    outcome: Outcome
    output_path: Path | None = None


@dataclass(slots=True)
class SequentialState:
    """Persisted progress of the sequential marking loop.

    ``failure_count`` belongs to the item named by ``failure_item``; it is
    reset whenever the cursor advances.
    """

    cursor: int = 0
    failure_count: int = 0
    failure_item: str | None = None
    processed: list[str] = field(default_factory=list)
    dead_lettered: list[str] = field(default_factory=list)

    def finalized(self) -> list[str]:
        """Identities that reached a terminal state, in finalization order."""

        return [*self.processed, *self.dead_lettered]


@dataclass(slots=True)
class ParallelState:
    """Persisted aggregate progress of the parallel review pool."""

    phase: int = 2
    total: int = 0
    completed: set[str] = field(default_factory=set)
    approved_count: int = 0
    suspect_count: int = 0
    failed_count: int = 0


@dataclass(frozen=True, slots=True)
class GuardrailEntry:
    """Append-only record of a dead-lettered item."""

    item: str
    reason: str
    timestamp: datetime
    status: ItemStatus = ItemStatus.DEAD_LETTERED


@dataclass(slots=True)
class SequentialRunSummary:
    """Counters for one sequential run."""

    attempts: int = 0
    succeeded: int = 0
    retried: int = 0
    dead_lettered: int = 0
    timeouts: int = 0
    cursor: int = 0
    total: int = 0


@dataclass(slots=True)
class ParallelRunSummary:
    """Counters for one parallel run."""

    submitted: int = 0
    skipped: int = 0
    approved: int = 0
    suspect: int = 0
    failed: int = 0
    timeouts: int = 0
    peak_live_slots: int = 0
    total: int = 0
