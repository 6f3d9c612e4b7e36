from __future__ import annotations

import random
import threading
import time
from pathlib import Path

import allure
import pytest

from revizorro.dispatch.attempt import AttemptRunner
from revizorro.dispatch.backend import BackendRunError, WorkerRequest, WorkerResult
from revizorro.dispatch.errors import StateStoreError
from revizorro.dispatch.journal import AttemptArtifacts, ErrorLog
from revizorro.dispatch.models import Outcome, ParallelState, ReviewVerdict, WorkItem
from revizorro.dispatch.parallel import ParallelDispatcher
from revizorro.dispatch.state_store import ParallelStateStore

pytestmark = [
    allure.epic("Dispatch"),
    allure.feature("Bounded Parallel Pool"),
]


class _SlowBackend:
    """Sleeps per call and tracks how many calls overlap."""

    def __init__(
        self,
        *,
        delay: float = 0.02,
        jitter: float = 0.0,
        delays: dict[str, float] | None = None,
        outputs: dict[str, str] | None = None,
        fatal_for: str | None = None,
    ) -> None:
        self.delay = delay
        self.jitter = jitter
        self.delays = delays or {}
        self.outputs = outputs or {}
        self.fatal_for = fatal_for
        self.calls: list[str] = []
        self.live = 0
        self.max_live = 0
        self._lock = threading.Lock()

    def run(self, request: WorkerRequest) -> WorkerResult:
        if request.item == self.fatal_for:
            raise BackendRunError("agent binary vanished", transient=False)
        with self._lock:
            self.calls.append(request.item)
            self.live += 1
            self.max_live = max(self.max_live, self.live)
        try:
            delay = self.delays.get(request.item, self.delay)
            time.sleep(delay + random.uniform(0, self.jitter))  # noqa: S311
        finally:
            with self._lock:
                self.live -= 1
        return WorkerResult(
            exit_code=0,
            timed_out=False,
            output=self.outputs.get(request.item, "REVIEWED: approved"),
            output_path=request.output_path,
        )


class _VerdictClassifier:
    def classify(self, item: WorkItem, result: WorkerResult) -> Outcome:
        if "REVIEWED:" not in result.output:
            return Outcome.failure("missing_success_token")
        if "suspect" in result.output:
            return Outcome.success(verdict=ReviewVerdict.SUSPECT)
        return Outcome.success(verdict=ReviewVerdict.APPROVED)


class _AlwaysChangedProbe:
    def snapshot(self, item: WorkItem) -> None:
        return None

    def corroborates(self, item: WorkItem, before: object) -> bool:
        return True


class _StaticRenderer:
    def render(self, item: WorkItem, *, total: int) -> str:
        return f"review {item.identity}"


def _items(count: int) -> list[WorkItem]:
    return [WorkItem(index=index, identity=f"test/t.py:{index + 1}") for index in range(count)]


def _dispatcher(
    tmp_path: Path,
    backend: _SlowBackend,
    *,
    pool_size: int,
    progress: list[str] | None = None,
) -> ParallelDispatcher:
    runner = AttemptRunner(
        backend=backend,
        renderer=_StaticRenderer(),
        classifier=_VerdictClassifier(),
        probe=_AlwaysChangedProbe(),
        command_template="agent",
        model="sonnet",
        timeout_seconds=30,
    )
    return ParallelDispatcher(
        store=ParallelStateStore(tmp_path / "review-state.json"),
        runner=runner,
        pool_size=pool_size,
        poll_interval_seconds=0.01,
        error_log=ErrorLog(tmp_path / "errors.log"),
        artifacts=AttemptArtifacts(tmp_path / "attempts"),
        on_progress=progress.append if progress is not None else None,
    )


@pytest.mark.parametrize(
    ("pool_size", "count"),
    [(1, 5), (3, 12), (6, 6), (8, 4)],
)
def test_live_slots_never_exceed_pool_size(tmp_path: Path, pool_size: int, count: int) -> None:
    backend = _SlowBackend(delay=0.05)
    dispatcher = _dispatcher(tmp_path, backend, pool_size=pool_size)

    summary = dispatcher.run(_items(count))

    assert backend.max_live <= pool_size
    assert 1 <= summary.peak_live_slots <= min(pool_size, count)
    assert summary.submitted == count
    assert summary.approved == count
    assert dispatcher.pool.live_count == 0


def test_aggregates_do_not_depend_on_completion_order(tmp_path: Path) -> None:
    items = _items(10)
    suspects = {items[1].identity, items[4].identity, items[8].identity}
    backend = _SlowBackend(
        delay=0.0,
        jitter=0.03,
        outputs={identity: "REVIEWED: suspect" for identity in suspects},
    )
    dispatcher = _dispatcher(tmp_path, backend, pool_size=4)

    summary = dispatcher.run(items)

    state = dispatcher.store.load()
    assert state.approved_count == 7
    assert state.suspect_count == 3
    assert state.completed == {item.identity for item in items}
    assert state.total == 10
    assert (summary.approved, summary.suspect, summary.failed) == (7, 3, 0)


def test_resume_skips_completed_items(tmp_path: Path) -> None:
    items = _items(4)
    ParallelStateStore(tmp_path / "review-state.json").save(
        ParallelState(
            total=4,
            completed={items[0].identity, items[1].identity},
            approved_count=2,
        ),
    )
    backend = _SlowBackend(delay=0.0)
    progress: list[str] = []
    dispatcher = _dispatcher(tmp_path, backend, pool_size=2, progress=progress)

    summary = dispatcher.run(items)

    assert sorted(backend.calls) == sorted([items[2].identity, items[3].identity])
    assert summary.skipped == 2
    assert dispatcher.store.load().approved_count == 4
    assert progress[-1] == "✓ All reviews complete"


def test_failed_attempt_is_counted_and_logged_once(tmp_path: Path) -> None:
    items = _items(3)
    backend = _SlowBackend(delay=0.0, outputs={items[2].identity: "no token here"})
    dispatcher = _dispatcher(tmp_path, backend, pool_size=2)

    summary = dispatcher.run(items)

    state = dispatcher.store.load()
    assert state.failed_count == 1
    assert state.approved_count == 2
    assert items[2].identity in state.completed
    assert summary.failed == 1
    errors = (tmp_path / "errors.log").read_text("utf-8")
    assert errors.count("=== Failure #1") == 1
    assert "missing_success_token" in errors


def test_non_transient_backend_error_stops_admission(tmp_path: Path) -> None:
    items = _items(6)
    backend = _SlowBackend(delay=0.0, fatal_for=items[0].identity)
    dispatcher = _dispatcher(tmp_path, backend, pool_size=1)

    with pytest.raises(BackendRunError, match="vanished"):
        dispatcher.run(items)

    state = dispatcher.store.load()
    assert items[0].identity not in state.completed
    assert len(backend.calls) < len(items) - 1
    assert dispatcher.pool.live_count == 0


def test_rejects_non_positive_poll_interval(tmp_path: Path) -> None:
    runner = AttemptRunner(
        backend=_SlowBackend(),
        renderer=_StaticRenderer(),
        classifier=_VerdictClassifier(),
        probe=_AlwaysChangedProbe(),
        command_template="agent",
        model="sonnet",
        timeout_seconds=30,
    )

    with pytest.raises(ValueError, match="poll_interval_seconds"):
        ParallelDispatcher(
            store=ParallelStateStore(tmp_path / "review-state.json"),
            runner=runner,
            pool_size=2,
            poll_interval_seconds=0,
            error_log=ErrorLog(tmp_path / "errors.log"),
            artifacts=AttemptArtifacts(tmp_path / "attempts"),
        )


class _SaveFailsOnce(ParallelStateStore):
    def __init__(self, path: Path, *, failing_call: int) -> None:
        super().__init__(path)
        self.failing_call = failing_call
        self.saves = 0

    def save(self, state: ParallelState) -> None:
        self.saves += 1
        if self.saves == self.failing_call:
            raise StateStoreError("disk full")
        super().save(state)


def test_unwritable_error_log_does_not_abort_the_pool(tmp_path: Path) -> None:
    (tmp_path / "errors.log").mkdir()
    items = _items(3)
    backend = _SlowBackend(
        delay=0.1,
        delays={items[2].identity: 0.0},
        outputs={items[2].identity: "no token here"},
    )
    dispatcher = _dispatcher(tmp_path, backend, pool_size=3)

    summary = dispatcher.run(items)

    state = dispatcher.store.load()
    assert state.completed == {item.identity for item in items}
    assert state.failed_count == 1
    assert state.approved_count == 2
    assert summary.failed == 1
    assert dispatcher.pool.live_count == 0


def test_owner_failure_applies_live_slots_before_raising(tmp_path: Path) -> None:
    items = _items(4)
    backend = _SlowBackend(delay=0.05)
    dispatcher = _dispatcher(tmp_path, backend, pool_size=2)
    # first save records the total, the second is the first completion
    dispatcher.store = _SaveFailsOnce(tmp_path / "review-state.json", failing_call=2)

    with pytest.raises(StateStoreError, match="disk full"):
        dispatcher.run(items)

    assert dispatcher.pool.live_count == 0
    assert backend.live == 0
    assert items[3].identity not in backend.calls
    assert dispatcher.store.load().completed == set(backend.calls)
