"""Bounded-parallel pool that gives each item exactly one attempt."""

from __future__ import annotations

import logging
import queue
from collections.abc import Callable
from dataclasses import dataclass

from revizorro.dispatch.attempt import AttemptRunner
from revizorro.dispatch.journal import AttemptArtifacts, ErrorLog, append_or_log
from revizorro.dispatch.models import (
    AttemptRecord,
    ParallelRunSummary,
    ParallelState,
    ReviewVerdict,
    WorkItem,
)
from revizorro.dispatch.pool import SlotPool
from revizorro.dispatch.state_store import ParallelStateStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SlotCompletion:
    """Message a slot posts to the owner when its attempt ends."""

    item: WorkItem
    record: AttemptRecord | None = None
    error: BaseException | None = None


class ParallelDispatcher:
    """Runs up to ``pool_size`` attempts at once and aggregates their verdicts.

    Slots never touch ``ParallelState``: they post a ``SlotCompletion`` to a
    queue and the dispatcher's own thread is the only one that applies it
    and saves. Admission waits on the pool semaphore in ``poll_interval``
    slices so completions keep being applied while the pool is full.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        store: ParallelStateStore,
        runner: AttemptRunner,
        pool_size: int,
        poll_interval_seconds: float,
        error_log: ErrorLog,
        artifacts: AttemptArtifacts,
        on_progress: Callable[[str], None] | None = None,
    ) -> None:
        if poll_interval_seconds <= 0:
            raise ValueError("poll_interval_seconds must be > 0")
        self.store = store
        self.runner = runner
        self.pool = SlotPool(pool_size)
        self.poll_interval_seconds = poll_interval_seconds
        self.error_log = error_log
        self.artifacts = artifacts
        self._on_progress = on_progress or (lambda _msg: None)
        self._completions: queue.Queue[SlotCompletion] = queue.Queue()
        self._fatal: BaseException | None = None
        self._outstanding = 0

    def run(self, items: list[WorkItem]) -> ParallelRunSummary:
        state = self.store.load()
        total = len(items)
        state.total = total
        self.store.save(state)

        pending = [item for item in items if item.identity not in state.completed]
        summary = ParallelRunSummary(total=total, skipped=total - len(pending))
        self._fatal = None
        self._outstanding = 0
        self._on_progress(f"Starting review pool (size: {self.pool.limit})")
        self._on_progress(f"Total items: {total} (already completed: {summary.skipped})")

        try:
            for item in pending:
                while not self.pool.acquire(timeout=self.poll_interval_seconds):
                    self._drain(state, summary, wait=False)
                if self._fatal is not None:
                    self.pool.release_unused()
                    break
                self.pool.spawn(item, self._slot_target(item, total=total))
                self._outstanding += 1
                summary.submitted += 1
                self._on_progress(f"[{item.position}/{total}] Spawning: {item.identity}")
                self._drain(state, summary, wait=False)

            if self._outstanding:
                self._on_progress("Waiting for all jobs to complete...")
            while self._outstanding > 0:
                self._drain(state, summary, wait=True)
        except BaseException:
            self._settle(state, summary)
            raise
        finally:
            self.pool.join()
            summary.peak_live_slots = self.pool.peak

        if self._fatal is not None:
            raise self._fatal
        self._on_progress("✓ All reviews complete")
        return summary

    def _slot_target(self, item: WorkItem, *, total: int) -> Callable[[], None]:
        def _run() -> None:
            try:
                record = self.runner.run(
                    item,
                    attempt_number=1,
                    total=total,
                    output_path=self.artifacts.review_output(index=item.index),
                )
            except Exception as error:  # noqa: BLE001
                self._completions.put(SlotCompletion(item=item, error=error))
                return
            self._completions.put(SlotCompletion(item=item, record=record))

        return _run

    def _drain(self, state: ParallelState, summary: ParallelRunSummary, *, wait: bool) -> None:
        applied = 0
        while True:
            try:
                if wait and applied == 0:
                    completion = self._completions.get(timeout=self.poll_interval_seconds)
                else:
                    completion = self._completions.get_nowait()
            except queue.Empty:
                return
            self._outstanding -= 1
            applied += 1
            self._apply(completion, state, summary)

    def _settle(self, state: ParallelState, summary: ParallelRunSummary) -> None:
        """Admit nothing more and apply the completion of every slot still running."""

        while self._outstanding > 0:
            try:
                self._drain(state, summary, wait=True)
            except Exception:
                logger.exception("Cannot apply slot completion while stopping the pool")

    def _apply(
        self,
        completion: SlotCompletion,
        state: ParallelState,
        summary: ParallelRunSummary,
    ) -> None:
        item = completion.item
        record = completion.record
        if record is None:
            logger.error("Slot for %s aborted: %s", item.identity, completion.error)
            if self._fatal is None:
                self._fatal = completion.error
            return

        state.completed.add(item.identity)
        if record.timed_out:
            summary.timeouts += 1
        if record.outcome.ok:
            if record.outcome.verdict == ReviewVerdict.SUSPECT:
                state.suspect_count += 1
                summary.suspect += 1
            else:
                state.approved_count += 1
                summary.approved += 1
            verdict = record.outcome.verdict.value if record.outcome.verdict else "done"
            self._on_progress(f"✓ Completed: {item.identity} ({verdict})")
        else:
            state.failed_count += 1
            summary.failed += 1
            append_or_log(
                item.identity,
                self.error_log.append_failure,
                record,
                failure_number=1,
            )
            self._on_progress(
                f"✗ Failed: {item.identity} "
                f"(exit: {record.exit_code}, reason: {record.outcome.reason})",
            )
        self.store.save(state)
