"""Cursor-driven loop that retries each item up to a failure ceiling."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from revizorro.dispatch.attempt import AttemptRunner
from revizorro.dispatch.errors import StateStoreError
from revizorro.dispatch.journal import AttemptArtifacts, ErrorLog, GuardrailLog, append_or_log
from revizorro.dispatch.models import (
    AttemptRecord,
    GuardrailEntry,
    PolicyDecision,
    SequentialRunSummary,
    SequentialState,
    WorkItem,
    utc_now,
)
from revizorro.dispatch.policy import RetryPolicy
from revizorro.dispatch.state_store import SequentialStateStore

logger = logging.getLogger(__name__)


class SequentialDispatcher:
    """Drives one item at a time: attempt, classify, retry or dead-letter, advance.

    State is saved after every transition. On restart the loop resumes at the
    persisted cursor with the persisted failure count, so the item that was
    in flight keeps only the attempts left in its budget.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        store: SequentialStateStore,
        runner: AttemptRunner,
        policy: RetryPolicy,
        error_log: ErrorLog,
        guardrails: GuardrailLog,
        artifacts: AttemptArtifacts,
        on_progress: Callable[[str], None] | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.runner = runner
        self.policy = policy
        self.error_log = error_log
        self.guardrails = guardrails
        self.artifacts = artifacts
        self.clock = clock
        self._on_progress = on_progress or (lambda _msg: None)

    def run(self, items: list[WorkItem], *, max_items: int | None = None) -> SequentialRunSummary:
        """Process items from the persisted cursor to the end of the list.

        Args:
            items: The full worklist, in source order.
            max_items: Stop after this many items reached a terminal state
                (None = run to the end).
        """

        state = self.store.load()
        total = len(items)
        if state.cursor > total:
            raise StateStoreError(
                f"Persisted cursor {state.cursor} is past the end of a {total}-item worklist.",
            )
        self._reconcile_failure_item(state, items)

        summary = SequentialRunSummary(total=total)
        finalized = 0
        self._on_progress(f"Found {total} items to process")
        if state.cursor > 0:
            self._on_progress(
                f"Resuming at item {state.cursor + 1}/{total} "
                f"(consecutive failures: {state.failure_count})",
            )

        while state.cursor < total:
            if max_items is not None and finalized >= max_items:
                break
            item = items[state.cursor]
            self._on_progress(f"[{item.position}/{total}] Processing: {item.identity}")

            attempt_number = state.failure_count + 1
            record = self.runner.run(
                item,
                attempt_number=attempt_number,
                total=total,
                output_path=self.artifacts.marking_output(
                    index=item.index,
                    attempt=attempt_number,
                ),
            )
            summary.attempts += 1
            if record.timed_out:
                summary.timeouts += 1

            if record.outcome.ok:
                self._mark_succeeded(state, item)
                summary.succeeded += 1
                finalized += 1
                continue

            if self._record_failure(state, item, record) == PolicyDecision.RETRY:
                summary.retried += 1
            else:
                summary.dead_lettered += 1
                finalized += 1

        summary.cursor = state.cursor
        if state.cursor >= total:
            self._on_progress("All items processed")
        return summary

    def _mark_succeeded(self, state: SequentialState, item: WorkItem) -> None:
        state.processed.append(item.identity)
        self._advance(state)
        self.store.save(state)
        logger.info("Item %s succeeded", item.identity)
        self._on_progress(f"✓ SUCCESS: {item.identity}")

    def _record_failure(
        self,
        state: SequentialState,
        item: WorkItem,
        record: AttemptRecord,
    ) -> PolicyDecision:
        reason = record.outcome.reason or "unknown"
        decision = self.policy.decide(state.failure_count)
        failure_number = state.failure_count + 1
        self._on_progress(f"✗ FAILURE: {item.identity} ({reason})")

        if decision == PolicyDecision.RETRY:
            state.failure_count = failure_number
            state.failure_item = item.identity
            self.store.save(state)
            append_or_log(
                item.identity,
                self.error_log.append_failure,
                record,
                failure_number=failure_number,
            )
            self._on_progress(
                f"Retrying {item.identity} "
                f"(attempt {failure_number + 1}/{self.policy.ceiling})...",
            )
            return decision

        logger.warning(
            "Dead-lettering %s after %d consecutive failures",
            item.identity,
            failure_number,
        )
        state.dead_lettered.append(item.identity)
        self._advance(state)
        self.store.save(state)
        append_or_log(
            item.identity,
            self.error_log.append_failure,
            record,
            failure_number=failure_number,
        )
        append_or_log(
            item.identity,
            self.guardrails.append,
            GuardrailEntry(
                item=item.identity,
                reason=f"Failed {failure_number} times; last reason: {reason}",
                timestamp=self.clock(),
            ),
        )
        self._on_progress(
            f"⚠ GUTTER: {item.identity} failed {failure_number} times, skipping",
        )
        return decision

    @staticmethod
    def _advance(state: SequentialState) -> None:
        state.cursor += 1
        state.failure_count = 0
        state.failure_item = None

    @staticmethod
    def _reconcile_failure_item(state: SequentialState, items: list[WorkItem]) -> None:
        if state.failure_count == 0 or state.cursor >= len(items):
            return
        current = items[state.cursor].identity
        if state.failure_item is None:
            state.failure_item = current
            return
        if state.failure_item != current:
            logger.warning(
                "Discarding %d stale failures recorded for %s; cursor now points at %s",
                state.failure_count,
                state.failure_item,
                current,
            )
            state.failure_count = 0
            state.failure_item = None
