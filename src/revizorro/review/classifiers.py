"""Outcome classifiers for the marking and review phases."""

from __future__ import annotations

from pathlib import Path

from revizorro.dispatch.backend.base import WorkerResult
from revizorro.dispatch.models import Outcome, ReviewVerdict, WorkItem
from revizorro.review.markers import MarkerState, read_marker_at
from revizorro.review.prompts import MARKED_TOKEN, REVIEWED_TOKEN


class MarkingClassifier:
    """Success needs the ``MARKED:`` completion line in the agent output."""

    def classify(self, item: WorkItem, result: WorkerResult) -> Outcome:
        if result.timed_out:
            return Outcome.failure("timeout")
        if MARKED_TOKEN not in result.output:
            return Outcome.failure("missing_success_token")
        return Outcome.success()


class ReviewClassifier:
    """Success needs ``REVIEWED:`` in the output and a resolved marker on the item line."""

    def __init__(self, root: Path) -> None:
        self.root = root

    def classify(self, item: WorkItem, result: WorkerResult) -> Outcome:
        if result.timed_out:
            return Outcome.failure("timeout")
        if REVIEWED_TOKEN not in result.output:
            return Outcome.failure("missing_success_token")
        if item.line is None:
            return Outcome.failure("item_has_no_line")

        marker = read_marker_at(self.root / item.path, item.line)
        if marker is None:
            return Outcome.failure("marker_missing")
        if marker.state == MarkerState.APPROVED:
            return Outcome.success(verdict=ReviewVerdict.APPROVED)
        if marker.state == MarkerState.SUSPECT:
            return Outcome.success(verdict=ReviewVerdict.SUSPECT)
        return Outcome.failure("marker_still_scheduled")
