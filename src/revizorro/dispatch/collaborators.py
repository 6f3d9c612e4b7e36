"""Interfaces the dispatchers consume from the surrounding tooling."""

from __future__ import annotations

from typing import Protocol

from revizorro.dispatch.backend.base import WorkerResult
from revizorro.dispatch.models import Outcome, WorkItem


class RequestRenderer(Protocol):
    """Renders the request fed to the worker for one item."""

    def render(self, item: WorkItem, *, total: int) -> str:
        """Return the full request text."""


class OutcomeClassifier(Protocol):
    """Judges one attempt from the captured output and the filesystem."""

    def classify(self, item: WorkItem, result: WorkerResult) -> Outcome:
        """Return SUCCESS or FAILURE(reason)."""


class ArtifactProbe(Protocol):
    """Independent side-effect check that corroborates a classifier success."""

    def snapshot(self, item: WorkItem) -> object:
        """Capture the artifact state before the attempt."""

    def corroborates(self, item: WorkItem, before: object) -> bool:
        """Return True when the artifact changed the way a success requires."""
