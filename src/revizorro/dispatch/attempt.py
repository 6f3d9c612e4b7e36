"""One worker attempt: render, snapshot, invoke, classify, corroborate."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from revizorro.dispatch.backend import BackendRunError, WorkerBackend, WorkerRequest
from revizorro.dispatch.collaborators import ArtifactProbe, OutcomeClassifier, RequestRenderer
from revizorro.dispatch.models import AttemptRecord, Outcome, WorkItem, utc_now

logger = logging.getLogger(__name__)

UNCORROBORATED_SUCCESS = "uncorroborated_success"


class AttemptRunner:
    """Runs a single attempt and never lets a per-item problem escape.

    Every per-item failure (probe error, transient backend error, classifier
    error, success claim without side effect) comes back as a FAILURE
    outcome. Only a non-transient ``BackendRunError`` propagates, because it
    means the agent command itself is broken and every item would fail.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        backend: WorkerBackend,
        renderer: RequestRenderer,
        classifier: OutcomeClassifier,
        probe: ArtifactProbe,
        command_template: str,
        model: str,
        timeout_seconds: int,
        cwd: Path | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.backend = backend
        self.renderer = renderer
        self.classifier = classifier
        self.probe = probe
        self.command_template = command_template
        self.model = model
        self.timeout_seconds = timeout_seconds
        self.cwd = cwd
        self.clock = clock

    def run(
        self,
        item: WorkItem,
        *,
        attempt_number: int,
        total: int,
        output_path: Path,
    ) -> AttemptRecord:
        started_at = self.clock()
        try:
            before = self.probe.snapshot(item)
        except (OSError, ValueError) as error:
            logger.warning("Cannot snapshot %s before attempt: %s", item.identity, error)
            return _record(
                item=item,
                attempt_number=attempt_number,
                started_at=started_at,
                outcome=Outcome.failure(f"probe_error: {error}"),
            )

        request = WorkerRequest(
            item=item.identity,
            prompt=self.renderer.render(item, total=total),
            output_path=output_path,
            command_template=self.command_template,
            model=self.model,
            timeout_seconds=self.timeout_seconds,
            cwd=self.cwd,
        )
        try:
            result = self.backend.run(request)
        except BackendRunError as error:
            if not error.transient:
                raise
            logger.warning("Transient backend error for %s: %s", item.identity, error)
            return _record(
                item=item,
                attempt_number=attempt_number,
                started_at=started_at,
                outcome=Outcome.failure(f"backend_transient: {error}"),
                raw_output=str(error),
                output_path=output_path,
            )

        try:
            outcome = self.classifier.classify(item, result)
            if outcome.ok and not self.probe.corroborates(item, before):
                logger.info(
                    "Agent reported success for %s but no side effect was found",
                    item.identity,
                )
                outcome = Outcome.failure(UNCORROBORATED_SUCCESS)
        except (OSError, ValueError) as error:
            outcome = Outcome.failure(f"classifier_error: {error}")

        return AttemptRecord(
            item=item,
            attempt_number=attempt_number,
            started_at=started_at,
            raw_output=result.output,
            exit_code=result.exit_code,
            timed_out=result.timed_out,
            outcome=outcome,
            output_path=result.output_path,
        )


def _record(  # noqa: PLR0913
    *,
    item: WorkItem,
    attempt_number: int,
    started_at: datetime,
    outcome: Outcome,
    raw_output: str = "",
    output_path: Path | None = None,
) -> AttemptRecord:
    return AttemptRecord(
        item=item,
        attempt_number=attempt_number,
        started_at=started_at,
        raw_output=raw_output,
        exit_code=None,
        timed_out=False,
        outcome=outcome,
        output_path=output_path,
    )
