"""Controllers for dispatcher CLI commands."""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from revizorro.config import Settings
from revizorro.dispatch.attempt import AttemptRunner
from revizorro.dispatch.backend import CliAgentBackend
from revizorro.dispatch.collaborators import ArtifactProbe, OutcomeClassifier, RequestRenderer
from revizorro.dispatch.journal import AttemptArtifacts, ErrorLog, GuardrailLog
from revizorro.dispatch.parallel import ParallelDispatcher
from revizorro.dispatch.policy import RetryPolicy
from revizorro.dispatch.sequential import SequentialDispatcher
from revizorro.dispatch.state_store import ParallelStateStore, SequentialStateStore
from revizorro.dispatch.worklist import read_worklist, write_worklist
from revizorro.review.classifiers import MarkingClassifier, ReviewClassifier
from revizorro.review.discovery import list_review_items, list_test_files
from revizorro.review.markers import count_markers
from revizorro.review.probes import MarkerLineProbe, MarkersAddedProbe
from revizorro.review.prompts import MarkingPromptRenderer, ReviewPromptRenderer

ProgressCallback = Callable[[str], None]


@dataclass(slots=True)
class SetupCommand:
    """CLI input for marking-phase setup."""

    state_dir: Path | None


@dataclass(slots=True)
class MarkCommand:
    """CLI input for the sequential marking loop."""

    state_dir: Path | None
    max_items: int | None = None
    failure_ceiling: int | None = None
    agent_command: str | None = None


@dataclass(slots=True)
class SetupReviewCommand:
    """CLI input for review-phase setup."""

    state_dir: Path | None


@dataclass(slots=True)
class ReviewCommand:
    """CLI input for the parallel review pool."""

    state_dir: Path | None
    pool_size: int | None = None
    agent_command: str | None = None


@dataclass(slots=True)
class StatusCommand:
    """CLI input for state inspection."""

    state_dir: Path | None


class DispatchCliController:
    """Coordinates setup, dispatch, and inspection CLI operations."""

    def setup(self, command: SetupCommand) -> list[str]:
        settings = Settings.from_env(state_dir=command.state_dir)
        settings.state_dir.mkdir(parents=True, exist_ok=True)

        files = list_test_files(settings.project_root)
        count = write_worklist(settings.resolved_worklist_path, files)
        SequentialStateStore(settings.resolved_state_path).initialize()
        GuardrailLog(settings.guardrails_path).initialize()
        ErrorLog(settings.errors_log_path).initialize()

        return [
            f"Found {count} test files",
            f"Written to: {settings.resolved_worklist_path}",
            "✓ Setup complete",
            f"Next: review {settings.resolved_worklist_path}, then run `revizorro mark`",
        ]

    def mark(self, command: MarkCommand, *, on_progress: ProgressCallback) -> list[str]:
        settings = Settings.from_env(state_dir=command.state_dir)
        if command.failure_ceiling is not None:
            settings.sequential.failure_ceiling = command.failure_ceiling
        if command.max_items is not None:
            settings.sequential.max_items = command.max_items
        if command.agent_command is not None:
            settings.agent.command_template = command.agent_command
        settings.validate_for_marking()

        items = read_worklist(settings.resolved_worklist_path)
        guardrails = GuardrailLog(settings.guardrails_path)
        dispatcher = SequentialDispatcher(
            store=SequentialStateStore(settings.resolved_state_path),
            runner=_attempt_runner(
                settings,
                renderer=MarkingPromptRenderer(guardrails),
                classifier=MarkingClassifier(),
                probe=MarkersAddedProbe(settings.project_root),
            ),
            policy=RetryPolicy(ceiling=settings.sequential.failure_ceiling),
            error_log=ErrorLog(settings.errors_log_path),
            guardrails=guardrails,
            artifacts=AttemptArtifacts(settings.attempts_dir),
            on_progress=on_progress,
        )
        summary = dispatcher.run(items, max_items=settings.sequential.max_items)
        return [
            "Marking summary: "
            f"cursor={summary.cursor}/{summary.total} attempts={summary.attempts} "
            f"succeeded={summary.succeeded} retried={summary.retried} "
            f"dead_lettered={summary.dead_lettered} timeouts={summary.timeouts}",
        ]

    def setup_review(self, command: SetupReviewCommand) -> list[str]:
        settings = Settings.from_env(state_dir=command.state_dir)
        settings.state_dir.mkdir(parents=True, exist_ok=True)

        identities = list_review_items(settings.project_root, settings.test_root)
        count = write_worklist(settings.resolved_review_list_path, identities)
        ParallelStateStore(settings.resolved_review_state_path).initialize(total=count)
        ErrorLog(settings.errors_log_path).initialize()

        return [
            f"Found {count} test cases to review",
            f"Written to: {settings.resolved_review_list_path}",
            "✓ Review setup complete",
            "Next: set REVIZORRO_POOL_SIZE, then run `revizorro review`",
        ]

    def review(self, command: ReviewCommand, *, on_progress: ProgressCallback) -> list[str]:
        settings = Settings.from_env(state_dir=command.state_dir)
        if command.pool_size is not None:
            settings.parallel.concurrency_limit = command.pool_size
        if command.agent_command is not None:
            settings.agent.command_template = command.agent_command
        settings.validate_for_review()

        items = read_worklist(settings.resolved_review_list_path)
        dispatcher = ParallelDispatcher(
            store=ParallelStateStore(settings.resolved_review_state_path),
            runner=_attempt_runner(
                settings,
                renderer=ReviewPromptRenderer(),
                classifier=ReviewClassifier(settings.project_root),
                probe=MarkerLineProbe(settings.project_root),
            ),
            pool_size=settings.parallel.concurrency_limit,
            poll_interval_seconds=settings.parallel.poll_interval_seconds,
            error_log=ErrorLog(settings.errors_log_path),
            artifacts=AttemptArtifacts(settings.attempts_dir),
            on_progress=on_progress,
        )
        summary = dispatcher.run(items)
        census = count_markers(settings.project_root / settings.test_root)
        return [
            "Review summary: "
            f"submitted={summary.submitted} skipped={summary.skipped} "
            f"approved={summary.approved} suspect={summary.suspect} "
            f"failed={summary.failed} timeouts={summary.timeouts} "
            f"peak_slots={summary.peak_live_slots}",
            "=== SUMMARY ===",
            f"Approved: {census.approved}",
            f"Suspect: {census.suspect}",
            f"Remaining scheduled: {census.scheduled}",
        ]

    def status(self, command: StatusCommand) -> list[str]:
        settings = Settings.from_env(state_dir=command.state_dir)
        lines: list[str] = []

        marking = SequentialStateStore(settings.resolved_state_path)
        if marking.path.exists():
            state = marking.load()
            lines.append(
                "Marking: "
                f"cursor={state.cursor} failure_count={state.failure_count} "
                f"processed={len(state.processed)} dead_lettered={len(state.dead_lettered)}",
            )
        else:
            lines.append(f"Marking: no state at {marking.path}")

        review = ParallelStateStore(settings.resolved_review_state_path)
        if review.path.exists():
            state = review.load()
            lines.append(
                "Review: "
                + json.dumps(
                    {
                        "total": state.total,
                        "completed": len(state.completed),
                        "approved": state.approved_count,
                        "suspect": state.suspect_count,
                        "failed": state.failed_count,
                    },
                    sort_keys=True,
                ),
            )
        else:
            lines.append(f"Review: no state at {review.path}")
        return lines


def _attempt_runner(
    settings: Settings,
    *,
    renderer: RequestRenderer,
    classifier: OutcomeClassifier,
    probe: ArtifactProbe,
) -> AttemptRunner:
    return AttemptRunner(
        backend=CliAgentBackend(),
        renderer=renderer,
        classifier=classifier,
        probe=probe,
        command_template=settings.agent.command_template,
        model=settings.agent.model,
        timeout_seconds=settings.agent.timeout_seconds,
        cwd=settings.project_root,
    )
