"""Append-only forensic logs: failed attempt output, guardrails, attempt artifacts."""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

from revizorro.dispatch.fs import append_text, atomic_write
from revizorro.dispatch.models import AttemptRecord, GuardrailEntry

logger = logging.getLogger(__name__)

GUARDRAILS_TEMPLATE = """\
# Guardrails

Learned patterns from failures. Read before each file.

## General Rules

- Read entire test file first
- Mark all active test cases
- Skip disabled tests
- Be idempotent
- Don't modify test logic

---

## Project-Specific Learnings

(Accumulates as files are processed)
"""


class ErrorLog:
    """Aggregates the full output of every failed attempt."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def initialize(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.touch()

    def append_failure(self, record: AttemptRecord, *, failure_number: int) -> None:
        reason = record.outcome.reason or "unknown"
        header = (
            f"=== Failure #{failure_number} for {record.item.identity} "
            f"(attempt {record.attempt_number}, exit={record.exit_code}, "
            f"reason={reason}) ===\n"
        )
        body = record.raw_output
        if body and not body.endswith("\n"):
            body += "\n"
        append_text(self.path, f"{header}{body}\n")


class GuardrailLog:
    """Human-readable log of dead-lettered items.

    The marking prompt embeds this file, so entries written here steer the
    agent on later items and later runs.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def initialize(self) -> None:
        atomic_write(self.path, GUARDRAILS_TEMPLATE)

    def append(self, entry: GuardrailEntry) -> None:
        append_text(
            self.path,
            "\n---\n\n"
            f"## {entry.item}\n\n"
            f"**Status**: GUTTER ({entry.status.value} at {entry.timestamp.isoformat()})\n\n"
            f"**Reason**: {entry.reason}\n",
        )

    def read_text(self) -> str:
        if not self.path.is_file():
            return ""
        return self.path.read_text("utf-8")


class AttemptArtifacts:
    """Deterministic per-attempt output file naming."""

    def __init__(self, root: Path) -> None:
        self.root = root

    def marking_output(self, *, index: int, attempt: int) -> Path:
        return self.root / f"mark-{index:05d}-{attempt:02d}.log"

    def review_output(self, *, index: int) -> Path:
        return self.root / f"review-{index:05d}.log"


def append_or_log(identity: str, append: Callable[..., None], *args: Any, **kwargs: Any) -> None:
    """Run a journal append, logging a write error instead of raising it.

    Callers save dispatch state before journaling, so a lost entry never
    loses a state transition.
    """

    try:
        append(*args, **kwargs)
    except OSError:
        logger.exception("Cannot write journal entry for %s", identity)
