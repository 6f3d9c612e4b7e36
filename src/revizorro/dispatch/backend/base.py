"""Backend interface for worker invocations."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol


@dataclass(slots=True)
class WorkerRequest:
    """Inputs required to run one worker attempt."""

    item: str
    prompt: str
    output_path: Path
    command_template: str
    model: str
    timeout_seconds: int
    cwd: Path | None = None


@dataclass(slots=True)
class WorkerResult:
    """Captured output and terminal status of one worker attempt."""

    exit_code: int
    timed_out: bool
    output: str
    output_path: Path


class WorkerBackend(Protocol):
    """Protocol implemented by worker invokers."""

    def run(self, request: WorkerRequest) -> WorkerResult:
        """Run one attempt and return its captured output."""
