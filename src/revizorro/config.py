"""Runtime configuration for the marking and review dispatchers."""

from __future__ import annotations

import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_STATE_DIR = Path(".ralph-tests")
DEFAULT_AGENT_COMMAND = "claude -p --model {model} --permission-mode acceptEdits"


@dataclass(slots=True)
class AgentSettings:
    """How the agent subprocess is launched."""

    command_template: str = DEFAULT_AGENT_COMMAND
    model: str = "sonnet"
    timeout_seconds: int = 1_800


@dataclass(slots=True)
class SequentialSettings:
    """Marking loop settings."""

    failure_ceiling: int = 3
    max_items: int | None = None


@dataclass(slots=True)
class ParallelSettings:
    """Review pool settings."""

    concurrency_limit: int = 10
    poll_interval_seconds: float = 0.5


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern.

    Every file the dispatchers read or write lives under ``state_dir`` unless
    overridden individually.
    """

    project_root: Path = Path()
    test_root: Path = Path("test")
    state_dir: Path = DEFAULT_STATE_DIR
    worklist_path: Path | None = None
    review_list_path: Path | None = None
    state_path: Path | None = None
    review_state_path: Path | None = None
    agent: AgentSettings = field(default_factory=AgentSettings)
    sequential: SequentialSettings = field(default_factory=SequentialSettings)
    parallel: ParallelSettings = field(default_factory=ParallelSettings)

    @property
    def resolved_worklist_path(self) -> Path:
        return self.worklist_path or self.state_dir / "test-files.txt"

    @property
    def resolved_review_list_path(self) -> Path:
        return self.review_list_path or self.state_dir / "review-list.txt"

    @property
    def resolved_state_path(self) -> Path:
        return self.state_path or self.state_dir / "state.json"

    @property
    def resolved_review_state_path(self) -> Path:
        return self.review_state_path or self.state_dir / "review-state.json"

    @property
    def guardrails_path(self) -> Path:
        return self.state_dir / "guardrails.md"

    @property
    def errors_log_path(self) -> Path:
        return self.state_dir / "errors.log"

    @property
    def attempts_dir(self) -> Path:
        return self.state_dir / "attempts"

    @classmethod
    def from_env(cls, state_dir: Path | None = None) -> Settings:
        """Load settings from environment variables with defaults."""

        return cls(
            project_root=Path(os.getenv("REVIZORRO_PROJECT_ROOT", ".")),
            test_root=Path(os.getenv("REVIZORRO_TEST_ROOT", "test")),
            state_dir=state_dir or Path(os.getenv("REVIZORRO_STATE_DIR", str(DEFAULT_STATE_DIR))),
            worklist_path=_env_path("REVIZORRO_WORKLIST_PATH"),
            review_list_path=_env_path("REVIZORRO_REVIEW_LIST_PATH", fallback="REVIEW_LIST"),
            state_path=_env_path("REVIZORRO_STATE_PATH"),
            review_state_path=_env_path("REVIZORRO_REVIEW_STATE_PATH"),
            agent=AgentSettings(
                command_template=_agent_command(),
                model=os.getenv("REVIZORRO_AGENT_MODEL", "sonnet"),
                timeout_seconds=_env_int("REVIZORRO_AGENT_TIMEOUT_SECONDS", 1_800),
            ),
            sequential=SequentialSettings(
                failure_ceiling=_env_int("REVIZORRO_FAILURE_CEILING", 3),
                max_items=_env_optional_int("REVIZORRO_MAX_ITEMS"),
            ),
            parallel=ParallelSettings(
                concurrency_limit=_env_int(
                    "REVIZORRO_POOL_SIZE",
                    _env_int("POOL_SIZE", 10),
                ),
                poll_interval_seconds=_env_float("REVIZORRO_POLL_INTERVAL_SECONDS", 0.5),
            ),
        )

    def validate_for_marking(self) -> None:
        """Raise configuration error for invalid sequential-mode settings."""

        self._validate_agent()
        if self.sequential.failure_ceiling < 1:
            raise ValueError("REVIZORRO_FAILURE_CEILING must be a positive integer.")
        if self.sequential.max_items is not None and self.sequential.max_items < 1:
            raise ValueError("REVIZORRO_MAX_ITEMS must be a positive integer when set.")

    def validate_for_review(self) -> None:
        """Raise configuration error for invalid parallel-mode settings."""

        self._validate_agent()
        if self.parallel.concurrency_limit < 1:
            raise ValueError("REVIZORRO_POOL_SIZE must be a positive integer.")
        if self.parallel.poll_interval_seconds <= 0:
            raise ValueError("REVIZORRO_POLL_INTERVAL_SECONDS must be > 0.")

    def _validate_agent(self) -> None:
        if not self.agent.command_template.strip():
            raise ValueError("REVIZORRO_AGENT_COMMAND must not be empty.")
        if self.agent.timeout_seconds <= 0:
            raise ValueError("REVIZORRO_AGENT_TIMEOUT_SECONDS must be > 0.")


def _agent_command() -> str:
    explicit = os.getenv("REVIZORRO_AGENT_COMMAND", "").strip()
    if explicit:
        return explicit
    executable = os.getenv("CLAUDE_CLI", "").strip()
    if executable:
        _, _, flags = DEFAULT_AGENT_COMMAND.partition(" ")
        return f"{shlex.quote(executable)} {flags}"
    return DEFAULT_AGENT_COMMAND


def _env_path(name: str, fallback: str | None = None) -> Path | None:
    value = os.getenv(name, "").strip()
    if not value and fallback is not None:
        value = os.getenv(fallback, "").strip()
    return Path(value) if value else None


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value.strip())
    except ValueError as error:
        raise ValueError(f"Invalid integer value for {name}: {value!r}") from error


def _env_optional_int(name: str) -> int | None:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return _env_int(name, 0)


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value.strip())
    except ValueError as error:
        raise ValueError(f"Invalid number value for {name}: {value!r}") from error
