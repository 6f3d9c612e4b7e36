"""CLI entrypoint for revizorro."""

import logging
from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

import rich_click as click

from revizorro import __version__
from revizorro.dispatch.backend import BackendRunError
from revizorro.dispatch.controllers import (
    DispatchCliController,
    MarkCommand,
    ReviewCommand,
    SetupCommand,
    SetupReviewCommand,
    StatusCommand,
)
from revizorro.dispatch.errors import DispatchError

click.rich_click.USE_MARKDOWN = True
DISPATCH_CONTROLLER = DispatchCliController()

T = TypeVar("T")

_STATE_DIR_OPTION = click.option(
    "--state-dir",
    type=click.Path(path_type=Path, file_okay=False),
    default=None,
    help="State directory (default: .ralph-tests or REVIZORRO_STATE_DIR).",
)
_AGENT_COMMAND_OPTION = click.option(
    "--agent-command",
    default=None,
    help="Agent command template; overrides REVIZORRO_AGENT_COMMAND.",
)


@click.group()
@click.version_option(version=__version__, prog_name="revizorro")
@click.option("--verbose", is_flag=True, default=False, help="Log dispatcher internals to stderr.")
def revizorro(verbose: bool) -> None:
    """Mark and review suspicious tests with a coding agent."""

    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )


@revizorro.command("setup")
@_STATE_DIR_OPTION
def setup(state_dir: Path | None) -> None:
    """Discover test files and initialize marking state."""

    _emit_lines(_run(lambda: DISPATCH_CONTROLLER.setup(SetupCommand(state_dir=state_dir))))


@revizorro.command("mark")
@_STATE_DIR_OPTION
@click.option(
    "--max-items",
    type=click.IntRange(min=1),
    default=None,
    help="Stop after this many items reach a terminal state.",
)
@click.option(
    "--failure-ceiling",
    type=click.IntRange(min=1),
    default=None,
    help="Failed attempts before an item is moved to guardrails (default: 3).",
)
@_AGENT_COMMAND_OPTION
def mark(
    state_dir: Path | None,
    max_items: int | None,
    failure_ceiling: int | None,
    agent_command: str | None,
) -> None:
    """Walk the test-file list one item at a time, retrying failures."""

    _emit_lines(
        _run(
            lambda: DISPATCH_CONTROLLER.mark(
                MarkCommand(
                    state_dir=state_dir,
                    max_items=max_items,
                    failure_ceiling=failure_ceiling,
                    agent_command=agent_command,
                ),
                on_progress=click.echo,
            ),
        ),
    )


@revizorro.command("setup-review")
@_STATE_DIR_OPTION
def setup_review(state_dir: Path | None) -> None:
    """Collect scheduled markers into the review list."""

    _emit_lines(
        _run(lambda: DISPATCH_CONTROLLER.setup_review(SetupReviewCommand(state_dir=state_dir))),
    )


@revizorro.command("review")
@_STATE_DIR_OPTION
@click.option(
    "--pool-size",
    type=click.IntRange(min=1),
    default=None,
    help="Maximum concurrent agent invocations (default: 10 or REVIZORRO_POOL_SIZE).",
)
@_AGENT_COMMAND_OPTION
def review(state_dir: Path | None, pool_size: int | None, agent_command: str | None) -> None:
    """Review every scheduled test case with a bounded worker pool."""

    _emit_lines(
        _run(
            lambda: DISPATCH_CONTROLLER.review(
                ReviewCommand(
                    state_dir=state_dir,
                    pool_size=pool_size,
                    agent_command=agent_command,
                ),
                on_progress=click.echo,
            ),
        ),
    )


@revizorro.command("status")
@_STATE_DIR_OPTION
def status(state_dir: Path | None) -> None:
    """Show marking and review progress."""

    _emit_lines(_run(lambda: DISPATCH_CONTROLLER.status(StatusCommand(state_dir=state_dir))))


def _run(action: Callable[[], T]) -> T:
    try:
        return action()
    except (DispatchError, BackendRunError, ValueError) as error:
        raise click.ClickException(str(error)) from error


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    revizorro()
