"""Subprocess-based worker invoker for CLI agents."""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
import time
from pathlib import Path

from revizorro.dispatch.backend.base import WorkerRequest, WorkerResult

logger = logging.getLogger(__name__)

TIMEOUT_EXIT_CODE = 124


class BackendRunError(RuntimeError):
    """Backend execution error with retryability hint."""

    def __init__(self, message: str, *, transient: bool) -> None:
        super().__init__(message)
        self.transient = transient


class CliAgentBackend:
    """Run a command template as a subprocess and capture everything it prints.

    The exit code is reported but never interpreted here; judging the attempt
    is the classifier's job.
    """

    def __init__(self, *, poll_seconds: float = 0.1) -> None:
        self.poll_seconds = poll_seconds

    def run(self, request: WorkerRequest) -> WorkerResult:
        output_path = request.output_path
        output_path.parent.mkdir(parents=True, exist_ok=True)
        prompt_file = output_path.with_suffix(".prompt.txt")
        prompt_file.write_text(request.prompt, "utf-8")

        run_args, command_head, prompt_on_stdin = _build_run_args(
            command_template=request.command_template,
            model=request.model,
            prompt=request.prompt,
            prompt_file=prompt_file.resolve(),
        )

        env = os.environ.copy()
        env["REVIZORRO_WORK_ITEM"] = request.item
        env["REVIZORRO_AGENT_MODEL"] = request.model

        try:
            with (
                output_path.open("w", encoding="utf-8") as output_handle,
                prompt_file.open("r", encoding="utf-8") as prompt_handle,
            ):
                exit_code, timed_out = _run_subprocess(
                    run_args=run_args,
                    env=env,
                    cwd=request.cwd,
                    stdin_handle=prompt_handle if prompt_on_stdin else subprocess.DEVNULL,
                    output_handle=output_handle,
                    timeout_seconds=request.timeout_seconds,
                    poll_seconds=self.poll_seconds,
                )
        except FileNotFoundError as error:
            raise BackendRunError(
                f"CLI backend command not found: {command_head}",
                transient=False,
            ) from error
        except PermissionError as error:
            raise BackendRunError(
                f"CLI backend command is not executable: {command_head}",
                transient=False,
            ) from error
        except OSError as error:
            raise BackendRunError(
                f"CLI backend failed to start: {error}",
                transient=True,
            ) from error

        if timed_out:
            logger.warning(
                "Worker for %s timed out after %ss",
                request.item,
                request.timeout_seconds,
            )
        return WorkerResult(
            exit_code=exit_code,
            timed_out=timed_out,
            output=output_path.read_text("utf-8", errors="replace"),
            output_path=output_path,
        )


def _build_run_args(
    *,
    command_template: str,
    model: str,
    prompt: str,
    prompt_file: Path,
) -> tuple[list[str], str, bool]:
    """Render the template into argv; prompt goes to stdin when not templated."""

    stripped = command_template.strip()
    if not stripped:
        raise BackendRunError("CLI backend command template is empty.", transient=False)

    prompt_on_stdin = "{prompt}" not in stripped and "{prompt_file}" not in stripped
    try:
        rendered = stripped.format(
            model=shlex.quote(model),
            prompt=shlex.quote(prompt),
            prompt_file=shlex.quote(str(prompt_file)),
        )
    except (KeyError, IndexError) as error:
        raise BackendRunError(
            f"Unsupported command template placeholder: {error}",
            transient=False,
        ) from error

    argv = shlex.split(rendered)
    if not argv:
        raise BackendRunError(
            "CLI backend command template rendered empty command.",
            transient=False,
        )
    return argv, argv[0], prompt_on_stdin


def _run_subprocess(  # noqa: PLR0913
    *,
    run_args: list[str],
    env: dict[str, str],
    cwd: Path | None,
    stdin_handle,
    output_handle,
    timeout_seconds: int,
    poll_seconds: float,
) -> tuple[int, bool]:
    process = subprocess.Popen(  # noqa: S603
        run_args,
        env=env,
        cwd=str(cwd) if cwd is not None else None,
        stdin=stdin_handle,
        stdout=output_handle,
        stderr=subprocess.STDOUT,
        text=True,
    )
    start_monotonic = time.monotonic()
    try:
        while True:
            returncode = process.poll()
            if returncode is not None:
                return returncode, False
            if time.monotonic() - start_monotonic >= timeout_seconds:
                _terminate_process(process)
                return TIMEOUT_EXIT_CODE, True
            time.sleep(poll_seconds)
    except BaseException:
        _terminate_process(process)
        raise


def _terminate_process(process: subprocess.Popen[str]) -> None:
    if process.poll() is not None:
        return
    try:
        process.terminate()
    except OSError:
        return
    try:
        process.wait(timeout=2)
    except subprocess.TimeoutExpired:
        try:
            process.kill()
        except OSError:
            return
        process.wait(timeout=2)
