"""Worker invoker implementations."""

from revizorro.dispatch.backend.base import WorkerBackend, WorkerRequest, WorkerResult
from revizorro.dispatch.backend.cli_backend import BackendRunError, CliAgentBackend

__all__ = [
    "BackendRunError",
    "CliAgentBackend",
    "WorkerBackend",
    "WorkerRequest",
    "WorkerResult",
]
