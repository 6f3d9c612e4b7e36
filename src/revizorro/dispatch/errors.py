"""Fatal dispatcher errors."""

from __future__ import annotations


class DispatchError(RuntimeError):
    """Run-level failure that stops the dispatcher."""


class StateStoreError(DispatchError):
    """Persisted state is unreadable or structurally invalid."""


class WorkListError(DispatchError):
    """Worklist is missing or unreadable."""
