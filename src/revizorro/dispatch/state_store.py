"""Durable JSON state documents for both dispatch modes."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from revizorro.dispatch.errors import StateStoreError
from revizorro.dispatch.fs import atomic_write
from revizorro.dispatch.models import ParallelState, SequentialState


def dump_json(payload: dict[str, Any]) -> str:
    """Render JSON with deterministic formatting."""

    return json.dumps(payload, ensure_ascii=False, indent=2, sort_keys=True) + "\n"


def load_json(path: Path) -> dict[str, Any]:
    """Load a JSON document and validate its top-level object type."""

    try:
        payload = json.loads(path.read_text("utf-8"))
    except (OSError, UnicodeDecodeError) as error:
        raise StateStoreError(f"Cannot read state file {path}: {error}") from error
    except json.JSONDecodeError as error:
        raise StateStoreError(f"State file {path} is not valid JSON: {error}") from error
    if not isinstance(payload, dict):
        raise StateStoreError(f"Expected JSON object in {path}")
    return payload


def _write_document(path: Path, payload: dict[str, Any]) -> None:
    try:
        atomic_write(path, dump_json(payload))
    except OSError as error:
        raise StateStoreError(f"Cannot write state file {path}: {error}") from error


class SequentialStateStore:
    """Load/save the cursor document of the sequential loop."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> SequentialState:
        """Return persisted state, or a zeroed state on first run."""

        if not self.path.exists():
            return SequentialState()
        return _parse_sequential(load_json(self.path), path=self.path)

    def save(self, state: SequentialState) -> None:
        _write_document(
            self.path,
            {
                "current_index": state.cursor,
                "failure_count": state.failure_count,
                "failure_item": state.failure_item,
                "processed": list(state.processed),
                "dead_lettered": list(state.dead_lettered),
            },
        )

    def initialize(self) -> SequentialState:
        """Overwrite the document with a zeroed state."""

        state = SequentialState()
        self.save(state)
        return state


class ParallelStateStore:
    """Load/save the aggregate document of the review pool."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> ParallelState:
        if not self.path.exists():
            return ParallelState()
        return _parse_parallel(load_json(self.path), path=self.path)

    def save(self, state: ParallelState) -> None:
        _write_document(
            self.path,
            {
                "phase": state.phase,
                "total": state.total,
                "completed": sorted(state.completed),
                "approved": state.approved_count,
                "suspect": state.suspect_count,
                "failed": state.failed_count,
            },
        )

    def initialize(self, *, total: int = 0) -> ParallelState:
        state = ParallelState(total=total)
        self.save(state)
        return state


def _parse_sequential(raw: dict[str, Any], *, path: Path) -> SequentialState:
    cursor = _non_negative_int(raw, "current_index", path=path)
    failure_count = _non_negative_int(raw, "failure_count", path=path)
    failure_item = raw.get("failure_item")
    if failure_item is not None and not isinstance(failure_item, str):
        raise StateStoreError(f"{path}: failure_item must be a string when provided")
    processed = _identity_list(raw, "processed", path=path)
    dead_lettered = _identity_list(raw, "dead_lettered", path=path, required=False)

    overlap = set(processed) & set(dead_lettered)
    if overlap:
        raise StateStoreError(
            f"{path}: items both processed and dead-lettered: {', '.join(sorted(overlap))}",
        )
    if len(processed) + len(dead_lettered) > cursor:
        raise StateStoreError(
            f"{path}: {len(processed) + len(dead_lettered)} finalized items "
            f"but current_index is {cursor}",
        )
    return SequentialState(
        cursor=cursor,
        failure_count=failure_count,
        failure_item=failure_item,
        processed=processed,
        dead_lettered=dead_lettered,
    )


def _parse_parallel(raw: dict[str, Any], *, path: Path) -> ParallelState:
    phase = raw.get("phase", 2)
    if not isinstance(phase, int) or isinstance(phase, bool):
        raise StateStoreError(f"{path}: phase must be an integer")
    completed = _identity_list(raw, "completed", path=path)
    return ParallelState(
        phase=phase,
        total=_non_negative_int(raw, "total", path=path),
        completed=set(completed),
        approved_count=_non_negative_int(raw, "approved", path=path),
        suspect_count=_non_negative_int(raw, "suspect", path=path),
        failed_count=_non_negative_int(raw, "failed", path=path, required=False),
    )


def _non_negative_int(
    raw: dict[str, Any],
    key: str,
    *,
    path: Path,
    required: bool = True,
) -> int:
    if key not in raw:
        if required:
            raise StateStoreError(f"{path}: missing required field {key!r}")
        return 0
    value = raw[key]
    if not isinstance(value, int) or isinstance(value, bool) or value < 0:
        raise StateStoreError(f"{path}: {key} must be a non-negative integer, got {value!r}")
    return value


def _identity_list(
    raw: dict[str, Any],
    key: str,
    *,
    path: Path,
    required: bool = True,
) -> list[str]:
    if key not in raw:
        if required:
            raise StateStoreError(f"{path}: missing required field {key!r}")
        return []
    value = raw[key]
    if not isinstance(value, list):
        raise StateStoreError(f"{path}: {key} must be an array")
    items: list[str] = []
    seen: set[str] = set()
    for entry in value:
        if not isinstance(entry, str) or not entry.strip():
            raise StateStoreError(f"{path}: {key} entries must be non-empty strings")
        if entry in seen:
            raise StateStoreError(f"{path}: duplicate entry in {key}: {entry}")
        seen.add(entry)
        items.append(entry)
    return items
