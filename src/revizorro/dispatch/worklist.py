"""Line-oriented worklist files consumed by the dispatchers."""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

from revizorro.dispatch.errors import WorkListError
from revizorro.dispatch.fs import atomic_write
from revizorro.dispatch.models import WorkItem


def read_worklist(path: Path) -> list[WorkItem]:
    """Read one identity per line; blank lines are ignored, duplicates rejected."""

    if not path.is_file():
        raise WorkListError(f"{path} not found. Run setup first.")
    try:
        text = path.read_text("utf-8")
    except (OSError, UnicodeDecodeError) as error:
        raise WorkListError(f"Cannot read worklist {path}: {error}") from error

    identities = [line.strip() for line in text.splitlines() if line.strip()]
    seen: set[str] = set()
    for identity in identities:
        if identity in seen:
            raise WorkListError(f"Duplicate item in worklist {path}: {identity}")
        seen.add(identity)
    return [WorkItem(index=index, identity=identity) for index, identity in enumerate(identities)]


def write_worklist(path: Path, identities: Iterable[str]) -> int:
    """Persist identities one per line and return how many were written."""

    lines = [identity for identity in identities if identity.strip()]
    atomic_write(path, "".join(f"{line}\n" for line in lines))
    return len(lines)
