"""Side-effect probes that corroborate a classifier's success."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from pathlib import Path

from revizorro.dispatch.models import WorkItem
from revizorro.review.markers import MarkerState, parse_marker


@dataclass(frozen=True, slots=True)
class FileSnapshot:
    """Content digest and scheduled-marker count of one file."""

    digest: str | None
    scheduled: int


class MarkersAddedProbe:
    """Corroborates marking: the file changed and gained scheduled markers."""

    def __init__(self, root: Path) -> None:
        self.root = root

    def snapshot(self, item: WorkItem) -> FileSnapshot:
        return _file_snapshot(self.root / item.path)

    def corroborates(self, item: WorkItem, before: object) -> bool:
        if not isinstance(before, FileSnapshot):
            raise TypeError(f"Unexpected snapshot type: {type(before).__name__}")
        after = _file_snapshot(self.root / item.path)
        return after.digest != before.digest and after.scheduled > before.scheduled


class MarkerLineProbe:
    """Corroborates review: the marker line of the item was rewritten."""

    def __init__(self, root: Path) -> None:
        self.root = root

    def snapshot(self, item: WorkItem) -> str | None:
        return _line_text(self.root / item.path, item.line)

    def corroborates(self, item: WorkItem, before: object) -> bool:
        return _line_text(self.root / item.path, item.line) != before


def _file_snapshot(path: Path) -> FileSnapshot:
    if not path.is_file():
        return FileSnapshot(digest=None, scheduled=0)
    data = path.read_bytes()
    text = data.decode("utf-8", errors="replace")
    scheduled = 0
    for line in text.splitlines():
        marker = parse_marker(line)
        if marker is not None and marker.state == MarkerState.SCHEDULED:
            scheduled += 1
    return FileSnapshot(digest=hashlib.sha256(data).hexdigest(), scheduled=scheduled)


def _line_text(path: Path, line: int | None) -> str | None:
    if line is None or not path.is_file():
        return None
    lines = path.read_text("utf-8").splitlines()
    if line < 1 or line > len(lines):
        return None
    return lines[line - 1].strip()
