"""Marker comments that carry per-test review state inside test files."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

logger = logging.getLogger(__name__)

MARKER_TAG = "test-revizorro:"

_MARKER_RE = re.compile(
    r"(?P<prefix>#|//)\s*test-revizorro:\s*(?P<state>scheduled|approved|suspect)\b\s*(?P<note>.*)$",
)
_HASH_COMMENT_SUFFIXES = frozenset({".py", ".rb", ".sh", ".pl", ".r", ".jl", ".ex", ".exs"})
_SKIPPED_DIRS = frozenset(
    {"node_modules", ".git", ".venv", "venv", "__pycache__", "target", ".ralph-tests"},
)


class MarkerState(str, Enum):
    """States a marker comment moves through."""

    SCHEDULED = "scheduled"
    APPROVED = "approved"
    SUSPECT = "suspect"


@dataclass(frozen=True, slots=True)
class Marker:
    """One parsed marker comment."""

    state: MarkerState
    note: str = ""


@dataclass(slots=True)
class MarkerCensus:
    """Counts of marker states across a test tree."""

    approved: int = 0
    suspect: int = 0
    scheduled: int = 0


def comment_prefix(path: Path) -> str:
    """Line-comment token for the language of ``path``."""

    return "#" if path.suffix.lower() in _HASH_COMMENT_SUFFIXES else "//"


def render_marker(path: Path, state: MarkerState, note: str = "") -> str:
    text = f"{comment_prefix(path)} {MARKER_TAG} {state.value}"
    if note:
        text += f" {note}"
    return text


def parse_marker(line: str) -> Marker | None:
    """Parse a marker comment anywhere on ``line``; ``None`` when absent."""

    match = _MARKER_RE.search(line.rstrip("\n"))
    if match is None:
        return None
    return Marker(state=MarkerState(match.group("state")), note=match.group("note").strip())


def read_marker_at(path: Path, line: int) -> Marker | None:
    """Return the marker on one-based ``line`` of ``path``."""

    lines = path.read_text("utf-8").splitlines()
    if line < 1 or line > len(lines):
        return None
    return parse_marker(lines[line - 1])


def iter_markers(root: Path) -> Iterator[tuple[Path, int, Marker]]:
    """Yield ``(path, line, marker)`` for every marker under ``root`` in path order."""

    for path in _iter_text_files(root):
        try:
            text = path.read_text("utf-8")
        except (OSError, UnicodeDecodeError):
            logger.debug("Skipping unreadable file %s", path, exc_info=True)
            continue
        if MARKER_TAG not in text:
            continue
        for number, line in enumerate(text.splitlines(), start=1):
            marker = parse_marker(line)
            if marker is not None:
                yield path, number, marker


def count_markers(root: Path) -> MarkerCensus:
    census = MarkerCensus()
    for _, _, marker in iter_markers(root):
        if marker.state == MarkerState.APPROVED:
            census.approved += 1
        elif marker.state == MarkerState.SUSPECT:
            census.suspect += 1
        else:
            census.scheduled += 1
    return census


def _iter_text_files(root: Path) -> Iterator[Path]:
    if root.is_file():
        yield root
        return
    if not root.is_dir():
        return
    for path in sorted(root.rglob("*")):
        if any(part in _SKIPPED_DIRS for part in path.relative_to(root).parts):
            continue
        if path.is_file():
            yield path
