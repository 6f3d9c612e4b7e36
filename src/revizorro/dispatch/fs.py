"""Filesystem helpers for crash-safe state writes."""

from __future__ import annotations

import contextlib
import os
import tempfile
from pathlib import Path


def atomic_write(path: Path, data: str, *, encoding: str = "utf-8") -> None:
    """Atomically replace ``path`` with ``data``.

    The payload goes to a temp file in the destination directory, is flushed
    and fsynced, then swapped in with ``os.replace``. Readers see either the
    previous document or the new one, never a partial write.
    """

    path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(
        prefix=f".{path.name}.",
        suffix=".tmp",
        dir=str(path.parent),
    )
    temp_path = Path(temp_name)
    try:
        with os.fdopen(fd, "w", encoding=encoding) as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(temp_path, path)
        _fsync_directory(path.parent)
    except BaseException:
        with contextlib.suppress(OSError):
            temp_path.unlink(missing_ok=True)
        raise


def append_text(path: Path, text: str, *, encoding: str = "utf-8") -> None:
    """Append ``text`` to ``path``, creating parent directories as needed."""

    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding=encoding) as handle:
        handle.write(text)


def _fsync_directory(path: Path) -> None:
    if os.name == "nt":
        return
    with contextlib.suppress(OSError):
        dir_fd = os.open(path, os.O_RDONLY)
        try:
            os.fsync(dir_fd)
        finally:
            os.close(dir_fd)
