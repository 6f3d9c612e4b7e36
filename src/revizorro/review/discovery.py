"""Worklist discovery: test files to mark and scheduled markers to review."""

from __future__ import annotations

import json
import logging
import shutil
import subprocess
from enum import Enum
from fnmatch import fnmatch
from pathlib import Path

from revizorro.review.markers import MarkerState, iter_markers

logger = logging.getLogger(__name__)

_GLOB_PATTERNS: tuple[str, ...] = (
    "*.test.ts",
    "*.test.js",
    "*.spec.ts",
    "*.spec.js",
    "*_test.py",
    "test_*.py",
    "*_test.go",
)
_SKIPPED_DIRS = frozenset(
    {"node_modules", ".git", ".venv", "venv", "__pycache__", "target", ".ralph-tests"},
)


class TestFramework(str, Enum):
    """Test runners with a native way to list test files."""

    __test__ = False

    VITEST = "vitest"
    JEST = "jest"
    PYTEST = "pytest"
    CARGO = "cargo"
    GO = "go"
    UNKNOWN = "unknown"


def detect_framework(root: Path) -> TestFramework:
    """Pick the framework from project files, in the same order a human would."""

    package_json = root / "package.json"
    if package_json.is_file():
        try:
            manifest = json.loads(package_json.read_text("utf-8"))
        except (OSError, json.JSONDecodeError):
            logger.warning("Cannot parse %s; falling back to glob discovery", package_json)
            return TestFramework.UNKNOWN
        declared: set[str] = set()
        for section in ("dependencies", "devDependencies"):
            value = manifest.get(section)
            if isinstance(value, dict):
                declared.update(value)
        if "vitest" in declared:
            return TestFramework.VITEST
        if "jest" in declared:
            return TestFramework.JEST
        return TestFramework.UNKNOWN
    if (root / "pytest.ini").is_file() or (root / "pyproject.toml").is_file():
        return TestFramework.PYTEST
    if (root / "Cargo.toml").is_file():
        return TestFramework.CARGO
    if (root / "go.mod").is_file():
        return TestFramework.GO
    return TestFramework.UNKNOWN


def list_test_files(
    root: Path,
    framework: TestFramework | None = None,
    *,
    timeout_seconds: int = 300,
) -> list[str]:
    """Sorted, de-duplicated test file paths relative to ``root``."""

    resolved = framework or detect_framework(root)
    logger.info("Detected test framework: %s", resolved.value)

    listed: list[str] | None = None
    if resolved == TestFramework.VITEST:
        listed = _run_lister(
            ["npx", "vitest", "list"],
            root=root,
            timeout_seconds=timeout_seconds,
            parse=lambda line: line.split(" > ", 1)[0],
        )
    elif resolved == TestFramework.JEST:
        listed = _run_lister(
            ["npx", "jest", "--listTests"],
            root=root,
            timeout_seconds=timeout_seconds,
            parse=lambda line: _relative(Path(line), root),
        )
    elif resolved == TestFramework.PYTEST:
        listed = _run_lister(
            ["pytest", "--collect-only", "-q"],
            root=root,
            timeout_seconds=timeout_seconds,
            parse=lambda line: line.split("::", 1)[0] if "::" in line else "",
        )
    elif resolved == TestFramework.CARGO:
        listed = [
            _relative(path, root)
            for path in _walk(root)
            if path.name.endswith("_test.rs")
            or (path.suffix == ".rs" and path.parent.name == "tests")
        ]
    elif resolved == TestFramework.GO:
        listed = [_relative(path, root) for path in _walk(root) if path.name.endswith("_test.go")]

    if listed is None:
        listed = [
            _relative(path, root)
            for path in _walk(root)
            if any(fnmatch(path.name, pattern) for pattern in _GLOB_PATTERNS)
        ]
    return sorted({entry for entry in listed if entry})


def list_review_items(project_root: Path, test_root: Path) -> list[str]:
    """Every scheduled marker under ``test_root`` as a ``path:line`` identity.

    Paths are relative to ``project_root``, where the agent runs.
    """

    return [
        f"{_relative(path, project_root)}:{line}"
        for path, line, marker in iter_markers(project_root / test_root)
        if marker.state == MarkerState.SCHEDULED
    ]


def _run_lister(
    argv: list[str],
    *,
    root: Path,
    timeout_seconds: int,
    parse,
) -> list[str] | None:
    if shutil.which(argv[0]) is None:
        logger.warning("%s not found in PATH; falling back to glob discovery", argv[0])
        return None
    try:
        completed = subprocess.run(  # noqa: S603
            argv,
            cwd=str(root),
            capture_output=True,
            text=True,
            timeout=timeout_seconds,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired) as error:
        logger.warning("%s failed (%s); falling back to glob discovery", " ".join(argv), error)
        return None
    return [parse(line.strip()) for line in completed.stdout.splitlines() if line.strip()]


def _walk(root: Path) -> list[Path]:
    return [
        path
        for path in sorted(root.rglob("*"))
        if path.is_file()
        and not any(part in _SKIPPED_DIRS for part in path.relative_to(root).parts)
    ]


def _relative(path: Path, root: Path) -> str:
    try:
        return path.resolve().relative_to(root.resolve()).as_posix()
    except ValueError:
        return path.as_posix()
