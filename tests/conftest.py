"""Shared test fixtures."""

from __future__ import annotations

import os
import shlex
import sys
from collections.abc import Callable
from pathlib import Path

import pytest

_SRC_DIR = Path(__file__).resolve().parents[1] / "src"

ALPHA_TESTS = """\
import pytest


def test_one():
    assert 1 + 1 == 2


def test_two():
    assert "a".upper() == "A"
"""

BETA_TESTS = """\
def test_three():
    assert [] == []
"""


@pytest.fixture()
def echo_agent_command(monkeypatch) -> Callable[..., str]:
    """Build command templates that run the local echo agent in a subprocess."""

    existing = os.environ.get("PYTHONPATH", "")
    monkeypatch.setenv(
        "PYTHONPATH",
        f"{_SRC_DIR}{os.pathsep}{existing}" if existing else str(_SRC_DIR),
    )

    def _build(*args: str) -> str:
        return " ".join(
            [shlex.quote(sys.executable), "-m", "revizorro.dispatch.backend.echo_agent", *args],
        )

    return _build


@pytest.fixture()
def sample_project(tmp_path: Path) -> Path:
    """Project with two python test files under ``test/`` and no framework manifest."""

    root = tmp_path / "project"
    tests = root / "test"
    tests.mkdir(parents=True)
    (tests / "test_alpha.py").write_text(ALPHA_TESTS, "utf-8")
    (tests / "test_beta.py").write_text(BETA_TESTS, "utf-8")
    (tests / "helpers.py").write_text("VALUE = 1\n", "utf-8")
    return root
