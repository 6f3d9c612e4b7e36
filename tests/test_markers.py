from __future__ import annotations

from pathlib import Path

import allure

from revizorro.review.markers import (
    Marker,
    MarkerState,
    count_markers,
    iter_markers,
    parse_marker,
    read_marker_at,
    render_marker,
)

pytestmark = [
    allure.epic("Test Review"),
    allure.feature("Marker Comments"),
]


def test_render_marker_uses_language_comment_prefix() -> None:
    assert render_marker(Path("t/a_test.py"), MarkerState.SCHEDULED) == (
        "# test-revizorro: scheduled"
    )
    assert render_marker(Path("t/a.test.ts"), MarkerState.SUSPECT, "mocks everything") == (
        "// test-revizorro: suspect mocks everything"
    )


def test_parse_marker_reads_state_and_note_with_indentation() -> None:
    assert parse_marker("    // test-revizorro: suspect asserts a constant") == Marker(
        state=MarkerState.SUSPECT,
        note="asserts a constant",
    )
    assert parse_marker("# test-revizorro: approved") == Marker(state=MarkerState.APPROVED)


def test_parse_marker_ignores_other_lines() -> None:
    assert parse_marker("def test_revizorro_scheduled():") is None
    assert parse_marker("# test-revizorro: pending") is None
    assert parse_marker("") is None


def test_read_marker_at_handles_out_of_range_lines(tmp_path: Path) -> None:
    path = tmp_path / "test_a.py"
    path.write_text("# test-revizorro: scheduled\ndef test_a():\n    pass\n", "utf-8")

    assert read_marker_at(path, 1) == Marker(state=MarkerState.SCHEDULED)
    assert read_marker_at(path, 2) is None
    assert read_marker_at(path, 0) is None
    assert read_marker_at(path, 99) is None


def test_iter_markers_walks_in_path_order_and_skips_tool_dirs(tmp_path: Path) -> None:
    (tmp_path / "b").mkdir()
    (tmp_path / "node_modules" / "lib").mkdir(parents=True)
    (tmp_path / ".ralph-tests").mkdir()
    (tmp_path / "a.test.ts").write_text(
        "// test-revizorro: approved\nit('a', () => {})\n// test-revizorro: scheduled\n",
        "utf-8",
    )
    (tmp_path / "b" / "test_b.py").write_text("# test-revizorro: suspect odd\n", "utf-8")
    (tmp_path / "node_modules" / "lib" / "x.test.js").write_text(
        "// test-revizorro: scheduled\n",
        "utf-8",
    )
    (tmp_path / ".ralph-tests" / "notes.md").write_text("# test-revizorro: scheduled\n", "utf-8")

    found = [
        (path.relative_to(tmp_path).as_posix(), line) for path, line, _ in iter_markers(tmp_path)
    ]

    assert found == [("a.test.ts", 1), ("a.test.ts", 3), ("b/test_b.py", 1)]


def test_count_markers_tallies_each_state(tmp_path: Path) -> None:
    (tmp_path / "test_a.py").write_text(
        "# test-revizorro: approved\n"
        "# test-revizorro: approved\n"
        "# test-revizorro: suspect flaky\n"
        "# test-revizorro: scheduled\n",
        "utf-8",
    )

    census = count_markers(tmp_path)

    assert (census.approved, census.suspect, census.scheduled) == (2, 1, 1)


def test_count_markers_on_missing_root_is_empty(tmp_path: Path) -> None:
    census = count_markers(tmp_path / "missing")

    assert (census.approved, census.suspect, census.scheduled) == (0, 0, 0)
