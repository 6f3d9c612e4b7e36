"""Local deterministic agent for CLI backend integration tests and dry runs."""

from __future__ import annotations

import argparse
import os
import re
import sys
import time
from pathlib import Path

from revizorro.dispatch.models import WorkItem
from revizorro.review.markers import MarkerState, parse_marker, render_marker

_TEST_CASE_RE = re.compile(
    r"^(?P<indent>\s*)"
    r"(?:async\s+def\s+test_|def\s+test_|it\(|test\(|fn\s+test_|func\s+Test|#\[test\])",
)


def main(argv: list[str] | None = None) -> int:
    """Mark or review the work item named by ``REVIZORRO_WORK_ITEM``."""

    parser = argparse.ArgumentParser()
    parser.add_argument("--mode", choices=("mark", "review"), required=True)
    parser.add_argument("--prompt-file", default=None)
    parser.add_argument("--verdict", choices=("approved", "suspect"), default="approved")
    parser.add_argument("--claim-only", action="store_true")
    parser.add_argument("--sleep", type=float, default=0.0)
    parser.add_argument("--exit-code", type=int, default=0)
    args = parser.parse_args(argv)

    prompt = (
        Path(args.prompt_file).read_text("utf-8") if args.prompt_file else sys.stdin.read()
    )
    identity = os.environ.get("REVIZORRO_WORK_ITEM", "")
    if not identity:
        print("echo_agent: REVIZORRO_WORK_ITEM is not set", file=sys.stderr)
        return 2
    if args.sleep > 0:
        time.sleep(args.sleep)

    item = WorkItem(index=0, identity=identity)
    print(f"echo_agent received {len(prompt)} prompt chars for {identity}")
    if args.mode == "mark":
        marked = 0 if args.claim_only else _mark_tests(item.path)
        print(f"MARKED: {marked} tests in {item.path}")
    else:
        if not args.claim_only:
            _review_marker(item, verdict=MarkerState(args.verdict))
        print(f"REVIEWED: {identity} - {args.verdict}")
    return args.exit_code


def _mark_tests(path: Path) -> int:
    lines = path.read_text("utf-8").splitlines()
    result: list[str] = []
    marked = 0
    for index, line in enumerate(lines):
        match = _TEST_CASE_RE.match(line)
        already_marked = index > 0 and parse_marker(lines[index - 1]) is not None
        if match is not None and not already_marked:
            result.append(match.group("indent") + render_marker(path, MarkerState.SCHEDULED))
            marked += 1
        result.append(line)
    path.write_text("\n".join(result) + "\n", "utf-8")
    return marked


def _review_marker(item: WorkItem, *, verdict: MarkerState) -> None:
    if item.line is None:
        raise ValueError(f"Review item has no line number: {item.identity}")
    lines = item.path.read_text("utf-8").splitlines()
    original = lines[item.line - 1]
    indent = original[: len(original) - len(original.lstrip())]
    note = "[echo agent flagged this test]" if verdict == MarkerState.SUSPECT else ""
    lines[item.line - 1] = indent + render_marker(item.path, verdict, note)
    item.path.write_text("\n".join(lines) + "\n", "utf-8")


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
