from __future__ import annotations

from pathlib import Path

import allure
import pytest

from revizorro.dispatch.attempt import UNCORROBORATED_SUCCESS, AttemptRunner
from revizorro.dispatch.backend import WorkerRequest, WorkerResult
from revizorro.dispatch.models import Outcome, OutcomeStatus, ReviewVerdict, WorkItem
from revizorro.review.classifiers import MarkingClassifier, ReviewClassifier
from revizorro.review.probes import FileSnapshot, MarkerLineProbe, MarkersAddedProbe

pytestmark = [
    allure.epic("Test Review"),
    allure.feature("Outcome Classification"),
]


def _result(output: str, *, timed_out: bool = False) -> WorkerResult:
    return WorkerResult(
        exit_code=124 if timed_out else 0,
        timed_out=timed_out,
        output=output,
        output_path=Path("out.log"),
    )


def test_marking_classifier_requires_token_and_no_timeout() -> None:
    classifier = MarkingClassifier()
    item = WorkItem(index=0, identity="test/a.py")

    assert classifier.classify(item, _result("MARKED: 3 tests in test/a.py")).ok
    assert classifier.classify(item, _result("done")).reason == "missing_success_token"
    assert classifier.classify(item, _result("MARKED: 1", timed_out=True)).reason == "timeout"


@pytest.mark.parametrize(
    ("marker_line", "expected_status", "expected"),
    [
        ("# test-revizorro: approved", OutcomeStatus.SUCCESS, ReviewVerdict.APPROVED),
        ("# test-revizorro: suspect tautology", OutcomeStatus.SUCCESS, ReviewVerdict.SUSPECT),
        ("# test-revizorro: scheduled", OutcomeStatus.FAILURE, "marker_still_scheduled"),
        ("# just a comment", OutcomeStatus.FAILURE, "marker_missing"),
    ],
)
def test_review_classifier_reads_marker_state(
    tmp_path: Path,
    marker_line: str,
    expected_status: OutcomeStatus,
    expected: object,
) -> None:
    (tmp_path / "test").mkdir()
    (tmp_path / "test" / "test_a.py").write_text(
        f"{marker_line}\ndef test_a():\n    pass\n",
        "utf-8",
    )
    item = WorkItem(index=0, identity="test/test_a.py:1")

    outcome = ReviewClassifier(tmp_path).classify(item, _result("REVIEWED: ok"))

    assert outcome.status == expected_status
    if expected_status == OutcomeStatus.SUCCESS:
        assert outcome.verdict == expected
    else:
        assert outcome.reason == expected


def test_review_classifier_needs_token_and_line(tmp_path: Path) -> None:
    classifier = ReviewClassifier(tmp_path)

    assert (
        classifier.classify(WorkItem(index=0, identity="a.py:1"), _result("nothing")).reason
        == "missing_success_token"
    )
    assert (
        classifier.classify(WorkItem(index=0, identity="a.py"), _result("REVIEWED: a.py")).reason
        == "item_has_no_line"
    )


def test_markers_added_probe_needs_new_scheduled_marker(tmp_path: Path) -> None:
    path = tmp_path / "test_a.py"
    path.write_text("def test_a():\n    pass\n", "utf-8")
    item = WorkItem(index=0, identity="test_a.py")
    probe = MarkersAddedProbe(tmp_path)

    before = probe.snapshot(item)
    path.write_text("def test_a():\n    pass\n\n", "utf-8")
    assert not probe.corroborates(item, before)

    path.write_text("# test-revizorro: scheduled\ndef test_a():\n    pass\n", "utf-8")
    assert probe.corroborates(item, before)
    assert probe.snapshot(item).scheduled == 1


def test_markers_added_probe_rejects_foreign_snapshot(tmp_path: Path) -> None:
    with pytest.raises(TypeError):
        MarkersAddedProbe(tmp_path).corroborates(WorkItem(index=0, identity="x.py"), "digest")


def test_missing_file_snapshot_is_empty(tmp_path: Path) -> None:
    snapshot = MarkersAddedProbe(tmp_path).snapshot(WorkItem(index=0, identity="gone.py"))

    assert snapshot == FileSnapshot(digest=None, scheduled=0)


def test_marker_line_probe_detects_rewritten_line(tmp_path: Path) -> None:
    path = tmp_path / "a.test.ts"
    path.write_text("// test-revizorro: scheduled\nit('a', () => {})\n", "utf-8")
    item = WorkItem(index=0, identity="a.test.ts:1")
    probe = MarkerLineProbe(tmp_path)

    before = probe.snapshot(item)
    assert not probe.corroborates(item, before)

    path.write_text("// test-revizorro: approved\nit('a', () => {})\n", "utf-8")
    assert probe.corroborates(item, before)


class _FixedBackend:
    def __init__(self, output: str) -> None:
        self.output = output
        self.requests: list[WorkerRequest] = []

    def run(self, request: WorkerRequest) -> WorkerResult:
        self.requests.append(request)
        return _result(self.output)


class _Renderer:
    def render(self, item: WorkItem, *, total: int) -> str:
        return f"{item.identity} of {total}"


class _FailingSnapshotProbe:
    def snapshot(self, item: WorkItem) -> object:
        raise OSError("permission denied")

    def corroborates(self, item: WorkItem, before: object) -> bool:
        return True


class _ExplodingClassifier:
    def classify(self, item: WorkItem, result: WorkerResult) -> Outcome:
        raise ValueError("unparseable output")


def _runner(backend, *, classifier, probe) -> AttemptRunner:
    return AttemptRunner(
        backend=backend,
        renderer=_Renderer(),
        classifier=classifier,
        probe=probe,
        command_template="agent",
        model="sonnet",
        timeout_seconds=5,
    )


def test_attempt_runner_turns_uncorroborated_claim_into_failure(tmp_path: Path) -> None:
    (tmp_path / "test_a.py").write_text("def test_a():\n    pass\n", "utf-8")
    backend = _FixedBackend("MARKED: 1 tests in test_a.py")
    runner = _runner(backend, classifier=MarkingClassifier(), probe=MarkersAddedProbe(tmp_path))

    record = runner.run(
        WorkItem(index=0, identity="test_a.py"),
        attempt_number=1,
        total=4,
        output_path=tmp_path / "out.log",
    )

    assert record.outcome.reason == UNCORROBORATED_SUCCESS
    assert backend.requests[0].prompt == "test_a.py of 4"


def test_attempt_runner_skips_worker_when_snapshot_fails(tmp_path: Path) -> None:
    backend = _FixedBackend("MARKED: 1")
    runner = _runner(backend, classifier=MarkingClassifier(), probe=_FailingSnapshotProbe())

    record = runner.run(
        WorkItem(index=0, identity="a.py"),
        attempt_number=2,
        total=1,
        output_path=tmp_path / "out.log",
    )

    assert backend.requests == []
    assert record.attempt_number == 2
    assert record.outcome.reason == "probe_error: permission denied"


def test_attempt_runner_absorbs_classifier_errors(tmp_path: Path) -> None:
    runner = _runner(
        _FixedBackend("anything"),
        classifier=_ExplodingClassifier(),
        probe=MarkerLineProbe(tmp_path),
    )

    record = runner.run(
        WorkItem(index=0, identity="a.py:1"),
        attempt_number=1,
        total=1,
        output_path=tmp_path / "out.log",
    )

    assert record.outcome.status == OutcomeStatus.FAILURE
    assert record.outcome.reason == "classifier_error: unparseable output"
