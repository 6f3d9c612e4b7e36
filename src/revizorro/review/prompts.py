"""Request payloads rendered for one work item."""

from __future__ import annotations

from revizorro.dispatch.journal import GuardrailLog
from revizorro.dispatch.models import WorkItem
from revizorro.review.markers import MARKER_TAG, comment_prefix

MARKED_TOKEN = "MARKED:"
REVIEWED_TOKEN = "REVIEWED:"


class MarkingPromptRenderer:
    """Asks the agent to put a scheduled marker above every active test in one file.

    The guardrail log is re-read on every render so items dead-lettered
    earlier in the run already shape the next request.
    """

    def __init__(self, guardrails: GuardrailLog) -> None:
        self.guardrails = guardrails

    def render(self, item: WorkItem, *, total: int) -> str:
        marker = f"{comment_prefix(item.path)} {MARKER_TAG} scheduled"
        guardrails = self.guardrails.read_text().strip() or "(none yet)"
        return (
            f"# TEST MARKING - test-revizorro Phase 1 - [{item.position}/{total}]\n"
            "\n"
            "You are a fresh agent session. Your ONLY job: mark all test cases in this "
            "ONE test file.\n"
            "\n"
            "## Test File\n"
            f"`{item.path.as_posix()}`\n"
            "\n"
            "## Steps\n"
            "1. Read the entire test file.\n"
            "2. Identify every individual test case (not the file).\n"
            f"3. Add this comment on its own line directly above each test: `{marker}`\n"
            "4. Do NOT modify test logic; only add comments.\n"
            "5. Skip tests that are already marked and tests that are disabled.\n"
            "\n"
            "## Guardrails\n"
            "\n"
            f"{guardrails}\n"
            "\n"
            "## On Completion\n"
            "\n"
            f'Output: "{MARKED_TOKEN} N tests in {item.path.as_posix()}" (where N is count)\n'
        )


class ReviewPromptRenderer:
    """Asks the agent to judge one scheduled test and rewrite its marker."""

    def render(self, item: WorkItem, *, total: int) -> str:
        prefix = comment_prefix(item.path)
        return (
            f"# TEST REVIEW - test-revizorro Phase 2 - [{item.position}/{total}]\n"
            "\n"
            "You are a fresh agent session. Your ONLY job: review ONE test case for "
            "AI-generated antipatterns.\n"
            "\n"
            "## Test Location\n"
            f"File: `{item.path.as_posix()}`\n"
            f"Line: {item.line} (marker comment line; the test starts on the next line)\n"
            "\n"
            "## Steps\n"
            "1. Read the test and the application code it exercises.\n"
            "2. Look for fake passes, useless mocks, and assertions that cannot fail.\n"
            "3. Rewrite ONLY the marker comment on that line:\n"
            f"   - good test: `{prefix} {MARKER_TAG} approved`\n"
            f"   - problematic test: `{prefix} {MARKER_TAG} suspect [one-line reason]`\n"
            "4. Do not modify test logic.\n"
            "\n"
            "## On Completion\n"
            "\n"
            f'Output: "{REVIEWED_TOKEN} {item.identity} - [approved|suspect]"\n'
        )
