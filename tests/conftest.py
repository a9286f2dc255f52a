import json
import threading

import pytest

from diffscreen.config import Settings
from diffscreen.llm import LLMResponse


GITIGNORE_DIFF = "\n".join(
    [
        "diff --git a/.gitignore b/.gitignore",
        "index 1234567..89abcde 100644",
        "--- a/.gitignore",
        "+++ b/.gitignore",
        "@@ -1,4 +1,5 @@",
        " target/",
        " *.log",
        " .env",
        " .venv/",
        "+output/",
    ]
) + "\n"

APP_DIFF = "\n".join(
    [
        "diff --git a/app.py b/app.py",
        "index 1111111..2222222 100644",
        "--- a/app.py",
        "+++ b/app.py",
        "@@ -10,3 +10,4 @@ def main():",
        "     setup()",
        '-    print("debug")',
        '+    logger.info("starting")',
        "+    run()",
        "     return 0",
        "@@ -40,2 +41,2 @@ class Worker:",
        "-    x = 1",
        "+    x = 2",
        "     y = 2",
    ]
) + "\n"

NEW_FILE_DIFF = "\n".join(
    [
        "diff --git a/docs/notes.md b/docs/notes.md",
        "new file mode 100644",
        "index 0000000..e69de29",
        "--- /dev/null",
        "+++ b/docs/notes.md",
        "@@ -0,0 +1,2 @@",
        "+# Notes",
        "+Write these up.",
    ]
) + "\n"

BINARY_DIFF = "\n".join(
    [
        "diff --git a/logo.png b/logo.png",
        "index 3333333..4444444 100644",
        "Binary files a/logo.png and b/logo.png differ",
    ]
) + "\n"

RENAME_DIFF = "\n".join(
    [
        "diff --git a/old_name.py b/new_name.py",
        "similarity index 100%",
        "rename from old_name.py",
        "rename to new_name.py",
    ]
) + "\n"


def findings_reply(*findings: dict) -> str:
    return json.dumps({"findings": list(findings)})


def additions_diff(path: str, hunks: list[tuple[int, list[str]]]) -> str:
    """A diff of pure additions: one hunk per (first new line, added lines)."""
    out = [f"diff --git a/{path} b/{path}", f"--- a/{path}", f"+++ b/{path}"]
    shift = 0
    for start, lines in hunks:
        out.append(f"@@ -{start - 1 - shift},0 +{start},{len(lines)} @@")
        out.extend(f"+{l}" for l in lines)
        shift += len(lines)
    return "\n".join(out) + "\n"


class FakeInvoker:
    """Stands in for llm.invoke: replies chosen per file of the request."""

    def __init__(self, replies: dict[str, object] | None = None, default: str = '{"findings": []}'):
        self.replies = replies or {}
        self.default = default
        self.requests = []
        self._lock = threading.Lock()

    def __call__(self, request, settings, **kwargs) -> LLMResponse:
        with self._lock:
            self.requests.append(request)
        first_line = request.user_message.splitlines()[0]
        path = first_line.removeprefix("## File: ")
        reply = self.replies.get(path, self.default)
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            reply = reply(request)
        return LLMResponse(
            text=reply,
            stop_reason="end_turn",
            input_tokens=100,
            output_tokens=20,
            latency_ms=5,
        )


@pytest.fixture
def settings() -> Settings:
    return Settings(max_concurrency=2)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in (
        "DIFFSCREEN_BASE",
        "DIFFSCREEN_MAX_UNIT_CHARS",
        "DIFFSCREEN_CONTEXT_LINES",
        "DIFFSCREEN_CONCURRENCY",
        "DIFFSCREEN_MODEL_ID",
        "DIFFSCREEN_AWS_PROFILE",
        "DIFFSCREEN_AWS_REGION",
        "DIFFSCREEN_MAX_TOKENS",
    ):
        monkeypatch.delenv(name, raising=False)
