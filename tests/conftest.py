"""
Shared fixtures: settings rooted in a temp dir, a whitespace token counter,
fake HTTP responses and a deterministic embedder. No network is touched.
"""
import json
import sys
from pathlib import Path

import pytest

# Ensure src is on path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from config import Settings  # noqa: E402


class WordEstimator:
    """One token per whitespace-separated word, plus the usual per-message overhead."""

    overhead = 4

    def estimate(self, text):
        return len(text.split())

    def message_cost(self, message):
        return self.overhead + self.estimate(message.role) + self.estimate(message.content)


class FakeResponse:
    """Just enough of requests.Response for the client."""

    def __init__(self, status_code=200, body=None, lines=None, reason="OK"):
        self.status_code = status_code
        self.reason = reason
        self._body = body
        self._lines = lines or []
        self._error_after = None
        self._error = None
        self.closed = False

    @property
    def text(self):
        if isinstance(self._body, str):
            return self._body
        return json.dumps(self._body)

    def json(self):
        if isinstance(self._body, str):
            return json.loads(self._body)
        return self._body

    def iter_lines(self):
        for i, line in enumerate(self._lines):
            if self._error_after is not None and i == self._error_after:
                raise self._error
            yield line.encode("utf-8") if isinstance(line, str) else line
        if self._error_after is not None and self._error_after >= len(self._lines):
            raise self._error

    def fail_with(self, exc, after):
        self._error_after = after
        self._error = exc
        return self

    def close(self):
        self.closed = True


class FakeEmbedder:
    """Looks texts up in a table, or raises error when one is set."""

    def __init__(self, vectors=None, error=None):
        self.vectors = dict(vectors or {})
        self.error = error
        self.calls = []

    def embed(self, text):
        self.calls.append(text)
        if self.error is not None:
            raise self.error
        return list(self.vectors[text])


def sse(*fragments, done=True):
    lines = [
        "data: " + json.dumps({"choices": [{"delta": {"content": f}}]})
        for f in fragments
    ]
    if done:
        lines.append("data: [DONE]")
    return lines


@pytest.fixture
def settings(tmp_path):
    return Settings(api_key="sk-test", api_base="http://llm.test", home=tmp_path)


@pytest.fixture
def estimator():
    return WordEstimator()
