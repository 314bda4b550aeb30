# tests/conftest.py
from __future__ import annotations

import asyncio
import base64
import email
import sys
from pathlib import Path
from types import SimpleNamespace

import httpx
import pytest

# Ensure project root importable
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from src.models import VerificationVerdict  # noqa: E402
from src.search.backend import SearchHit  # noqa: E402


class ScriptedVerifier:
    """
    Verifier double: verdicts by address, INVALID for anything unscripted.

    A scripted value that is an Exception instance is raised instead.
    """

    def __init__(self, verdicts: dict[str, object] | None = None) -> None:
        self.verdicts = dict(verdicts or {})
        self.calls: list[str] = []

    async def verify(self, email: str) -> VerificationVerdict:
        self.calls.append(email)
        v = self.verdicts.get(email, VerificationVerdict.INVALID)
        if isinstance(v, Exception):
            raise v
        return v  # type: ignore[return-value]


class ScriptedSearch:
    """Search double: hits by exact query string, [] for anything unscripted."""

    def __init__(self, results: dict[str, object] | None = None) -> None:
        self.results = dict(results or {})
        self.queries: list[str] = []

    async def search(self, query: str) -> list[SearchHit]:
        self.queries.append(query)
        r = self.results.get(query, [])
        if isinstance(r, Exception):
            raise r
        return list(r)  # type: ignore[call-overload]


class FakeTransport:
    """
    Mail transport double.

    ``script`` maps recipient -> status codes (or exceptions) consumed one per
    attempt; the last entry repeats. Unscripted recipients get 200.
    """

    def __init__(self, script: dict[str, list[object]] | None = None) -> None:
        self.script = {k: list(v) for k, v in (script or {}).items()}
        self.sent: list[tuple[str, str]] = []
        self.messages: list[email.message.Message] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def send_raw(self, access_token: str, raw: str) -> httpx.Response:
        padded = raw + "=" * (-len(raw) % 4)
        msg = email.message_from_bytes(base64.urlsafe_b64decode(padded))
        to = str(msg["To"])
        self.sent.append((access_token, to))
        self.messages.append(msg)

        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            # yield so sibling workers get a chance to overlap
            await asyncio.sleep(0)
        finally:
            self.in_flight -= 1

        steps = self.script.get(to, [200])
        step = steps.pop(0) if len(steps) > 1 else steps[0]
        if isinstance(step, Exception):
            raise step
        status = int(step)  # type: ignore[call-overload]
        req = httpx.Request("POST", "https://gmail.test/send")
        if 200 <= status < 300:
            return httpx.Response(status, json={"id": f"msg-{len(self.sent)}"}, request=req)
        return httpx.Response(status, text=f"status {status}", request=req)

    def attempts_for(self, to: str) -> int:
        return sum(1 for _, t in self.sent if t == to)


def _hit(url: str, text: str) -> SearchHit:
    return SearchHit(url=url, title="", content=text)


@pytest.fixture
def fakes() -> SimpleNamespace:
    """Test doubles for the verifier, search provider and mail transport."""
    return SimpleNamespace(
        Verifier=ScriptedVerifier,
        Search=ScriptedSearch,
        Transport=FakeTransport,
        hit=_hit,
    )


@pytest.fixture
def sleeps():
    """Async sleep stand-in; requested delays land in sleeps.delays."""
    delays: list[float] = []

    async def sleep(seconds: float) -> None:
        delays.append(seconds)

    sleep.delays = delays  # type: ignore[attr-defined]
    return sleep
