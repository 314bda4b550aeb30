from __future__ import annotations

import asyncio
import json

import pytest

from src.discover.machine import EmailDiscovery
from src.discover.research import ResearchController
from src.discover.stream import DiscoveryStream, encode_event, sse_frames
from src.models import DiscoveryRequest, VerificationVerdict
from src.verify.finder import PatternFinder

REQUEST = DiscoveryRequest(name="Jane Doe", company="Acme", domain="acme.com")


def _stream(verifier, search, **kwargs) -> DiscoveryStream:
    discovery = EmailDiscovery(PatternFinder(verifier), ResearchController(search, verifier))
    return DiscoveryStream(discovery, REQUEST, **kwargs)


async def _collect(stream: DiscoveryStream) -> list[dict]:
    return [e async for e in stream.events()]


def _terminals(events: list[dict]) -> list[dict]:
    return [e for e in events if e.get("type") != "step"]


def test_exhausted_run_emits_paired_steps_then_one_terminal(fakes):
    events = asyncio.run(_collect(_stream(fakes.Verifier(), fakes.Search(), conversation_id="c-1")))

    steps = [e["step"] for e in events if e.get("type") == "step"]
    assert [(s["id"], s["status"]) for s in steps] == [
        ("step_1", "running"),
        ("step_1", "done"),
        ("step_2", "running"),
        ("step_2", "done"),
        ("step_3", "running"),
        ("step_3", "done"),
        ("step_4", "running"),
        ("step_4", "done"),
    ]
    assert steps[0]["label"] == "Trying email patterns"
    assert steps[2]["label"] == "Researching web (attempt 1/3)"
    assert steps[6]["label"] == "Researching web (attempt 3/3)"

    terminal = _terminals(events)
    assert len(terminal) == 1
    assert events[-1] is terminal[0]
    assert terminal[0]["done"] is True
    assert terminal[0]["conversationId"] == "c-1"
    assert terminal[0]["result"]["success"] is False
    assert terminal[0]["result"]["attemptsExhausted"] is True


def test_pattern_hit_emits_one_step(fakes):
    verifier = fakes.Verifier({"jane.doe@acme.com": VerificationVerdict.VALID})
    events = asyncio.run(_collect(_stream(verifier, fakes.Search())))

    assert [e["step"]["status"] for e in events if e.get("type") == "step"] == ["running", "done"]
    result = events[-1]["result"]
    assert result["email"] == "jane.doe@acme.com"
    assert result["verificationStatus"] == "verified"
    assert result["method"] == "pattern"


def test_conversation_id_is_generated_when_missing(fakes):
    stream = _stream(fakes.Verifier(), fakes.Search())
    events = asyncio.run(_collect(stream))
    assert stream.conversation_id
    assert events[-1]["conversationId"] == stream.conversation_id


def test_unexpected_error_closes_step_and_emits_error(fakes):
    class Broken:
        async def verify(self, email: str):
            raise RuntimeError("verifier exploded")

    events = asyncio.run(_collect(_stream(Broken(), fakes.Search())))

    assert [e["step"]["status"] for e in events if e.get("type") == "step"] == ["running", "done"]
    terminal = _terminals(events)
    assert len(terminal) == 1
    assert terminal[0]["error"] == "verifier exploded"
    assert "done" not in terminal[0]


def test_cancel_mid_run_stops_lookups_and_emits_cancelled(fakes):
    started = asyncio.Event()
    calls: list[str] = []

    class Slow:
        async def verify(self, email: str):
            calls.append(email)
            started.set()
            await asyncio.sleep(30)
            return VerificationVerdict.INVALID

    async def go():
        cancel = asyncio.Event()
        stream = _stream(Slow(), fakes.Search(), cancel=cancel)
        collected: list[dict] = []

        async def consume():
            async for e in stream.events():
                collected.append(e)

        task = asyncio.create_task(consume())
        await started.wait()
        cancel.set()
        await asyncio.wait_for(task, timeout=5)
        return collected

    events = asyncio.run(go())

    assert calls == ["jane.doe@acme.com"]
    assert [e["step"]["status"] for e in events if e.get("type") == "step"] == ["running", "done"]
    assert events[-1]["error"] == "cancelled"
    assert len(_terminals(events)) == 1


def test_consumer_walking_away_leaves_no_running_tasks(fakes):
    started = asyncio.Event()
    cancelled: list[str] = []

    class Slow:
        async def verify(self, email: str):
            started.set()
            try:
                await asyncio.sleep(30)
            except asyncio.CancelledError:
                cancelled.append(email)
                raise
            return VerificationVerdict.INVALID

    async def go():
        agen = _stream(Slow(), fakes.Search()).events()
        first = await agen.__anext__()
        await started.wait()
        await agen.aclose()
        await asyncio.sleep(0)
        leftover = [t for t in asyncio.all_tasks() if t is not asyncio.current_task()]
        return first, leftover

    first, leftover = asyncio.run(go())

    assert first["step"]["status"] == "running"
    assert cancelled == ["jane.doe@acme.com"]
    assert leftover == []


def test_stream_can_only_be_consumed_once(fakes):
    stream = _stream(fakes.Verifier(), fakes.Search())
    asyncio.run(_collect(stream))
    with pytest.raises(RuntimeError):
        asyncio.run(_collect(stream))


def test_sse_frames_are_data_lines():
    async def events():
        yield {"type": "step", "step": {"id": "step_1", "label": "x", "status": "running"}}
        yield {"done": True}

    async def go():
        return [f async for f in sse_frames(events())]

    frames = asyncio.run(go())
    assert frames[1] == b'data: {"done":true}\n\n'
    assert frames[0].startswith(b"data: ")
    assert json.loads(frames[0][6:].decode())["step"]["id"] == "step_1"
    assert encode_event({"a": 1}) == b'data: {"a":1}\n\n'


def test_symbol_only_name_ends_exhausted_not_errored(fakes):
    verifier, search = fakes.Verifier(), fakes.Search()
    discovery = EmailDiscovery(PatternFinder(verifier), ResearchController(search, verifier))
    request = DiscoveryRequest(name="!!!", company="Acme", domain="acme.com")

    events = asyncio.run(_collect(DiscoveryStream(discovery, request)))

    terminal = _terminals(events)
    assert len(terminal) == 1
    assert "error" not in terminal[0]
    assert terminal[0]["done"] is True
    assert terminal[0]["result"]["success"] is False
    assert terminal[0]["result"]["attemptsExhausted"] is True
    assert len(terminal[0]["result"]["attempts"]) == 4
    assert verifier.calls == []
    assert search.queries == []
