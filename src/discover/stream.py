# src/discover/stream.py
"""
Step-reporting stream for a discovery run.

The state machine writes into a bounded asyncio.Queue through its transition
observer; the consumer drains ``DiscoveryStream.events()``. ``sse_frames()`` is
the transport adapter that renders events as ``data: <json>\\n\\n`` frames.

Event shapes:

    {"type": "step", "step": {"id": "step_1", "label": "...", "status": "running"}}
    {"type": "step", "step": {"id": "step_1", "label": "...", "status": "done"}}
    {"done": true, "conversationId": "...", "result": {...}}      # terminal
    {"error": "<message>", "conversationId": "..."}               # terminal

Every run emits exactly one terminal event and then closes. A step that is
still running when the run errors or is cancelled gets its "done" event
before the terminal one. Cancellation (the abort event, or the consumer
walking away) stops in-flight verification/search calls.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import uuid
from collections.abc import AsyncIterator
from typing import Any

from src.discover.machine import DiscoveryState, EmailDiscovery, Transition
from src.discover.research import MAX_RESEARCH_ATTEMPTS
from src.exceptions import DiscoveryCancelled
from src.models import DiscoveryRequest, Step

log = logging.getLogger(__name__)

PATTERN_LABEL = "Trying email patterns"
CANCELLED_MESSAGE = "cancelled"

_CLOSE = object()


def step_label(state: DiscoveryState, attempt_number: int | None = None) -> str:
    if state is DiscoveryState.PATTERN_MATCH:
        return PATTERN_LABEL
    return f"Researching web (attempt {attempt_number}/{MAX_RESEARCH_ATTEMPTS})"


class DiscoveryStream:
    def __init__(
        self,
        discovery: EmailDiscovery,
        request: DiscoveryRequest,
        *,
        conversation_id: str | None = None,
        known_pattern: str | None = None,
        cancel: asyncio.Event | None = None,
        queue_size: int = 64,
    ) -> None:
        self.discovery = discovery
        self.request = request
        self.known_pattern = known_pattern
        self.conversation_id = conversation_id or str(uuid.uuid4())
        self.cancel = cancel or asyncio.Event()
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=max(1, queue_size))
        self._next_step = 0
        self._open_step: Step | None = None
        self._started = False

    # ---- producer side -------------------------------------------------------------

    async def _on_transition(self, t: Transition) -> None:
        if t.phase == "enter":
            await self._close_open_step()
            self._next_step += 1
            self._open_step = Step(
                id=f"step_{self._next_step}",
                label=step_label(t.state, t.attempt_number),
                status="running",
            )
            await self._queue.put({"type": "step", "step": self._open_step.to_dict()})
        else:
            await self._close_open_step()

    async def _close_open_step(self) -> None:
        step = self._open_step
        if step is None:
            return
        self._open_step = None
        done = Step(id=step.id, label=step.label, status="done")
        await self._queue.put({"type": "step", "step": done.to_dict()})

    async def _produce(self) -> None:
        run = asyncio.create_task(
            self.discovery.run(
                self.request,
                known_pattern=self.known_pattern,
                on_transition=self._on_transition,
                cancel=self.cancel,
            )
        )
        stop = asyncio.create_task(self.cancel.wait())
        terminal: dict[str, Any]
        try:
            done, _ = await asyncio.wait({run, stop}, return_when=asyncio.FIRST_COMPLETED)
            if run not in done:
                run.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await run
                raise DiscoveryCancelled(CANCELLED_MESSAGE)
            result = run.result()
            terminal = {
                "done": True,
                "conversationId": self.conversation_id,
                "result": result.to_dict(),
            }
        except DiscoveryCancelled:
            log.info("discovery stream cancelled", extra={"conversation_id": self.conversation_id})
            terminal = {"error": CANCELLED_MESSAGE, "conversationId": self.conversation_id}
        except Exception as exc:
            log.exception(
                "discovery stream failed", extra={"conversation_id": self.conversation_id}
            )
            terminal = {
                "error": str(exc) or type(exc).__name__,
                "conversationId": self.conversation_id,
            }
        finally:
            stop.cancel()
            if not run.done():
                run.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await run

        await self._close_open_step()
        await self._queue.put(terminal)
        await self._queue.put(_CLOSE)

    # ---- consumer side -------------------------------------------------------------

    async def events(self) -> AsyncIterator[dict[str, Any]]:
        if self._started:
            raise RuntimeError("a DiscoveryStream can only be consumed once")
        self._started = True

        producer = asyncio.create_task(self._produce())
        try:
            while True:
                item = await self._queue.get()
                if item is _CLOSE:
                    break
                yield item
        finally:
            if not producer.done():
                # consumer went away before the terminal event
                self.cancel.set()
                producer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await producer


def encode_event(event: dict[str, Any]) -> bytes:
    return f"data: {json.dumps(event, separators=(',', ':'))}\n\n".encode()


async def sse_frames(events: AsyncIterator[dict[str, Any]]) -> AsyncIterator[bytes]:
    async for event in events:
        yield encode_event(event)
