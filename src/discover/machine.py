# src/discover/machine.py
"""
Email discovery state machine.

    Start -> PatternMatch -> Research(1) -> Research(2) -> Research(3) -> Done

Rounds run strictly in that order, one at a time, and the run stops at the
first accepted address. If Research(3) also fails the result is a failure with
attempts_exhausted=True. At most 1 + MAX_RESEARCH_ATTEMPTS rounds ever run, so
verifier calls are bounded by (pattern candidates) + 3 x (research candidates).

An optional observer is awaited on entry to and exit from every round (the
step-reporting stream hangs off this). An optional asyncio.Event cancels the
run between rounds: no new round starts once it is set.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Literal

from src.discover.research import MAX_RESEARCH_ATTEMPTS, ResearchController
from src.exceptions import DiscoveryCancelled
from src.models import DiscoveryAttempt, DiscoveryRequest, DiscoveryResult
from src.verify.finder import PatternFinder

log = logging.getLogger(__name__)


class DiscoveryState(str, Enum):
    START = "start"
    PATTERN_MATCH = "pattern_match"
    RESEARCH = "research"
    DONE = "done"


@dataclass(frozen=True)
class Transition:
    state: DiscoveryState
    phase: Literal["enter", "exit"]
    attempt_number: int | None = None
    attempt: DiscoveryAttempt | None = None


TransitionObserver = Callable[[Transition], Awaitable[None]]

# (state, research attempt number) in execution order
ROUNDS: tuple[tuple[DiscoveryState, int | None], ...] = (
    (DiscoveryState.PATTERN_MATCH, None),
    *((DiscoveryState.RESEARCH, n) for n in range(1, MAX_RESEARCH_ATTEMPTS + 1)),
)


class EmailDiscovery:
    def __init__(self, finder: PatternFinder, research: ResearchController) -> None:
        self.finder = finder
        self.research = research

    async def run(
        self,
        request: DiscoveryRequest,
        *,
        known_pattern: str | None = None,
        on_transition: TransitionObserver | None = None,
        cancel: asyncio.Event | None = None,
    ) -> DiscoveryResult:
        attempts: list[DiscoveryAttempt] = []
        previous_queries: list[str] = []

        for state, number in ROUNDS:
            if cancel is not None and cancel.is_set():
                log.info("discovery cancelled", extra={"completed_rounds": len(attempts)})
                raise DiscoveryCancelled("discovery cancelled")

            if on_transition is not None:
                await on_transition(Transition(state, "enter", number))

            if state is DiscoveryState.PATTERN_MATCH:
                attempt = await self.finder.find(request.name, request.domain, known_pattern)
            else:
                attempt = await self.research.run(
                    request.person,
                    request.company,
                    request.domain,
                    number or 0,
                    previous_queries,
                )
                previous_queries.extend(attempt.queries)
            attempts.append(attempt)

            if on_transition is not None:
                await on_transition(Transition(state, "exit", number, attempt))

            outcome = attempt.outcome
            if outcome.success and outcome.email and outcome.verdict is not None:
                log.info(
                    "discovery succeeded",
                    extra={"email": outcome.email, "method": attempt.kind, "rounds": len(attempts)},
                )
                return DiscoveryResult.found(
                    outcome.email,
                    outcome.verdict,
                    attempt.kind,
                    attempts=attempts,
                    source_url=outcome.source_url,
                )

            log.info(
                "discovery round failed",
                extra={"state": state.value, "attempt": number, "reason": outcome.reason},
            )

        log.info("discovery exhausted", extra={"domain": request.domain, "rounds": len(attempts)})
        return DiscoveryResult.exhausted(attempts)
