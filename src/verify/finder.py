# src/verify/finder.py
from __future__ import annotations

import logging

from src.exceptions import VerificationError
from src.generate.patterns import generate_candidates
from src.models import AttemptOutcome, DiscoveryAttempt
from src.verify.client import Verifier

log = logging.getLogger(__name__)


class PatternFinder:
    """
    Try generated candidates against the verifier, in priority order.

    Stops at the first VALID or CATCH_ALL verdict. A verifier error for one
    candidate counts as a rejection of that candidate only; it is not retried
    and does not stop the sweep. At most len(candidates) verifier calls are
    made.
    """

    def __init__(self, verifier: Verifier) -> None:
        self.verifier = verifier

    async def find(
        self,
        name: str,
        domain: str,
        known_pattern: str | None = None,
    ) -> DiscoveryAttempt:
        try:
            candidates = generate_candidates(name, domain, known_pattern)
        except ValueError as exc:
            log.warning("pattern sweep skipped", extra={"person": name, "domain": domain})
            return DiscoveryAttempt(kind="pattern", outcome=AttemptOutcome.failed(str(exc)))

        calls = 0
        for cand in candidates:
            calls += 1
            try:
                verdict = await self.verifier.verify(cand.email)
            except VerificationError as exc:
                log.warning(
                    "candidate verification failed",
                    extra={"email": cand.email, "pattern": cand.pattern, "exc": str(exc)},
                )
                continue

            log.info(
                "pattern candidate checked",
                extra={"email": cand.email, "pattern": cand.pattern, "verdict": verdict.value},
            )
            if verdict.accepted:
                return DiscoveryAttempt(
                    kind="pattern",
                    outcome=AttemptOutcome.found(cand.email, verdict),
                    verification_calls=calls,
                )

        log.info("no pattern candidate accepted", extra={"domain": domain, "tried": calls})
        return DiscoveryAttempt(
            kind="pattern",
            outcome=AttemptOutcome.failed("no pattern candidate accepted"),
            verification_calls=calls,
        )
