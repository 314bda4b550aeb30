"""
Research fallback: bounded web-search rounds used after the pattern sweep
comes up empty.

Each round (attempt 1, 2 or 3) has its own fixed query templates:

  1. name + company + domain combinations
  2. domain-scoped and LinkedIn-flavored variants
  3. broader OR-combined queries

Queries already used by earlier rounds are dropped. If nothing new is left the
round fails immediately without searching, so a caller that keeps asking for
the same round cannot loop forever. Round numbers outside 1-3 are refused
before any I/O.

For every remaining query the controller searches, scans each hit for
addresses at the target domain, keeps those whose local-part matches the
person, and verifies them one by one, returning on the first accepted verdict.
Search and verification faults are absorbed per call.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from src.exceptions import SearchError, VerificationError
from src.generate.patterns import normalize_domain, split_name
from src.models import AttemptOutcome, DiscoveryAttempt, Person
from src.search.backend import SearchBackend
from src.search.extract import find_domain_addresses, matches_person
from src.verify.client import Verifier

log = logging.getLogger(__name__)

MAX_RESEARCH_ATTEMPTS = 3

REASON_MAX_ATTEMPTS = "max attempts reached"
REASON_NO_NEW_QUERIES = "no new queries"


def build_queries(name: str, company: str, domain: str, attempt_number: int) -> list[str]:
    """Fixed query templates for one research round (attempt 1-3)."""
    if attempt_number == 1:
        return [
            f'"{name}" "{company}" email contact',
            f'"{name}" "{domain}" email',
            f'"{name}" "{company}" contact info',
        ]
    if attempt_number == 2:
        return [
            f'"{name}" "{company}" @{domain}',
            f'site:{domain} "{name}"',
            f'"{name}" "{company}" linkedin email',
        ]
    return [
        f'"{name}" "{company}" OR "{domain}" email OR contact',
        f'"{name}" founder OR executive "{company}"',
    ]


class ResearchController:
    def __init__(self, search: SearchBackend, verifier: Verifier) -> None:
        self.search = search
        self.verifier = verifier

    async def run(
        self,
        person: Person,
        company: str,
        domain: str,
        attempt_number: int,
        previous_queries: Iterable[str] = (),
    ) -> DiscoveryAttempt:
        if attempt_number < 1 or attempt_number > MAX_RESEARCH_ATTEMPTS:
            log.warning("research attempt refused", extra={"attempt": attempt_number})
            return DiscoveryAttempt(
                kind="research",
                attempt_number=attempt_number,
                outcome=AttemptOutcome.failed(REASON_MAX_ATTEMPTS),
            )

        name = " ".join(person.name.split())
        dom = normalize_domain(domain)
        used = set(previous_queries)
        queries = [
            q for q in build_queries(name, company.strip(), dom, attempt_number) if q not in used
        ]
        if not queries:
            log.info("research attempt has no new queries", extra={"attempt": attempt_number})
            return DiscoveryAttempt(
                kind="research",
                attempt_number=attempt_number,
                outcome=AttemptOutcome.failed(REASON_NO_NEW_QUERIES),
            )

        first, last = split_name(name)
        attempt = DiscoveryAttempt(
            kind="research",
            attempt_number=attempt_number,
            queries=queries,
            outcome=AttemptOutcome.failed(f"no email found in research attempt {attempt_number}"),
        )
        if not first or not dom:
            return attempt

        checked: set[str] = set()
        for query in queries:
            try:
                hits = await self.search.search(query)
            except SearchError as exc:
                log.warning("search failed", extra={"query": query, "exc": str(exc)})
                continue

            for hit in hits:
                for email in find_domain_addresses(hit.text, dom):
                    if email in checked or not matches_person(email, first, last):
                        continue
                    checked.add(email)
                    attempt.verification_calls += 1
                    try:
                        verdict = await self.verifier.verify(email)
                    except VerificationError as exc:
                        log.warning(
                            "candidate verification failed",
                            extra={"email": email, "exc": str(exc)},
                        )
                        continue

                    log.info(
                        "research candidate checked",
                        extra={"email": email, "verdict": verdict.value, "source": hit.url},
                    )
                    if verdict.accepted:
                        attempt.outcome = AttemptOutcome.found(
                            email, verdict, source_url=hit.url, query=query
                        )
                        return attempt

        return attempt
