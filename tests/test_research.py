from __future__ import annotations

import asyncio

import pytest

from src.discover.research import (
    REASON_MAX_ATTEMPTS,
    REASON_NO_NEW_QUERIES,
    ResearchController,
    build_queries,
)
from src.exceptions import SearchError, VerificationError
from src.models import Person, VerificationVerdict

JANE = Person(name="Jane Doe", role="CTO")


def _run(controller, attempt_number, previous=()):
    return asyncio.run(controller.run(JANE, "Acme", "acme.com", attempt_number, previous))


def test_query_templates_per_round():
    q1 = build_queries("Jane Doe", "Acme", "acme.com", 1)
    q2 = build_queries("Jane Doe", "Acme", "acme.com", 2)
    q3 = build_queries("Jane Doe", "Acme", "acme.com", 3)
    assert q1[0] == '"Jane Doe" "Acme" email contact'
    assert 'site:acme.com "Jane Doe"' in q2
    assert len(q3) == 2
    assert not set(q1) & set(q2)


def test_finds_verified_address_on_domain(fakes):
    q = '"Jane Doe" "Acme" email contact'
    search = fakes.Search(
        {q: [fakes.hit("https://acme.com/team", "Contact jane.doe@acme.com or info@acme.com")]}
    )
    verifier = fakes.Verifier({"jane.doe@acme.com": VerificationVerdict.VALID})

    attempt = _run(ResearchController(search, verifier), 1)

    assert attempt.outcome.success
    assert attempt.outcome.email == "jane.doe@acme.com"
    assert attempt.outcome.source_url == "https://acme.com/team"
    assert attempt.outcome.query == q
    # info@ does not look like Jane, so it is never verified
    assert verifier.calls == ["jane.doe@acme.com"]
    assert attempt.attempt_number == 1


def test_rejected_addresses_are_verified_once_per_attempt(fakes):
    page = fakes.hit("https://x.test", "jdoe@acme.com")
    search = fakes.Search({q: [page] for q in build_queries("Jane Doe", "Acme", "acme.com", 1)})
    verifier = fakes.Verifier()

    attempt = _run(ResearchController(search, verifier), 1)

    assert not attempt.outcome.success
    assert verifier.calls == ["jdoe@acme.com"]
    assert len(search.queries) == 3


def test_search_and_verifier_errors_are_absorbed(fakes):
    queries = build_queries("Jane Doe", "Acme", "acme.com", 2)
    search = fakes.Search(
        {
            queries[0]: SearchError("boom"),
            queries[1]: [fakes.hit("https://a.test", "jane@acme.com")],
            queries[2]: [fakes.hit("https://b.test", "doe@acme.com")],
        }
    )
    verifier = fakes.Verifier(
        {
            "jane@acme.com": VerificationError("timeout"),
            "doe@acme.com": VerificationVerdict.CATCH_ALL,
        }
    )

    attempt = _run(ResearchController(search, verifier), 2)

    assert attempt.outcome.success
    assert attempt.outcome.email == "doe@acme.com"
    assert attempt.outcome.verdict is VerificationVerdict.CATCH_ALL


@pytest.mark.parametrize("n", [0, 4, 7])
def test_out_of_range_attempt_is_refused_without_io(fakes, n):
    search, verifier = fakes.Search(), fakes.Verifier()
    attempt = _run(ResearchController(search, verifier), n)
    assert not attempt.outcome.success
    assert attempt.outcome.reason == REASON_MAX_ATTEMPTS
    assert search.queries == []
    assert verifier.calls == []


def test_previously_used_queries_are_skipped(fakes):
    q1 = build_queries("Jane Doe", "Acme", "acme.com", 1)
    search = fakes.Search()
    attempt = _run(ResearchController(search, fakes.Verifier()), 1, previous=q1[:2])
    assert search.queries == q1[2:]
    assert attempt.queries == q1[2:]


def test_no_new_queries_fails_immediately(fakes):
    q1 = build_queries("Jane Doe", "Acme", "acme.com", 1)
    search = fakes.Search()
    attempt = _run(ResearchController(search, fakes.Verifier()), 1, previous=q1)
    assert attempt.outcome.reason == REASON_NO_NEW_QUERIES
    assert search.queries == []
