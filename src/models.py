# src/models.py
"""
Request-scoped data model for discovery and bulk dispatch.

Nothing here is persisted: every object is created when a discovery run or a
bulk send begins and dropped when it returns. The ``to_dict()`` helpers render
the camelCase wire shape consumed by the frontend.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal

VerificationStatus = Literal["verified", "possible"]
DiscoveryMethod = Literal["pattern", "research"]
AttemptKind = Literal["pattern", "research"]
StepStatus = Literal["running", "done"]


class VerificationVerdict(str, Enum):
    VALID = "valid"
    CATCH_ALL = "catch_all"
    INVALID = "invalid"
    UNKNOWN = "unknown"

    @property
    def accepted(self) -> bool:
        return self in (VerificationVerdict.VALID, VerificationVerdict.CATCH_ALL)

    def to_status(self) -> VerificationStatus | None:
        """valid -> verified, catch_all -> possible, anything else -> None."""
        if self is VerificationVerdict.VALID:
            return "verified"
        if self is VerificationVerdict.CATCH_ALL:
            return "possible"
        return None


@dataclass(frozen=True)
class Person:
    name: str
    role: str | None = None


@dataclass(frozen=True)
class DiscoveryRequest:
    """Input to one discovery run."""

    name: str
    company: str
    domain: str
    role: str | None = None

    @property
    def person(self) -> Person:
        return Person(name=self.name, role=self.role)


@dataclass(frozen=True)
class CandidateAddress:
    email: str
    pattern: str  # canonical key, e.g. "first.last"; "known" for an observed address

    @property
    def local_part(self) -> str:
        return self.email.split("@", 1)[0]


@dataclass
class AttemptOutcome:
    success: bool
    email: str | None = None
    verdict: VerificationVerdict | None = None
    reason: str | None = None
    source_url: str | None = None
    query: str | None = None

    @classmethod
    def found(
        cls,
        email: str,
        verdict: VerificationVerdict,
        *,
        source_url: str | None = None,
        query: str | None = None,
    ) -> AttemptOutcome:
        return cls(True, email=email, verdict=verdict, source_url=source_url, query=query)

    @classmethod
    def failed(cls, reason: str) -> AttemptOutcome:
        return cls(False, reason=reason)


@dataclass
class DiscoveryAttempt:
    """
    One round of the discovery state machine.

    attempt_number is 1-3 for research rounds and None for the pattern sweep.
    verification_calls counts outbound verifier calls made in this round.
    """

    kind: AttemptKind
    outcome: AttemptOutcome
    attempt_number: int | None = None
    queries: list[str] = field(default_factory=list)
    verification_calls: int = 0

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "kind": self.kind,
            "success": self.outcome.success,
        }
        if self.attempt_number is not None:
            out["attemptNumber"] = self.attempt_number
        if self.kind == "research":
            out["queries"] = list(self.queries)
        if self.outcome.success:
            out["email"] = self.outcome.email
            out["verdict"] = self.outcome.verdict.value if self.outcome.verdict else None
        else:
            out["reason"] = self.outcome.reason
        return out


@dataclass
class DiscoveryResult:
    """
    Terminal value of a discovery run.

    Invariant: success=True carries email/verification_status/method and
    attempts_exhausted=False; success=False always has attempts_exhausted=True.
    """

    success: bool
    email: str | None = None
    verification_status: VerificationStatus | None = None
    method: DiscoveryMethod | None = None
    attempts_exhausted: bool = False
    source_url: str | None = None
    attempts: list[DiscoveryAttempt] = field(default_factory=list)

    @classmethod
    def found(
        cls,
        email: str,
        verdict: VerificationVerdict,
        method: DiscoveryMethod,
        *,
        attempts: list[DiscoveryAttempt],
        source_url: str | None = None,
    ) -> DiscoveryResult:
        return cls(
            success=True,
            email=email,
            verification_status=verdict.to_status(),
            method=method,
            source_url=source_url,
            attempts=attempts,
        )

    @classmethod
    def exhausted(cls, attempts: list[DiscoveryAttempt]) -> DiscoveryResult:
        return cls(success=False, attempts_exhausted=True, attempts=attempts)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"success": self.success}
        if self.success:
            out["email"] = self.email
            out["verificationStatus"] = self.verification_status
            out["method"] = self.method
            if self.source_url:
                out["source"] = self.source_url
        else:
            out["attemptsExhausted"] = self.attempts_exhausted
        out["attempts"] = [a.to_dict() for a in self.attempts]
        return out


@dataclass(frozen=True)
class Step:
    id: str
    label: str
    status: StepStatus

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "label": self.label, "status": self.status}


# ---------------------------------------------------------------------------
# Bulk dispatch
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Attachment:
    filename: str
    mime_type: str
    data: str  # base64 payload, passed through untouched


@dataclass(frozen=True)
class BulkSendItem:
    client_id: str
    to: str
    subject: str
    body: str
    attachments: tuple[Attachment, ...] = ()

    @property
    def recipient_key(self) -> str:
        return self.to.strip().lower()


@dataclass
class BulkSendResult:
    client_id: str
    to: str
    success: bool
    attempts: int
    message_id: str | None = None
    error: str | None = None
    status_code: int | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "clientId": self.client_id,
            "to": self.to,
            "success": self.success,
            "attempts": self.attempts,
        }
        if self.message_id is not None:
            out["messageId"] = self.message_id
        if self.error is not None:
            out["error"] = self.error
        if self.status_code is not None:
            out["statusCode"] = self.status_code
        return out


@dataclass(frozen=True)
class BulkSummary:
    total: int
    sent: int
    failed: int

    def to_dict(self) -> dict[str, int]:
        return {"total": self.total, "sent": self.sent, "failed": self.failed}


@dataclass
class BulkSendReport:
    summary: BulkSummary
    results: list[BulkSendResult]

    @classmethod
    def from_results(cls, results: list[BulkSendResult]) -> BulkSendReport:
        sent = sum(1 for r in results if r.success)
        return cls(
            summary=BulkSummary(total=len(results), sent=sent, failed=len(results) - sent),
            results=results,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "summary": self.summary.to_dict(),
            "results": [r.to_dict() for r in self.results],
        }


__all__ = [
    "VerificationVerdict",
    "VerificationStatus",
    "Person",
    "DiscoveryRequest",
    "CandidateAddress",
    "AttemptOutcome",
    "DiscoveryAttempt",
    "DiscoveryResult",
    "Step",
    "Attachment",
    "BulkSendItem",
    "BulkSendResult",
    "BulkSummary",
    "BulkSendReport",
]
