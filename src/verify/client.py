"""
Verification client for the external email-validation service.

Public API:

    class VerificationClient:
        async def verify(email: str) -> VerificationVerdict

Behavior:
  - Performs exactly one HTTP GET per call (ZeroBounce-style
    ``?api_key=...&email=...``) and maps the provider status string into a
    VerificationVerdict.
  - Unrecognized or missing statuses collapse to UNKNOWN, which callers treat
    as a rejection (fail-closed).
  - Network errors, non-2xx responses and undecodable bodies raise
    VerificationError. There are no retries here; the caller decides what a
    failed call means for its candidate.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

from src.config import VerifierConfig
from src.exceptions import VerificationError
from src.models import VerificationVerdict

log = logging.getLogger(__name__)

_VALID = {"valid", "deliverable"}
_CATCH_ALL = {"catch-all", "catch_all", "catchall", "acceptable"}
_INVALID = {"invalid", "undeliverable"}


def map_provider_status(raw_status: Any) -> VerificationVerdict:
    """
    Map provider-specific status strings to a VerificationVerdict.

    Anything not explicitly recognized (spamtrap, abuse, do_not_mail, None,
    non-strings) is UNKNOWN.
    """
    if not isinstance(raw_status, str) or not raw_status.strip():
        return VerificationVerdict.UNKNOWN

    s = raw_status.strip().lower()
    if s in _VALID:
        return VerificationVerdict.VALID
    if s in _CATCH_ALL:
        return VerificationVerdict.CATCH_ALL
    if s in _INVALID:
        return VerificationVerdict.INVALID
    return VerificationVerdict.UNKNOWN


class Verifier(Protocol):
    async def verify(self, email: str) -> VerificationVerdict: ...


class VerificationClient:
    """
    Thin async wrapper around the validation API.

    An httpx.AsyncClient may be injected (shared connection pool); otherwise
    one is created and owned by this instance.
    """

    def __init__(
        self,
        config: VerifierConfig,
        *,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=config.timeout_sec)

    async def __aenter__(self) -> VerificationClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def verify(self, email: str) -> VerificationVerdict:
        e = (email or "").strip()
        if not e:
            raise VerificationError("empty email")
        if not self.config.api_key:
            raise VerificationError("verifier API key not configured")

        params = {"api_key": self.config.api_key, "email": e}
        try:
            resp = await self._http.get(self.config.api_url, params=params)
        except httpx.HTTPError as exc:
            raise VerificationError(f"verifier request failed: {type(exc).__name__}") from exc

        if not resp.is_success:
            raise VerificationError(
                f"verifier returned {resp.status_code}: {resp.text[:200]}",
            )

        try:
            data = resp.json()
        except ValueError as exc:
            raise VerificationError("verifier returned a non-JSON body") from exc

        raw_status = data.get("status") if isinstance(data, dict) else None
        verdict = map_provider_status(raw_status)
        log.debug(
            "verified candidate",
            extra={"email": e, "raw_status": raw_status, "verdict": verdict.value},
        )
        return verdict
