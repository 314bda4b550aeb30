# src/exceptions.py
"""
Shared exception classes used across the codebase.

Per-candidate and per-item faults (VerificationError, SearchError, a single
failed send) are absorbed by their callers and turned into result data.
Only batch-wide problems (BatchRejected, MailAuthError and its subclasses)
are meant to reach the HTTP layer.
"""

from __future__ import annotations


class VerificationError(Exception):
    """
    Raised when the email-validation service cannot produce a verdict.

    Examples:
        - connection refused / timeout
        - non-2xx response
        - body that is not JSON
    """

    pass


class SearchError(Exception):
    """Raised when the web-search service fails for one query."""

    pass


class DiscoveryCancelled(Exception):
    """Raised by the discovery state machine when its cancel event is set."""

    pass


class BatchRejected(Exception):
    """
    Raised when a bulk batch fails a precondition before any send attempt.

    Examples:
        - duplicate recipient (case-insensitive)
        - duplicate clientId
        - empty or oversized batch
    """

    def __init__(self, message: str, *, error: str = "Invalid batch") -> None:
        super().__init__(message)
        self.error = error
        self.message = message


class MailNotConnected(Exception):
    """The caller has no stored mail credential."""

    pass


class MailAuthError(Exception):
    """Exchanging the stored refresh token for an access token failed."""

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code


class CredentialExpired(MailAuthError):
    """
    The OAuth grant was revoked or expired (``invalid_grant``).

    The stored credential must be dropped and the user asked to reconnect.
    """

    pass


__all__ = [
    "VerificationError",
    "SearchError",
    "DiscoveryCancelled",
    "BatchRejected",
    "MailNotConnected",
    "MailAuthError",
    "CredentialExpired",
]
