# src/dispatch/gmail.py
"""
Gmail API collaborator.

Two calls only:
  - exchange a stored refresh token for an access token (once per batch)
  - POST one base64url-encoded MIME message to users/me/messages/send

The token lifecycle itself is owned by the caller; this module only tells it
when the grant is dead (CredentialExpired) so the stored credential can be
dropped.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

import httpx

from src.config import MailConfig
from src.exceptions import CredentialExpired, MailAuthError

log = logging.getLogger(__name__)

INVALID_GRANT = "invalid_grant"


def _error_code(body: str) -> str | None:
    try:
        parsed = json.loads(body)
    except ValueError:
        return None
    if isinstance(parsed, dict) and isinstance(parsed.get("error"), str):
        return parsed["error"]
    return None


def is_invalid_grant(exc: BaseException) -> bool:
    return isinstance(exc, MailAuthError) and exc.code == INVALID_GRANT


class MailTransport(Protocol):
    async def send_raw(self, access_token: str, raw: str) -> httpx.Response: ...


class GmailClient:
    def __init__(self, config: MailConfig, *, http: httpx.AsyncClient | None = None) -> None:
        self.config = config
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=config.timeout_sec)

    async def __aenter__(self) -> GmailClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def get_access_token(self, refresh_token: str) -> str:
        """
        Refresh-token grant against Google's token endpoint.

        Raises CredentialExpired for ``invalid_grant`` and MailAuthError for
        every other failure (including missing OAuth client settings).
        """
        if not self.config.google_client_id or not self.config.google_client_secret:
            raise MailAuthError("Google OAuth credentials not configured")

        form = {
            "client_id": self.config.google_client_id,
            "client_secret": self.config.google_client_secret,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        }
        try:
            resp = await self._http.post(self.config.token_url, data=form)
        except httpx.HTTPError as exc:
            raise MailAuthError(f"token refresh failed: {type(exc).__name__}") from exc

        if not resp.is_success:
            code = _error_code(resp.text)
            log.warning(
                "access token refresh failed",
                extra={"status_code": resp.status_code, "error_code": code},
            )
            if code == INVALID_GRANT:
                raise CredentialExpired("Failed to authenticate with Google", code)
            raise MailAuthError("Failed to authenticate with Google", code)

        try:
            token = resp.json().get("access_token")
        except (ValueError, AttributeError) as exc:
            raise MailAuthError("token endpoint returned an unreadable body") from exc
        if not isinstance(token, str) or not token:
            raise MailAuthError("token endpoint returned no access_token")
        return token

    async def send_raw(self, access_token: str, raw: str) -> httpx.Response:
        """One send attempt. Status handling is the caller's job."""
        return await self._http.post(
            self.config.send_url,
            json={"raw": raw},
            headers={"Authorization": f"Bearer {access_token}"},
        )
