# tests/test_gmail.py
from __future__ import annotations

import asyncio
import json
from urllib.parse import parse_qs

import pytest
import respx
from httpx import Response

from src.config import MailConfig
from src.dispatch.gmail import GmailClient, is_invalid_grant
from src.exceptions import CredentialExpired, MailAuthError

TOKEN_URL = "https://oauth.test/token"
SEND_URL = "https://gmail.test/send"

CONFIG = MailConfig(
    google_client_id="cid",
    google_client_secret="secret",
    token_url=TOKEN_URL,
    send_url=SEND_URL,
)


def _run(coro_fn, config: MailConfig = CONFIG):
    async def go():
        async with GmailClient(config) as client:
            return await coro_fn(client)

    return asyncio.run(go())


@respx.mock
def test_refresh_token_exchange():
    route = respx.post(TOKEN_URL).mock(
        return_value=Response(200, json={"access_token": "ya29.abc", "expires_in": 3599})
    )

    token = _run(lambda c: c.get_access_token("1//refresh"))

    assert token == "ya29.abc"
    form = parse_qs(route.calls.last.request.content.decode())
    assert form["grant_type"] == ["refresh_token"]
    assert form["refresh_token"] == ["1//refresh"]
    assert form["client_id"] == ["cid"]


@respx.mock
def test_invalid_grant_raises_credential_expired():
    respx.post(TOKEN_URL).mock(
        return_value=Response(
            400, json={"error": "invalid_grant", "error_description": "Token has been revoked."}
        )
    )

    with pytest.raises(CredentialExpired) as info:
        _run(lambda c: c.get_access_token("1//revoked"))
    assert is_invalid_grant(info.value)


@respx.mock
def test_other_token_errors_are_plain_auth_errors():
    respx.post(TOKEN_URL).mock(return_value=Response(401, json={"error": "invalid_client"}))

    with pytest.raises(MailAuthError) as info:
        _run(lambda c: c.get_access_token("1//refresh"))
    assert not isinstance(info.value, CredentialExpired)
    assert info.value.code == "invalid_client"


def test_missing_oauth_client_config():
    with pytest.raises(MailAuthError):
        _run(lambda c: c.get_access_token("1//refresh"), MailConfig())


@respx.mock
def test_send_raw_posts_bearer_and_raw():
    route = respx.post(SEND_URL).mock(return_value=Response(200, json={"id": "18c"}))

    resp = _run(lambda c: c.send_raw("ya29.abc", "UmF3"))

    assert resp.status_code == 200
    req = route.calls.last.request
    assert req.headers["Authorization"] == "Bearer ya29.abc"
    assert json.loads(req.content) == {"raw": "UmF3"}
