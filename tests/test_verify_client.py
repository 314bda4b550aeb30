# tests/test_verify_client.py
from __future__ import annotations

import asyncio

import httpx
import pytest
import respx
from httpx import Response

from src.config import VerifierConfig
from src.exceptions import VerificationError
from src.models import VerificationVerdict
from src.verify.client import VerificationClient, map_provider_status

API_URL = "https://verifier.test/v2/validate"


def _verify(email: str, *, api_key: str = "k-123") -> VerificationVerdict:
    async def go() -> VerificationVerdict:
        async with VerificationClient(VerifierConfig(api_url=API_URL, api_key=api_key)) as c:
            return await c.verify(email)

    return asyncio.run(go())


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("valid", VerificationVerdict.VALID),
        ("Deliverable", VerificationVerdict.VALID),
        ("catch-all", VerificationVerdict.CATCH_ALL),
        ("catch_all", VerificationVerdict.CATCH_ALL),
        ("invalid", VerificationVerdict.INVALID),
        ("spamtrap", VerificationVerdict.UNKNOWN),
        ("", VerificationVerdict.UNKNOWN),
        (None, VerificationVerdict.UNKNOWN),
        (42, VerificationVerdict.UNKNOWN),
    ],
)
def test_map_provider_status(raw, expected):
    assert map_provider_status(raw) is expected


def test_unknown_is_not_accepted():
    assert VerificationVerdict.VALID.accepted
    assert VerificationVerdict.CATCH_ALL.accepted
    assert not VerificationVerdict.INVALID.accepted
    assert not VerificationVerdict.UNKNOWN.accepted


@respx.mock
def test_verify_sends_key_and_email_and_maps_status():
    route = respx.get(API_URL).mock(return_value=Response(200, json={"status": "catch-all"}))

    assert _verify("jane.doe@acme.com") is VerificationVerdict.CATCH_ALL
    assert route.call_count == 1
    params = route.calls.last.request.url.params
    assert params["api_key"] == "k-123"
    assert params["email"] == "jane.doe@acme.com"


@respx.mock
def test_verify_non_2xx_raises():
    respx.get(API_URL).mock(return_value=Response(503, text="busy"))
    with pytest.raises(VerificationError):
        _verify("jane.doe@acme.com")


@respx.mock
def test_verify_transport_error_raises():
    respx.get(API_URL).mock(side_effect=httpx.ConnectTimeout("slow"))
    with pytest.raises(VerificationError):
        _verify("jane.doe@acme.com")


@respx.mock
def test_verify_non_json_body_raises():
    respx.get(API_URL).mock(return_value=Response(200, text="<html>oops</html>"))
    with pytest.raises(VerificationError):
        _verify("jane.doe@acme.com")


@respx.mock
def test_missing_status_is_unknown():
    respx.get(API_URL).mock(return_value=Response(200, json={"address": "x"}))
    assert _verify("jane.doe@acme.com") is VerificationVerdict.UNKNOWN


def test_missing_api_key_raises_without_request():
    with respx.mock(assert_all_called=False) as mock:
        route = mock.get(API_URL)
        with pytest.raises(VerificationError):
            _verify("jane.doe@acme.com", api_key="")
        assert route.call_count == 0
