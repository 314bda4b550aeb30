# src/api/deps.py
"""
Request dependencies and the service container behind the API.

Caller authentication and credential storage belong to other systems; this
module only defines the seams they plug into:

  - IdentityResolver: bearer token -> user id (401 when it yields nothing)
  - CredentialStore: user id -> stored Gmail refresh token, and the hook to
    drop that token when Google reports the grant as dead

The defaults (StaticTokenResolver, InMemoryCredentialStore) are enough for
local development and tests.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Protocol

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from src.config import AppConfig
from src.discover.machine import EmailDiscovery
from src.discover.research import ResearchController
from src.dispatch.gmail import GmailClient
from src.dispatch.retry import SleepFn
from src.search.backend import TavilySearchBackend
from src.verify.client import VerificationClient
from src.verify.finder import PatternFinder

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Caller:
    user_id: str


class IdentityResolver(Protocol):
    async def resolve(self, token: str) -> str | None: ...


class CredentialStore(Protocol):
    async def get_refresh_token(self, user_id: str) -> str | None: ...

    async def clear_refresh_token(self, user_id: str) -> None: ...


class StaticTokenResolver:
    """Resolve bearer tokens from a fixed token -> user id mapping."""

    def __init__(self, tokens: dict[str, str]) -> None:
        self._tokens = dict(tokens)

    async def resolve(self, token: str) -> str | None:
        return self._tokens.get(token)


class InMemoryCredentialStore:
    def __init__(self, tokens: dict[str, str] | None = None) -> None:
        self._tokens: dict[str, str] = dict(tokens or {})

    async def get_refresh_token(self, user_id: str) -> str | None:
        return self._tokens.get(user_id)

    async def clear_refresh_token(self, user_id: str) -> None:
        self._tokens.pop(user_id, None)

    def set_refresh_token(self, user_id: str, token: str) -> None:
        self._tokens[user_id] = token


@dataclass
class Services:
    config: AppConfig
    discovery: EmailDiscovery
    mail: GmailClient
    credentials: CredentialStore
    identity: IdentityResolver
    dispatch_sleep: SleepFn = asyncio.sleep
    _closers: list = field(default_factory=list, repr=False)

    async def aclose(self) -> None:
        for close in self._closers:
            await close()


def build_services(config: AppConfig) -> Services:
    verifier = VerificationClient(config.verifier)
    search = TavilySearchBackend(config.search)
    mail = GmailClient(config.mail)
    discovery = EmailDiscovery(PatternFinder(verifier), ResearchController(search, verifier))
    services = Services(
        config=config,
        discovery=discovery,
        mail=mail,
        credentials=InMemoryCredentialStore(),
        identity=StaticTokenResolver(config.api.caller_tokens),
    )
    services._closers.extend([verifier.aclose, search.aclose, mail.aclose])
    return services


def get_services(request: Request) -> Services:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service is not initialized",
        )
    return services


async def get_caller(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    services: Services = Depends(get_services),
) -> Caller:
    """401 unless the bearer token resolves to a user."""
    token = credentials.credentials.strip() if credentials else ""
    user_id = await services.identity.resolve(token) if token else None
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )
    return Caller(user_id=user_id)
