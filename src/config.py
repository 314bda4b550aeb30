from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv


def _getenv_int(name: str, default: int) -> int:
    v = os.getenv(name, str(default)).strip()
    try:
        return int(v)
    except ValueError as err:
        raise ValueError(f"Environment variable {name} must be an integer; got {v!r}") from err


def _getenv_float(name: str, default: float) -> float:
    v = os.getenv(name, str(default)).strip()
    try:
        return float(v)
    except ValueError as err:
        raise ValueError(f"Environment variable {name} must be a number; got {v!r}") from err


def _getenv_str(name: str, default: str) -> str:
    return os.getenv(name, default).strip()


def _getenv_pairs(name: str, default_csv: str = "") -> dict[str, str]:
    """
    Parse a CSV of key=value pairs, e.g. "tok_a=user_1,tok_b=user_2".
    """
    raw = os.getenv(name, default_csv).strip()
    out: dict[str, str] = {}
    for tok in (t.strip() for t in raw.split(",")):
        if not tok:
            continue
        key, sep, value = tok.partition("=")
        if not sep or not key.strip() or not value.strip():
            raise ValueError(
                f"Environment variable {name} must be a CSV of key=value pairs; got {raw!r}"
            )
        out[key.strip()] = value.strip()
    return out


# Load .env from project root if present
ROOT = Path(__file__).resolve().parents[1]
load_dotenv(ROOT / ".env", override=False)

DEFAULT_VERIFIER_URL = "https://api.zerobounce.net/v2/validate"
DEFAULT_SEARCH_URL = "https://api.tavily.com/search"
DEFAULT_GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
DEFAULT_GMAIL_SEND_URL = "https://gmail.googleapis.com/gmail/v1/users/me/messages/send"


@dataclass(frozen=True)
class VerifierConfig:
    api_url: str = DEFAULT_VERIFIER_URL
    api_key: str = ""
    timeout_sec: float = 10.0


@dataclass(frozen=True)
class SearchConfig:
    api_url: str = DEFAULT_SEARCH_URL
    api_key: str = ""
    max_results: int = 5
    search_depth: str = "advanced"
    timeout_sec: float = 20.0


@dataclass(frozen=True)
class MailConfig:
    """
    Gmail delivery settings.

    The OAuth client id/secret are used only to exchange a stored refresh
    token for a short-lived access token before a batch is dispatched.
    """

    google_client_id: str = ""
    google_client_secret: str = ""
    token_url: str = DEFAULT_GOOGLE_TOKEN_URL
    send_url: str = DEFAULT_GMAIL_SEND_URL
    timeout_sec: float = 15.0


@dataclass(frozen=True)
class ApiConfig:
    body_limit_bytes: int = 10 * 1024 * 1024
    # bearer token -> user id, consumed by the default identity resolver
    caller_tokens: dict[str, str] = field(default_factory=dict)
    stream_queue_size: int = 64


@dataclass(frozen=True)
class AppConfig:
    verifier: VerifierConfig
    search: SearchConfig
    mail: MailConfig
    api: ApiConfig
    log_level: str = "INFO"


def load_settings() -> AppConfig:
    verifier = VerifierConfig(
        api_url=_getenv_str("VERIFIER_API_URL", DEFAULT_VERIFIER_URL),
        api_key=_getenv_str("VERIFIER_API_KEY", ""),
        timeout_sec=_getenv_float("VERIFIER_TIMEOUT_SEC", 10.0),
    )
    search = SearchConfig(
        api_url=_getenv_str("SEARCH_API_URL", DEFAULT_SEARCH_URL),
        # TAVILY_API_KEY kept as an alias for existing deployments
        api_key=_getenv_str("SEARCH_API_KEY", "") or _getenv_str("TAVILY_API_KEY", ""),
        max_results=_getenv_int("SEARCH_MAX_RESULTS", 5),
        search_depth=_getenv_str("SEARCH_DEPTH", "advanced"),
        timeout_sec=_getenv_float("SEARCH_TIMEOUT_SEC", 20.0),
    )
    mail = MailConfig(
        google_client_id=_getenv_str("GOOGLE_CLIENT_ID", ""),
        google_client_secret=_getenv_str("GOOGLE_CLIENT_SECRET", ""),
        token_url=_getenv_str("GOOGLE_TOKEN_URL", DEFAULT_GOOGLE_TOKEN_URL),
        send_url=_getenv_str("GMAIL_SEND_URL", DEFAULT_GMAIL_SEND_URL),
        timeout_sec=_getenv_float("MAIL_TIMEOUT_SEC", 15.0),
    )
    api = ApiConfig(
        body_limit_bytes=_getenv_int("BODY_LIMIT_BYTES", 10 * 1024 * 1024),
        caller_tokens=_getenv_pairs("CALLER_TOKENS"),
        stream_queue_size=_getenv_int("STREAM_QUEUE_SIZE", 64),
    )
    return AppConfig(
        verifier=verifier,
        search=search,
        mail=mail,
        api=api,
        log_level=_getenv_str("LOG_LEVEL", "INFO").upper(),
    )


__all__ = [
    "VerifierConfig",
    "SearchConfig",
    "MailConfig",
    "ApiConfig",
    "AppConfig",
    "load_settings",
]
