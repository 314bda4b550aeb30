from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from src.config import SearchConfig
from src.exceptions import SearchError

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class SearchHit:
    """
    One web-search result.

    Attributes:
        url:
            Page the result came from; reported back as the discovery source.
        title:
            Result title, informational only.
        content:
            Short snippet chosen by the search provider.
        raw_content:
            Full page text (may still contain HTML) when the provider returns it.
    """

    url: str
    title: str = ""
    content: str = ""
    raw_content: str | None = None

    @property
    def text(self) -> str:
        return self.raw_content or self.content or ""


class SearchBackend(Protocol):
    """
    Abstract interface for a web search provider.

    The research controller depends on this protocol rather than on Tavily
    directly, so tests can script results and another provider can be swapped
    in without touching discovery code.
    """

    async def search(self, query: str) -> list[SearchHit]:
        """Run one query. Raises SearchError when the provider fails."""
        ...


def _hit_from_payload(row: dict[str, Any]) -> SearchHit | None:
    url = row.get("url")
    if not isinstance(url, str) or not url:
        return None
    raw = row.get("raw_content")
    return SearchHit(
        url=url,
        title=str(row.get("title") or ""),
        content=str(row.get("content") or ""),
        raw_content=raw if isinstance(raw, str) else None,
    )


class TavilySearchBackend:
    """
    SearchBackend over the Tavily HTTP API (advanced depth, raw page content).
    """

    def __init__(
        self,
        config: SearchConfig,
        *,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=config.timeout_sec)

    async def __aenter__(self) -> TavilySearchBackend:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def search(self, query: str) -> list[SearchHit]:
        if not self.config.api_key:
            raise SearchError("search API key not configured")

        payload = {
            "query": query,
            "search_depth": self.config.search_depth,
            "max_results": self.config.max_results,
            "include_raw_content": True,
        }
        headers = {
            "Authorization": f"Bearer {self.config.api_key}",
            "Accept": "application/json",
        }
        try:
            resp = await self._http.post(self.config.api_url, json=payload, headers=headers)
        except httpx.HTTPError as exc:
            raise SearchError(f"search request failed: {type(exc).__name__}") from exc

        if not resp.is_success:
            raise SearchError(f"search returned {resp.status_code}: {resp.text[:200]}")

        try:
            data = resp.json()
        except ValueError as exc:
            raise SearchError("search returned a non-JSON body") from exc

        rows = data.get("results") if isinstance(data, dict) else None
        hits = [h for h in (_hit_from_payload(r) for r in rows or [] if isinstance(r, dict)) if h]
        log.info("search finished", extra={"query": query, "hits": len(hits)})
        return hits
