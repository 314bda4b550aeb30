# src/search/extract.py
"""
Pull on-domain addresses out of search-result page text.

The research controller only cares about addresses at the target domain whose
local-part looks like it belongs to the person being researched. The
person-match heuristic is a plain substring test (first name, last name, or
first initial + last name).
"""

from __future__ import annotations

import re
from html import unescape
from urllib.parse import unquote

from bs4 import BeautifulSoup

_HTML_HINT_RE = re.compile(r"<[a-z][\s\S]*>", re.IGNORECASE)


def _domain_email_re(domain: str) -> re.Pattern[str]:
    # no trailing label after the domain (acme.com must not match acme.com.au)
    return re.compile(
        rf"(?<![\w.+-])[\w.+-]+@{re.escape(domain)}(?![\w-])(?!\.\w)",
        re.IGNORECASE,
    )


def page_text(content: str) -> str:
    """
    Flatten page content to searchable text.

    HTML is parsed with BeautifulSoup; mailto: targets are appended so that
    addresses hidden behind link text are still visible to the scanner.
    """
    if not content:
        return ""
    if not _HTML_HINT_RE.search(content):
        return unescape(content)

    soup = BeautifulSoup(content, "html.parser")
    for tag in soup(["script", "style"]):
        tag.decompose()
    parts = [soup.get_text(" ")]
    for a in soup.find_all("a", href=True):
        href = str(a["href"])
        if href.lower().startswith("mailto:"):
            parts.append(unquote(href[7:].split("?", 1)[0]))
    return " ".join(parts)


def find_domain_addresses(content: str, domain: str) -> list[str]:
    """
    Return lower-cased addresses at ``domain`` found in ``content``,
    de-duplicated in first-seen order.
    """
    if not content or not domain:
        return []
    rx = _domain_email_re(domain)
    out: list[str] = []
    seen: set[str] = set()
    for m in rx.finditer(page_text(content)):
        email = m.group(0).strip(".").lower()
        if email not in seen:
            seen.add(email)
            out.append(email)
    return out


def matches_person(email: str, first: str, last: str) -> bool:
    """True if the local-part contains first, last, or first initial + last."""
    local = email.split("@", 1)[0].lower()
    if first and first in local:
        return True
    if last and last in local:
        return True
    return bool(first and last) and f"{first[0]}{last}" in local
