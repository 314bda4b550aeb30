# src/generate/patterns.py
from __future__ import annotations

import re
from collections.abc import Callable

from unidecode import unidecode

from src.models import CandidateAddress

# Local-part builder type
LPFn = Callable[[str, str], str]

# Canonical pattern set (ASCII, lowercase, separators normalized)
PATTERNS: dict[str, LPFn] = {
    "first.last": lambda fn, ln: f"{fn}.{ln}",
    "last": lambda fn, ln: ln,
    "firstlast": lambda fn, ln: f"{fn}{ln}",
    "first_last": lambda fn, ln: f"{fn}_{ln}",
    "flast": lambda fn, ln: f"{fn[:1]}{ln}",
    "first": lambda fn, ln: fn,
    "first-last": lambda fn, ln: f"{fn}-{ln}",
}

# Order candidates are tried in; earlier is tried first.
PATTERN_PRIORITY: tuple[str, ...] = (
    "first.last",
    "last",
    "firstlast",
    "first_last",
    "flast",
    "first",
    "first-last",
)

KNOWN_PATTERN = "known"

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")


def _safe(token: str) -> str:
    """ASCII-fold, lower-case and keep only [a-z0-9]."""
    return _NON_ALNUM_RE.sub("", unidecode(token or "").lower())


def normalize_domain(domain: str) -> str:
    """
    Lower-case and strip whitespace, a leading '@', a URL scheme/path and a
    leading 'www.'. Callers normally pass a clean domain already.
    """
    d = (domain or "").strip().lower()
    if "://" in d:
        d = d.split("://", 1)[1]
    d = d.split("/", 1)[0].lstrip("@").rstrip(".")
    if d.startswith("www."):
        d = d[4:]
    return d


def split_name(name: str) -> tuple[str, str]:
    """
    Split a full name on whitespace into normalized (first, last).

    first is the first usable token and last is the last one; a single-token
    name yields first == last. Returns ("", "") when nothing usable remains.
    """
    tokens = [t for t in (_safe(part) for part in (name or "").split()) if t]
    if not tokens:
        return "", ""
    return tokens[0], tokens[-1]


def apply_pattern(first: str, last: str, key: str) -> str:
    return PATTERNS[key](first, last)


def infer_pattern(local_part: str, name: str) -> str | None:
    """
    Best-effort guess: which canonical pattern produced this local-part for
    this person? Returns None when no pattern matches.
    """
    first, last = split_name(name)
    if not first:
        return None
    lp = (local_part or "").strip().lower()
    for key in PATTERN_PRIORITY:
        if apply_pattern(first, last, key) == lp:
            return key
    return None


def _known_candidate(known_pattern: str, name: str, domain: str) -> CandidateAddress | None:
    """
    Resolve a caller-supplied known pattern into a candidate.

    Accepts either an address already observed for this person (its own
    local-part/domain pair is used) or a canonical key such as "flast".
    """
    kp = (known_pattern or "").strip().lower()
    if not kp:
        return None

    if "@" in kp:
        local, _, dom = kp.rpartition("@")
        dom = normalize_domain(dom)
        if not local or not dom:
            return None
        return CandidateAddress(
            email=f"{local}@{dom}",
            pattern=infer_pattern(local, name) or KNOWN_PATTERN,
        )

    if kp in PATTERNS:
        first, last = split_name(name)
        local = apply_pattern(first, last, kp)
        if local:
            return CandidateAddress(email=f"{local}@{domain}", pattern=kp)
    return None


def generate_candidates(
    name: str,
    domain: str,
    known_pattern: str | None = None,
) -> list[CandidateAddress]:
    """
    Build the ordered candidate list for name@domain.

    Order is PATTERN_PRIORITY; a known pattern, when supplied and usable, is
    prepended. Addresses that collapse to the same string (e.g. first == last)
    keep their earliest position only.

    Raises ValueError when the name or domain has nothing usable in it.
    """
    dom = normalize_domain(domain)
    first, last = split_name(name)
    if not first or not dom:
        raise ValueError(f"cannot generate candidates for name={name!r} domain={domain!r}")

    out: list[CandidateAddress] = []
    seen: set[str] = set()

    if known_pattern:
        known = _known_candidate(known_pattern, name, dom)
        if known is not None:
            out.append(known)
            seen.add(known.email)

    for key in PATTERN_PRIORITY:
        local = apply_pattern(first, last, key)
        if not local:
            continue
        email = f"{local}@{dom}"
        if email in seen:
            continue
        seen.add(email)
        out.append(CandidateAddress(email=email, pattern=key))

    return out


__all__ = [
    "PATTERNS",
    "PATTERN_PRIORITY",
    "KNOWN_PATTERN",
    "normalize_domain",
    "split_name",
    "apply_pattern",
    "infer_pattern",
    "generate_candidates",
]
