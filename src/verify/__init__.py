# src/verify/__init__.py
"""
Mailbox verification through a third-party verification API.

Public API:
    VerificationClient(config).verify(email) -> VerificationVerdict
    PatternFinder(verifier).find(name, domain, known_pattern=None) -> DiscoveryAttempt
"""

from __future__ import annotations

from .client import Verifier, VerificationClient, map_provider_status
from .finder import PatternFinder

__all__ = ["Verifier", "VerificationClient", "map_provider_status", "PatternFinder"]
