# src/discover/__init__.py
"""
Discovery: pattern matching, then up to three web research rounds, with
per-step progress streamed to the caller.
"""

from __future__ import annotations

from .machine import DiscoveryState, EmailDiscovery, Transition
from .research import MAX_RESEARCH_ATTEMPTS, ResearchController, build_queries
from .stream import DiscoveryStream, encode_event, sse_frames

__all__ = [
    "DiscoveryState",
    "EmailDiscovery",
    "Transition",
    "MAX_RESEARCH_ATTEMPTS",
    "ResearchController",
    "build_queries",
    "DiscoveryStream",
    "encode_event",
    "sse_frames",
]
