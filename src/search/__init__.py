# src/search/__init__.py
"""
Web search for discovery research rounds.

  - backend: SearchBackend protocol and the Tavily implementation
  - extract: pulling on-domain addresses out of result pages
"""

from .backend import SearchBackend, SearchHit, TavilySearchBackend
from .extract import find_domain_addresses, matches_person, page_text

__all__ = [
    "SearchBackend",
    "SearchHit",
    "TavilySearchBackend",
    "find_domain_addresses",
    "matches_person",
    "page_text",
]
