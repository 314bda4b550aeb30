# src/dispatch/__init__.py
from __future__ import annotations

from .gmail import GmailClient, MailTransport
from .scheduler import BulkDispatcher, generate_drafts, validate_batch

__all__ = ["GmailClient", "MailTransport", "BulkDispatcher", "generate_drafts", "validate_batch"]
