# src/dispatch/scheduler.py
"""
Bulk dispatch scheduler.

Sends up to MAX_BATCH_ITEMS composed messages through the mail transport with
a small worker pool. Workers claim item indices from one shared WorkCursor, so
every item is processed exactly once. Each item gets up to three attempts
(see src.dispatch.retry); a failure is recorded in that item's result and
never touches its siblings. Exactly one BulkSendResult comes back per input
item, in input order.

Batch-wide preconditions (size, duplicate recipients, duplicate clientIds)
are checked before anything is sent and raise BatchRejected.

The same worker pool drives draft generation (generate_drafts) with a wider
pool, for callers that personalize each recipient before sending.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any, Literal, TypeVar

import httpx

from src.dispatch.gmail import MailTransport
from src.dispatch.mime import build_message, encode_raw
from src.dispatch.retry import SleepFn, send_retrying
from src.exceptions import BatchRejected
from src.models import BulkSendItem, BulkSendReport, BulkSendResult

log = logging.getLogger(__name__)

MAX_BATCH_ITEMS = 25
SEND_CONCURRENCY = 2
DRAFT_CONCURRENCY = 3

T = TypeVar("T")
R = TypeVar("R")


class WorkCursor:
    """
    Shared claim counter for pool workers.

    claim() never awaits, so on a single event loop two workers can never
    observe the same index.
    """

    def __init__(self, total: int) -> None:
        self.total = total
        self._counter = itertools.count()

    def claim(self) -> int | None:
        idx = next(self._counter)
        return idx if idx < self.total else None


async def run_pool(
    items: Sequence[T],
    handler: Callable[[T], Awaitable[R]],
    concurrency: int,
) -> list[R]:
    """
    Run handler over items with min(concurrency, len(items)) workers.

    Results line up with items by index. The handler must not raise; wrap
    per-item failures into its return value.
    """
    if not items:
        return []
    results: list[Any] = [None] * len(items)
    cursor = WorkCursor(len(items))

    async def worker() -> None:
        while True:
            idx = cursor.claim()
            if idx is None:
                return
            results[idx] = await handler(items[idx])

    workers = max(1, min(concurrency, len(items)))
    await asyncio.gather(*(worker() for _ in range(workers)))
    return results


def validate_batch(items: Sequence[BulkSendItem], max_items: int = MAX_BATCH_ITEMS) -> None:
    if not items:
        raise BatchRejected("Batch must contain at least one item", error="Empty batch")
    if len(items) > max_items:
        raise BatchRejected(
            f"Batch has {len(items)} items; the limit is {max_items}", error="Batch too large"
        )

    seen_to: set[str] = set()
    seen_ids: set[str] = set()
    for item in items:
        key = item.recipient_key
        if key in seen_to:
            raise BatchRejected(
                f"Duplicate recipient in batch: {item.to}", error="Duplicate recipient"
            )
        seen_to.add(key)
        if item.client_id in seen_ids:
            raise BatchRejected(
                f"Duplicate clientId in batch: {item.client_id}", error="Duplicate clientId"
            )
        seen_ids.add(item.client_id)


class BulkDispatcher:
    def __init__(
        self,
        transport: MailTransport,
        *,
        concurrency: int = SEND_CONCURRENCY,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.transport = transport
        self.concurrency = concurrency
        self._sleep = sleep

    async def send_batch(self, items: Sequence[BulkSendItem], access_token: str) -> BulkSendReport:
        validate_batch(items)

        async def handle(item: BulkSendItem) -> BulkSendResult:
            return await self.send_item(item, access_token)

        results = await run_pool(items, handle, self.concurrency)
        report = BulkSendReport.from_results(results)
        log.info(
            "bulk send finished",
            extra={
                "total": report.summary.total,
                "sent": report.summary.sent,
                "failed": report.summary.failed,
            },
        )
        return report

    async def send_item(self, item: BulkSendItem, access_token: str) -> BulkSendResult:
        attempts = 0

        async def attempt_once() -> httpx.Response:
            nonlocal attempts
            attempts += 1
            raw = encode_raw(build_message(item.to, item.subject, item.body, item.attachments))
            return await self.transport.send_raw(access_token, raw)

        try:
            resp = await send_retrying(self._sleep)(attempt_once)
        except Exception as exc:
            log.warning(
                "bulk item send raised",
                extra={"client_id": item.client_id, "attempts": attempts, "exc": str(exc)},
            )
            return BulkSendResult(
                client_id=item.client_id,
                to=item.to,
                success=False,
                attempts=attempts,
                error=str(exc) or "Unexpected send failure",
            )

        if resp.is_success:
            message_id = None
            try:
                payload = resp.json()
                if isinstance(payload, dict) and payload.get("id") is not None:
                    message_id = str(payload["id"])
            except ValueError:
                pass
            return BulkSendResult(
                client_id=item.client_id,
                to=item.to,
                success=True,
                attempts=attempts,
                message_id=message_id,
            )

        text = resp.text
        error = f"Gmail API returned {resp.status_code}" + (f": {text}" if text else "")
        log.warning(
            "bulk item send failed",
            extra={
                "client_id": item.client_id,
                "attempts": attempts,
                "status_code": resp.status_code,
            },
        )
        return BulkSendResult(
            client_id=item.client_id,
            to=item.to,
            success=False,
            attempts=attempts,
            error=error,
            status_code=resp.status_code,
        )


# ---------------------------------------------------------------------------
# Draft generation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DraftRecipient:
    client_id: str
    name: str
    email: str
    company: str = ""


@dataclass
class DraftResult:
    client_id: str
    status: Literal["ready", "failed"]
    subject: str = ""
    body: str = ""
    error: str | None = None


DraftRenderer = Callable[[DraftRecipient], Awaitable[tuple[str, str]]]


async def generate_drafts(
    recipients: Sequence[DraftRecipient],
    render: DraftRenderer,
    *,
    concurrency: int = DRAFT_CONCURRENCY,
) -> list[DraftResult]:
    """
    Personalize one draft per recipient with a caller-supplied renderer that
    returns (subject, body). A renderer failure marks only that recipient's
    draft as failed.
    """

    async def handle(recipient: DraftRecipient) -> DraftResult:
        try:
            subject, body = await render(recipient)
        except Exception as exc:
            log.warning(
                "draft generation failed",
                extra={"client_id": recipient.client_id, "exc": str(exc)},
            )
            return DraftResult(
                client_id=recipient.client_id,
                status="failed",
                error="Failed to generate personalized draft",
            )
        return DraftResult(
            client_id=recipient.client_id, status="ready", subject=subject, body=body
        )

    return await run_pool(recipients, handle, concurrency)
