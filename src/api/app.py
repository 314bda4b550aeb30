from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from http import HTTPStatus
from typing import Any

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, EmailStr, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.api.deps import Caller, Services, build_services, get_caller, get_services
from src.api.middleware.body_limit import BodySizeLimitMiddleware
from src.config import AppConfig, load_settings
from src.discover.stream import DiscoveryStream, sse_frames
from src.dispatch.mime import normalize_attachments
from src.dispatch.scheduler import MAX_BATCH_ITEMS, BulkDispatcher, validate_batch
from src.exceptions import BatchRejected, CredentialExpired, MailNotConnected
from src.models import BulkSendItem, DiscoveryRequest

log = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "X-Accel-Buffering": "no",
}


def _error_response(status_code: int, error: str, message: str) -> JSONResponse:
    """
    Helper to return a JSON error payload with a consistent shape.

    Example:
        { "error": "Duplicate recipient", "message": "Duplicate recipient in batch: a@x.com" }
    """
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "message": message},
    )


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------


class EmailFinderRequest(BaseModel):
    name: str = Field(..., min_length=1)
    company: str = Field(..., min_length=1)
    domain: str = Field(..., min_length=1)
    role: str | None = None
    conversationId: str | None = None
    # observed address or pattern key (e.g. "first.last") for the company
    knownPattern: str | None = None

    def to_request(self) -> DiscoveryRequest:
        return DiscoveryRequest(
            name=self.name.strip(),
            company=self.company.strip(),
            domain=self.domain.strip(),
            role=(self.role or "").strip() or None,
        )


class BulkSendItemModel(BaseModel):
    clientId: str = Field(..., min_length=1)
    to: EmailStr
    subject: str = Field(..., min_length=1)
    body: str = Field(..., min_length=1)
    attachments: list[Any] | None = None

    def to_item(self) -> BulkSendItem:
        return BulkSendItem(
            client_id=self.clientId,
            to=str(self.to),
            subject=self.subject,
            body=self.body,
            attachments=normalize_attachments(self.attachments or []),
        )


class BulkSendRequest(BaseModel):
    items: list[BulkSendItemModel] = Field(..., min_length=1, max_length=MAX_BATCH_ITEMS)


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def create_app(config: AppConfig | None = None, services: Services | None = None) -> FastAPI:
    """
    Build the API. Services are created on startup from config unless the
    caller supplies them (tests do).
    """
    cfg = config or (services.config if services else load_settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned = False
        if getattr(app.state, "services", None) is None:
            app.state.services = build_services(cfg)
            owned = True
        try:
            yield
        finally:
            if owned:
                await app.state.services.aclose()
                app.state.services = None

    app = FastAPI(title="Email Discovery & Dispatch API", lifespan=lifespan)
    app.state.services = services

    # Register early so limits apply to all routes
    app.add_middleware(BodySizeLimitMiddleware, max_bytes=cfg.api.body_limit_bytes)

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        try:
            phrase = HTTPStatus(exc.status_code).phrase
        except ValueError:
            phrase = "Error"
        return _error_response(exc.status_code, phrase, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        problems = []
        for err in exc.errors():
            loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
            problems.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
        return _error_response(400, "Invalid request", "; ".join(problems) or "Invalid request")

    app.add_api_route("/health", health, methods=["GET"])
    app.add_api_route("/agents/email-finder", email_finder, methods=["POST"])
    app.add_api_route("/email/send-bulk", send_bulk, methods=["POST"])
    return app


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


async def health() -> dict[str, bool]:
    return {"ok": True}


async def email_finder(
    payload: EmailFinderRequest,
    services: Services = Depends(get_services),
) -> StreamingResponse:
    """
    Run one discovery and stream its steps as Server-Sent Events.

    The stream ends after exactly one terminal event. A client disconnect
    cancels the run along with its in-flight lookups.
    """
    stream = DiscoveryStream(
        services.discovery,
        payload.to_request(),
        conversation_id=payload.conversationId,
        known_pattern=payload.knownPattern,
        cancel=asyncio.Event(),
        queue_size=services.config.api.stream_queue_size,
    )
    log.info(
        "email finder started",
        extra={"conversation_id": stream.conversation_id, "domain": payload.domain},
    )
    headers = dict(SSE_HEADERS)
    headers["X-Conversation-Id"] = stream.conversation_id
    return StreamingResponse(
        sse_frames(stream.events()),
        media_type="text/event-stream",
        headers=headers,
    )


async def send_bulk(
    payload: BulkSendRequest,
    caller: Caller = Depends(get_caller),
    services: Services = Depends(get_services),
) -> Any:
    try:
        items = [m.to_item() for m in payload.items]
        validate_batch(items)

        refresh_token = await services.credentials.get_refresh_token(caller.user_id)
        if not refresh_token:
            raise MailNotConnected("Please connect your Gmail account first")

        try:
            access_token = await services.mail.get_access_token(refresh_token)
        except CredentialExpired:
            log.warning("stored mail credential expired", extra={"user_id": caller.user_id})
            await services.credentials.clear_refresh_token(caller.user_id)
            return _error_response(
                403,
                "Gmail connection expired",
                "Please reconnect your Gmail account",
            )

        dispatcher = BulkDispatcher(services.mail, sleep=services.dispatch_sleep)
        report = await dispatcher.send_batch(items, access_token)
        return report.to_dict()
    except BatchRejected as exc:
        return _error_response(400, exc.error, exc.message)
    except MailNotConnected as exc:
        return _error_response(403, "Gmail not connected", str(exc))
    except Exception:
        log.exception("bulk send failed", extra={"user_id": caller.user_id})
        return _error_response(500, "Internal server error", "Failed to send emails")


app = create_app()
