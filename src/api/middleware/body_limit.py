from __future__ import annotations

from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send


class BodySizeLimitMiddleware:
    """
    Rejects request bodies larger than max_bytes with a JSON 413.

    A declared Content-Length over the limit is refused before the app runs.
    Otherwise chunks are counted as the app reads them; once the running
    total crosses the limit the client gets a 413 and the app sees a
    disconnect.
    """

    def __init__(self, app: ASGIApp, max_bytes: int) -> None:
        self.app = app
        self.max_bytes = int(max_bytes)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        declared = _content_length(scope)
        if declared is not None and declared > self.max_bytes:
            await self._reject(scope, receive, send, declared)
            return

        total = 0
        rejected = False

        async def counting_receive() -> Message:
            nonlocal total, rejected
            if rejected:
                return {"type": "http.disconnect"}
            message = await receive()
            if message["type"] == "http.request":
                total += len(message.get("body", b"") or b"")
                if total > self.max_bytes:
                    rejected = True
                    await self._reject(scope, receive, send, total)
                    return {"type": "http.disconnect"}
            return message

        await self.app(scope, counting_receive, send)

    async def _reject(self, scope: Scope, receive: Receive, send: Send, size: int) -> None:
        resp = JSONResponse(
            status_code=413,
            content={
                "error": "Payload too large",
                "message": f"Request body of {size} bytes exceeds the {self.max_bytes} byte limit",
            },
        )
        await resp(scope, receive, send)


def _content_length(scope: Scope) -> int | None:
    for key, value in scope.get("headers", []):
        if key.lower() == b"content-length":
            raw = value.decode("latin1").strip()
            return int(raw) if raw.isdigit() else None
    return None
