"""
Request body cap for the upload route.

Runs as plain ASGI, inside CORSMiddleware, so the 413 still carries the CORS
headers a cross-origin page needs to read the error. The cap holds whether or
not the client sends Content-Length: chunked bodies are counted as they
arrive and cut off before the form parser can spool them to disk.
"""

import logging

from fastapi.responses import JSONResponse
from starlette.datastructures import Headers
from starlette.types import ASGIApp, Message, Receive, Scope, Send

log = logging.getLogger(__name__)


class UploadSizeLimit:
    def __init__(self, app: ASGIApp, max_body: int, error: str, path: str = "/upload"):
        self.app = app
        self.max_body = max_body
        self.error = error
        self.path = path

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope["method"] != "POST" or scope["path"] != self.path:
            await self.app(scope, receive, send)
            return

        length = Headers(scope=scope).get("content-length", "")
        if length.isdigit() and int(length) > self.max_body:
            log.warning("[upload] refused: Content-Length %s over %d", length, self.max_body)
            await self.reject(scope, receive, send)
            return

        received = 0
        rejected = False

        async def counted_receive() -> Message:
            nonlocal received, rejected
            if rejected:
                return {"type": "http.disconnect"}
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self.max_body:
                    log.warning("[upload] refused: body passed %d bytes mid-stream", self.max_body)
                    rejected = True
                    await self.reject(scope, receive, send)
                    # the app sees a disconnect and stops reading
                    return {"type": "http.disconnect"}
            return message

        async def guarded_send(message: Message) -> None:
            if not rejected:
                await send(message)

        try:
            await self.app(scope, counted_receive, guarded_send)
        except Exception:
            if not rejected:
                raise
            log.debug("[upload] handler aborted after the 413", exc_info=True)

    async def reject(self, scope: Scope, receive: Receive, send: Send) -> None:
        response = JSONResponse(status_code=413, content={"success": False, "error": self.error})
        await response(scope, receive, send)
