"""Debug logging of incoming HTTP requests."""

import time
from io import BytesIO

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from anitilky import log

__all__ = ["RequestLoggingMiddleware"]

MAX_BODY_PREVIEW = 1000

TEXT_CONTENT_TYPES = (
    "application/json",
    "application/x-www-form-urlencoded",
    "application/xml",
    "text/",
)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs each request line, status, duration and a body preview at debug level.

    The body is read once and kept on ``request.scope["body"]`` so it stays
    available to the route handler.
    """

    async def _body_preview(self, request: Request) -> str | None:
        try:
            body = await request.body()
        except Exception as e:
            return f"<error reading body: {e}>"

        request.scope["body"] = BytesIO(body)
        if not body:
            return None

        content_type = request.headers.get("content-type", "unknown")
        if not content_type.startswith(TEXT_CONTENT_TYPES):
            return f"<{content_type}, {len(body)} bytes>"

        try:
            text = body.decode("utf-8")
        except UnicodeDecodeError:
            return f"<{content_type}, {len(body)} bytes of binary data>"

        if len(text) > MAX_BODY_PREVIEW:
            return f"{text[:MAX_BODY_PREVIEW]}..."
        return text

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        """Log the request and its outcome.

        Args:
            request (Request): The incoming request.
            call_next (RequestResponseEndpoint): The downstream handler.

        Returns:
            Response: The downstream response.
        """
        start = time.perf_counter()
        target = request.url.path
        if request.url.query:
            target = f"{target}?{request.url.query}"
        preview = await self._body_preview(request)

        try:
            response = await call_next(request)
        except Exception as e:
            duration = (time.perf_counter() - start) * 1000
            log.debug(
                f"{request.method} {target} - Failed after {duration:.1f}ms: {e}"
            )
            raise

        duration = (time.perf_counter() - start) * 1000
        message = (
            f"{request.method} {target} - Response: {response.status_code} "
            f"({duration:.1f}ms)"
        )
        if preview is not None:
            message = f"{message} | Body: {preview}"
        log.debug(message)
        return response
