"""HTTP Basic Authentication for the admin API."""

import base64
import binascii
import secrets

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

__all__ = ["BasicAuthMiddleware"]


class BasicAuthMiddleware(BaseHTTPMiddleware):
    """Rejects requests that do not carry the configured Basic credentials."""

    def __init__(
        self, app: ASGIApp, username: str, password: str, realm: str = "AniTilky"
    ) -> None:
        """Initialize the middleware.

        Args:
            app (ASGIApp): The wrapped application.
            username (str): Expected username.
            password (str): Expected password.
            realm (str): Realm advertised in the challenge.
        """
        super().__init__(app)
        self.username = username
        self.password = password
        self.realm = realm

    def _authorized(self, header: str | None) -> bool:
        if not header:
            return False
        scheme, _, token = header.partition(" ")
        if scheme.lower() != "basic" or not token:
            return False
        try:
            decoded = base64.b64decode(token.strip(), validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            return False
        username, sep, password = decoded.partition(":")
        if not sep:
            return False
        # Compare both halves to keep timing independent of which one differs
        user_ok = secrets.compare_digest(username.encode(), self.username.encode())
        pass_ok = secrets.compare_digest(password.encode(), self.password.encode())
        return user_ok and pass_ok

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        """Challenge unauthenticated requests, pass the rest through.

        Args:
            request (Request): The incoming request.
            call_next (RequestResponseEndpoint): The downstream handler.

        Returns:
            Response: A 401 challenge or the downstream response.
        """
        if self._authorized(request.headers.get("Authorization")):
            return await call_next(request)
        return JSONResponse(
            status_code=401,
            content={
                "error": "Unauthorized",
                "detail": "Authentication required",
                "path": request.url.path,
            },
            headers={"WWW-Authenticate": f'Basic realm="{self.realm}"'},
        )
