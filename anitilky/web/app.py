"""FastAPI application factory and setup."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from logging import DEBUG

from fastapi.applications import FastAPI
from fastapi.responses import JSONResponse
from starlette.requests import Request

from anitilky import __version__, config, log
from anitilky.core.transfer.manager import TransferManager
from anitilky.exceptions import AniTilkyError
from anitilky.web.middlewares.basic_auth import BasicAuthMiddleware
from anitilky.web.middlewares.request_logging import RequestLoggingMiddleware
from anitilky.web.routes import router
from anitilky.web.state import get_app_state

__all__ = ["create_app"]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Application lifespan context manager.

    Starts the transfer manager passed to ``create_app`` and stops it, cancelling
    running jobs, when the server shuts down.

    Args:
        app (FastAPI): The FastAPI application instance.

    Returns:
        AsyncGenerator: The application lifespan context manager.
    """
    manager: TransferManager | None = app.extra.get("transfer_manager")
    if manager is None:
        log.info("Web: No transfer manager passed; bulk uploads are unavailable")
    else:
        get_app_state().set_transfer_manager(manager)
        if not manager.is_running:
            await manager.start()
            log.success("Web: Transfer manager started")
    try:
        yield
    finally:
        await get_app_state().shutdown()
        if manager and manager.is_running:
            await manager.stop()


def create_app(transfer_manager: TransferManager | None = None) -> FastAPI:
    """Create the FastAPI application.

    Args:
        transfer_manager (TransferManager | None): The transfer manager instance.

    Returns:
        FastAPI: The created FastAPI application.
    """
    app = FastAPI(title="AniTilky", lifespan=lifespan, version=__version__)

    if transfer_manager:
        app.extra["transfer_manager"] = transfer_manager

    # Add request logging middleware if in debug mode
    if log.level <= DEBUG:
        app.add_middleware(RequestLoggingMiddleware)
        log.debug("Web: Request logging enabled (debug mode)")

    # Add basic auth middleware if configured
    basic_auth = config.web.basic_auth
    if basic_auth.username and basic_auth.password:
        app.add_middleware(
            BasicAuthMiddleware,
            username=basic_auth.username,
            password=basic_auth.password.get_secret_value(),
            realm=basic_auth.realm,
        )
        log.info("Web: HTTP Basic Authentication enabled for the admin API")

    app.include_router(router)

    @app.exception_handler(AniTilkyError)
    async def domain_exception_handler(
        request: Request, exc: AniTilkyError
    ) -> JSONResponse:
        """Handle AniTilky errors with structured JSON responses.

        Args:
            request (Request): The incoming HTTP request.
            exc (AniTilkyError): The exception instance.

        Returns:
            JSONResponse: Structured JSON response with error details.
        """
        cls = exc.__class__
        # KeyError subclasses quote their message in str()
        message = exc.args[0] if exc.args and isinstance(exc.args[0], str) else ""
        payload = {
            "error": cls.__name__,
            "detail": message or str(exc) or cls.__doc__ or "",
            "path": request.url.path,
        }
        return JSONResponse(status_code=cls.status_code, content=payload)

    return app
