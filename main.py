"""AniTilky Main Application."""

import asyncio
import signal
import sys

import uvicorn
from pydantic import ValidationError

from anitilky import ANITILKY_HEADER, log
from anitilky.config.settings import AniTilkyConfig, get_config
from anitilky.core.transfer.manager import TransferManager
from anitilky.web.app import create_app


def _setup_signal_handlers(server: uvicorn.Server) -> None:
    """Install SIGINT/SIGTERM handlers that request server shutdown."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = asyncio.get_event_loop()

    def _on_signal(sig):
        name = signal.Signals(sig).name if sig else "UNKNOWN"
        log.info(f"AniTilky: Received {name} signal, initiating graceful shutdown...")
        server.should_exit = True

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, lambda s=sig: _on_signal(s))
        except NotImplementedError:
            # Fallback for environments that don't support add_signal_handler
            signal.signal(sig, lambda s, f: _on_signal(s))


def validate_configuration(config: AniTilkyConfig) -> bool:
    """Validate the application configuration and report what is missing.

    Returns:
        bool: True if the application can start, False otherwise
    """
    log.info(f"AniTilky: {config}")
    if not config.web.enabled:
        log.error("AniTilky: The web server is disabled; there is nothing to serve")
        return False
    if not (config.storage.zone_name and config.storage.api_key):
        log.warning(
            "AniTilky: Bunny storage is not configured; bulk uploads will be "
            "rejected until storage.zone_name and storage.api_key are set"
        )
    return True


async def run() -> int:
    """Main application entry point.

    Starts the transfer manager and serves the web API until shutdown.

    Returns:
        int: Exit code (0 for success, 1 for error)
    """
    try:
        config = get_config()
        log.info("\n" + ANITILKY_HEADER)

        if not validate_configuration(config):
            return 1

        async with TransferManager(config) as manager:
            app = create_app(manager)
            uv_config = uvicorn.Config(
                app,
                host=config.web.host,
                port=config.web.port,
                log_config=None,
                loop="asyncio",
                proxy_headers=True,
                forwarded_allow_ips="*",
            )
            server = uvicorn.Server(uv_config)
            _setup_signal_handlers(server)

            log.success(
                "AniTilky: Web API started at "
                f"\033[92mhttp://{config.web.host}:{config.web.port} "
                "(ctrl+c to stop)\033[0m"
            )
            # Use `_serve()` so uvicorn doesn't install its own signal handlers
            await server._serve()
            log.info("AniTilky: Shutting down application...")
        log.success("AniTilky: Application shutdown complete")
    except KeyboardInterrupt:
        log.info("AniTilky: Keyboard interrupt received, shutting down...")
    except ValidationError as e:
        log.error(f"AniTilky: Configuration validation error: {e}")
        return 1
    except (OSError, PermissionError) as e:
        log.error(f"AniTilky: File system error: {e}")
        return 1
    except asyncio.CancelledError:
        log.info("AniTilky: Application cancelled")
        return 0
    except Exception as e:
        log.error(f"AniTilky: Unexpected application error: {e}", exc_info=True)
        return 1
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point.

    Initializes the application and runs the main event loop.

    Args:
        argv (list[str] | None): Command-line arguments (unused).

    Returns:
        int: Exit code (0 for success, 1 for error)
    """
    try:
        return asyncio.run(run())
    except KeyboardInterrupt:
        log.info("AniTilky: Application interrupted")
        return 0
    except Exception as e:
        log.error(f"AniTilky: Fatal error: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
