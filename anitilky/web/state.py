"""Global web application state utilities.

Holds references to long-lived singletons (catalog store, transfer manager) needed
by route handlers.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from functools import lru_cache
from typing import TYPE_CHECKING, Any

from anitilky import log
from anitilky.core.catalog import CatalogStore
from anitilky.exceptions import TransferManagerUnavailableError

__all__ = ["AppState", "get_app_state"]

if TYPE_CHECKING:
    from anitilky.core.transfer.manager import TransferManager


class AppState:
    """Container for global web application state."""

    def __init__(self) -> None:
        """Initialize empty state containers and record process start time."""
        self.catalog: CatalogStore = CatalogStore()
        self.transfer_manager: TransferManager | None = None
        self.on_shutdown_callbacks: list[Callable[[], Any]] = []
        self.started_at: datetime = datetime.now(UTC)

    def set_transfer_manager(self, manager: TransferManager) -> None:
        """Set the transfer manager and share its catalog store.

        Args:
            manager (TransferManager): The transfer manager instance to set.
        """
        self.transfer_manager = manager
        self.catalog = manager.catalog

    def require_transfer_manager(self) -> TransferManager:
        """Return the transfer manager or fail if it is not available.

        Raises:
            TransferManagerUnavailableError: If no manager has been set.
        """
        if self.transfer_manager is None:
            raise TransferManagerUnavailableError("Transfer manager not available")
        return self.transfer_manager

    def add_shutdown_callback(self, cb: Callable[[], Any]) -> None:
        """Register a shutdown callback executed during app shutdown.

        Args:
            cb (Callable[[], Any]): The callback function to register.
        """
        self.on_shutdown_callbacks.append(cb)

    async def shutdown(self) -> None:
        """Run registered shutdown callbacks, logging individual failures."""
        for cb in self.on_shutdown_callbacks:
            try:
                res = cb()
                if hasattr(res, "__await__"):
                    await res
            except Exception:
                log.warning("Shutdown callback failed", exc_info=True)
        self.on_shutdown_callbacks.clear()


@lru_cache(maxsize=1)
def get_app_state() -> AppState:
    """Get the singleton application state instance.

    Returns:
        AppState: The application state instance.
    """
    return AppState()
