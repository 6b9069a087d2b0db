"""System related API endpoints (runtime info)."""

import platform
from datetime import UTC, datetime

from fastapi.routing import APIRouter
from pydantic import BaseModel

from anitilky import __git_hash__, __version__
from anitilky.web.state import get_app_state

__all__ = ["router"]


class SystemStatusResponse(BaseModel):
    version: str
    git_hash: str
    python: str
    utc_now: str
    started_at: str
    uptime_seconds: int
    uptime: str
    transfers_available: bool
    running_jobs: int


def _humanize(seconds: int) -> str:
    days, rem = divmod(seconds, 86400)
    hours, rem = divmod(rem, 3600)
    minutes, seconds = divmod(rem, 60)
    parts: list[str] = []
    if days:
        parts.append(f"{days}d")
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    parts.append(f"{seconds}s")
    return " ".join(parts)


router = APIRouter()


@router.get(
    "/status",
    summary="Return version, uptime and transfer activity",
    response_model=SystemStatusResponse,
)
async def api_status() -> SystemStatusResponse:
    """Get runtime metadata.

    Returns:
        SystemStatusResponse: The runtime metadata.
    """
    state = get_app_state()
    now = datetime.now(UTC)
    uptime_seconds = int((now - state.started_at).total_seconds())
    manager = state.transfer_manager

    return SystemStatusResponse(
        version=__version__,
        git_hash=__git_hash__,
        python=platform.python_version(),
        utc_now=now.isoformat(),
        started_at=state.started_at.isoformat(),
        uptime_seconds=uptime_seconds,
        uptime=_humanize(uptime_seconds),
        transfers_available=manager is not None and manager.is_running,
        running_jobs=manager.running_jobs if manager else 0,
    )
