"""Bulk transfer job endpoints."""

from fastapi import Query
from fastapi.exceptions import HTTPException
from fastapi.routing import APIRouter

from anitilky.models.schemas.transfer import (
    TransferItemPage,
    TransferJobList,
    TransferJobStatus,
)
from anitilky.web.services.transfer_service import get_transfer_service

__all__ = ["router"]

router = APIRouter()


@router.get("", response_model=TransferJobList)
def list_transfers(
    anime_id: str | None = Query(None, description="Only jobs targeting this anime"),
    limit: int = Query(50, ge=1, le=500),
) -> TransferJobList:
    """List recent transfer jobs, newest first.

    Live jobs are reported from memory, finished ones from the history tables.
    """
    return get_transfer_service().list_jobs(anime_id=anime_id, limit=limit)


@router.get("/{job_id}", response_model=TransferJobStatus)
def get_transfer(job_id: str) -> TransferJobStatus:
    """Return a job's counters, progress, elapsed time and current file."""
    return get_transfer_service().get_job(job_id)


@router.get("/{job_id}/items", response_model=TransferItemPage)
def list_transfer_items(
    job_id: str, page: int = 1, per_page: int = 50
) -> TransferItemPage:
    """Return the per-file outcomes of a job in listing order.

    Args:
        job_id (str): The job identifier.
        page (int): 1-based page number.
        per_page (int): Items per page (1-200).

    Returns:
        TransferItemPage: The requested page.
    """
    if page < 1:
        raise HTTPException(400, "page must be >= 1")
    if per_page < 1 or per_page > 200:
        raise HTTPException(400, "per_page must be 1-200")
    return get_transfer_service().list_items(job_id, page=page, per_page=per_page)


@router.post("/{job_id}/cancel", response_model=TransferJobStatus)
def cancel_transfer(job_id: str) -> TransferJobStatus:
    """Ask a running job to stop before its next file.

    The file being transferred when the request arrives is finished first.
    """
    return get_transfer_service().cancel(job_id)
