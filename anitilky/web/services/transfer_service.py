"""Service exposing bulk transfer jobs to the web API."""

from functools import lru_cache

from anitilky.core.transfer.manager import TransferManager
from anitilky.core.transfer.pipeline import BulkTransferRequest
from anitilky.models.schemas.transfer import (
    BulkUploadRequest,
    BulkUploadResponse,
    TransferItemPage,
    TransferJobList,
    TransferJobStatus,
)
from anitilky.web.state import get_app_state

__all__ = ["TransferService", "get_transfer_service"]


class TransferService:
    """Starts, inspects and cancels bulk transfers through the transfer manager."""

    @property
    def manager(self) -> TransferManager:
        """The running transfer manager."""
        return get_app_state().require_transfer_manager()

    async def start_bulk_upload(
        self, anime_id: str, payload: BulkUploadRequest
    ) -> BulkUploadResponse:
        """Validate and start a bulk upload into a season.

        Args:
            anime_id (str): The target anime.
            payload (BulkUploadRequest): Season, folder and video source defaults.

        Returns:
            BulkUploadResponse: The accepted files and the job id to poll.
        """
        job = await self.manager.start_transfer(
            BulkTransferRequest(
                anime_id=anime_id,
                season_number=payload.season_number,
                folder_ref=payload.folder_id,
                defaults=payload.defaults(),
            )
        )
        return BulkUploadResponse(
            message=(
                f"Bulk upload started: {job.stats.total} files will be processed "
                "in the background"
            ),
            job_id=job.id,
            total_files=job.stats.total,
            files=job.file_names,
        )

    def list_jobs(self, anime_id: str | None = None, limit: int = 50) -> TransferJobList:
        """Return recent jobs, optionally for one anime."""
        return TransferJobList(
            jobs=self.manager.list_jobs(anime_id=anime_id, limit=limit)
        )

    def get_job(self, job_id: str) -> TransferJobStatus:
        """Return one job's status."""
        return self.manager.status(job_id)

    def list_items(
        self, job_id: str, page: int = 1, per_page: int = 50
    ) -> TransferItemPage:
        """Return a page of a job's per-file outcomes.

        Raises:
            TransferJobNotFoundError: If the job is unknown.
        """
        self.manager.status(job_id)
        items, total = self.manager.history.list_items(
            job_id, page=page, per_page=per_page
        )
        return TransferItemPage(
            items=items,
            total=total,
            page=page,
            per_page=per_page,
            pages=(total + per_page - 1) // per_page if total else 1,
        )

    def cancel(self, job_id: str) -> TransferJobStatus:
        """Request cancellation of a running job."""
        return self.manager.cancel(job_id)


@lru_cache(maxsize=1)
def get_transfer_service() -> TransferService:
    """Get the singleton TransferService instance.

    Returns:
        TransferService: The transfer service instance.
    """
    return TransferService()
