"""Bulk transfer request and status models."""

from datetime import datetime

from pydantic import Field

from anitilky.models.db.transfer import (
    TransferJobState,
    TransferOutcome,
    TransferReason,
)
from anitilky.models.schemas.catalog import (
    CatalogBaseModel,
    Language,
    Quality,
    UTCDateTime,
    VideoSourceDefaults,
    VideoType,
)

__all__ = [
    "BulkUploadRequest",
    "BulkUploadResponse",
    "TransferItemPage",
    "TransferItemStatus",
    "TransferJobList",
    "TransferJobStatus",
]


class BulkUploadRequest(CatalogBaseModel):
    """Request body for starting a bulk upload from a Drive folder."""

    season_number: int = Field(ge=0)
    folder_id: str = Field(min_length=1, description="Folder id or Drive URL")
    fansub: str | None = None
    quality: Quality = Quality.Q720P
    language: Language = Language.TR
    type: VideoType = VideoType.SUBTITLED

    def defaults(self) -> VideoSourceDefaults:
        """Video source attributes applied to every uploaded episode."""
        return VideoSourceDefaults(
            fansub=self.fansub,
            quality=self.quality,
            language=self.language,
            type=self.type,
        )


class BulkUploadResponse(CatalogBaseModel):
    """Immediate answer to a bulk upload request."""

    message: str
    job_id: str
    total_files: int
    files: list[str]


class TransferJobStatus(CatalogBaseModel):
    """Snapshot of a bulk transfer job."""

    id: str
    anime_id: str
    anime_title: str | None = None
    season_number: int
    folder_id: str
    state: TransferJobState
    live: bool = False
    total: int = 0
    processed: int = 0
    successful: int = 0
    failed: int = 0
    skipped: int = 0
    progress: float = 0.0
    current_file: str | None = None
    elapsed_seconds: float | None = None
    error_message: str | None = None
    cancel_requested: bool = False
    created_at: UTCDateTime
    started_at: UTCDateTime | None = None
    finished_at: UTCDateTime | None = None


class TransferJobList(CatalogBaseModel):
    """List of recent transfer jobs."""

    jobs: list[TransferJobStatus]


class TransferItemStatus(CatalogBaseModel):
    """Outcome of one file processed by a transfer job."""

    position: int
    file_id: str
    file_name: str
    file_size: int | None = None
    episode_number: int | None = None
    outcome: TransferOutcome
    reason: TransferReason | None = None
    cdn_url: str | None = None
    bytes_transferred: int = 0
    error_message: str | None = None
    timestamp: datetime | None = None


class TransferItemPage(CatalogBaseModel):
    """Paginated per-file outcomes of a transfer job."""

    items: list[TransferItemStatus]
    total: int
    page: int
    per_page: int
    pages: int
