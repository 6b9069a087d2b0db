"""In-memory handle of a running bulk transfer."""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import uuid4

from anitilky.core.drive import DriveFile
from anitilky.core.transfer.stats import TransferStats
from anitilky.models.db.transfer import TransferJobState
from anitilky.models.schemas.catalog import VideoSourceDefaults
from anitilky.models.schemas.transfer import TransferJobStatus

__all__ = ["TransferJob"]


@dataclass(eq=False)
class TransferJob:
    """A validated bulk transfer and its live progress.

    Created once the target anime, season and folder have been validated and the
    folder listed. The background task mutates ``state``, ``stats`` and
    ``current_file`` while status lookups read them.
    """

    anime_id: str
    anime_title: str
    season_number: int
    folder_id: str
    files: list[DriveFile]
    defaults: VideoSourceDefaults
    id: str = field(default_factory=lambda: uuid4().hex)
    state: TransferJobState = TransferJobState.PENDING
    stats: TransferStats = field(default_factory=TransferStats)
    current_file: str | None = None
    error_message: str | None = None
    cancel_requested: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    started_at: datetime | None = None
    finished_at: datetime | None = None
    task: asyncio.Task | None = field(default=None, init=False, repr=False)
    _started_monotonic: float | None = field(default=None, init=False, repr=False)
    _finished_monotonic: float | None = field(
        default=None, init=False, repr=False
    )

    def __post_init__(self) -> None:
        self.stats.total = len(self.files)

    @property
    def file_names(self) -> list[str]:
        """Names of the accepted files in processing order."""
        return [f.name for f in self.files]

    @property
    def finished(self) -> bool:
        """Whether the job reached a terminal state."""
        return self.state.finished

    @property
    def elapsed(self) -> float | None:
        """Seconds the job has been running, frozen once it finished."""
        if self._started_monotonic is None:
            return None
        end = self._finished_monotonic or time.monotonic()
        return end - self._started_monotonic

    def mark_running(self) -> None:
        """Move the job into the running state."""
        self.state = TransferJobState.RUNNING
        self.started_at = datetime.now(UTC)
        self._started_monotonic = time.monotonic()

    def mark_finished(
        self, state: TransferJobState, error_message: str | None = None
    ) -> None:
        """Move the job into a terminal state.

        Args:
            state (TransferJobState): The terminal state.
            error_message (str | None): Why the job crashed, if it did.
        """
        self.state = state
        self.error_message = error_message
        self.current_file = None
        self.finished_at = datetime.now(UTC)
        self._finished_monotonic = time.monotonic()

    def snapshot(self) -> TransferJobStatus:
        """Build a status snapshot for API responses."""
        return TransferJobStatus(
            id=self.id,
            anime_id=self.anime_id,
            anime_title=self.anime_title,
            season_number=self.season_number,
            folder_id=self.folder_id,
            state=self.state,
            live=not self.finished,
            **self.stats.counters(),
            progress=round(self.stats.progress * 100, 2),
            current_file=self.current_file,
            elapsed_seconds=(
                round(self.elapsed, 3) if self.elapsed is not None else None
            ),
            error_message=self.error_message,
            cancel_requested=self.cancel_requested,
            created_at=self.created_at,
            started_at=self.started_at,
            finished_at=self.finished_at,
        )
