"""Transfer Job Database Models."""

from datetime import UTC, datetime
from enum import StrEnum

from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.schema import ForeignKey, Index
from sqlalchemy.sql.sqltypes import BigInteger, DateTime, Enum, Integer, String

from anitilky.models.db.base import Base

__all__ = [
    "TransferItemRecord",
    "TransferJobRecord",
    "TransferJobState",
    "TransferOutcome",
    "TransferReason",
]


class TransferJobState(StrEnum):
    """Lifecycle states of a bulk transfer job."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    CRASHED = "crashed"

    @property
    def finished(self) -> bool:
        """Whether the job has reached a terminal state."""
        return self in (
            TransferJobState.COMPLETED,
            TransferJobState.CANCELLED,
            TransferJobState.CRASHED,
        )


class TransferOutcome(StrEnum):
    """Final outcome of a single file within a bulk transfer."""

    SUCCESSFUL = "successful"
    FAILED = "failed"
    SKIPPED = "skipped"


class TransferReason(StrEnum):
    """Why a file was skipped or failed."""

    NO_EPISODE_NUMBER = "no_episode_number"
    DUPLICATE_EPISODE = "duplicate_episode"
    TRANSFER_ERROR = "transfer_error"
    STALLED = "stalled"
    PERSIST_ERROR = "persist_error"


class TransferJobRecord(Base):
    """Model for one bulk transfer batch."""

    __tablename__ = "transfer_job"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    anime_id: Mapped[str] = mapped_column(String, index=True)
    anime_title: Mapped[str | None] = mapped_column(String, nullable=True)
    season_number: Mapped[int] = mapped_column(Integer)
    folder_id: Mapped[str] = mapped_column(String)

    state: Mapped[TransferJobState] = mapped_column(
        Enum(TransferJobState), index=True, default=TransferJobState.PENDING
    )
    total: Mapped[int] = mapped_column(Integer, default=0)
    processed: Mapped[int] = mapped_column(Integer, default=0)
    successful: Mapped[int] = mapped_column(Integer, default=0)
    failed: Mapped[int] = mapped_column(Integer, default=0)
    skipped: Mapped[int] = mapped_column(Integer, default=0)

    error_message: Mapped[str | None] = mapped_column(
        String, default=None, nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=lambda: datetime.now(UTC), index=True
    )
    started_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)


class TransferItemRecord(Base):
    """Model for the outcome of a single file processed by a transfer job."""

    __tablename__ = "transfer_item"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    job_id: Mapped[str] = mapped_column(
        String,
        ForeignKey("transfer_job.id", ondelete="CASCADE", onupdate="CASCADE"),
        index=True,
    )
    position: Mapped[int] = mapped_column(Integer)

    file_id: Mapped[str] = mapped_column(String)
    file_name: Mapped[str] = mapped_column(String)
    file_size: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    episode_number: Mapped[int | None] = mapped_column(Integer, nullable=True)

    outcome: Mapped[TransferOutcome] = mapped_column(
        Enum(TransferOutcome), index=True
    )
    reason: Mapped[TransferReason | None] = mapped_column(
        Enum(TransferReason), nullable=True
    )
    cdn_url: Mapped[str | None] = mapped_column(String, nullable=True)
    bytes_transferred: Mapped[int] = mapped_column(BigInteger, default=0)
    error_message: Mapped[str | None] = mapped_column(
        String, default=None, nullable=True
    )
    timestamp: Mapped[datetime] = mapped_column(
        DateTime, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (
        Index("ix_transfer_item_job_position", "job_id", "position", unique=True),
    )
