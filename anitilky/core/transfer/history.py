"""Persistence of bulk transfer jobs and their per-file outcomes."""

from datetime import UTC, datetime

from sqlalchemy import func, select, update

from anitilky import log
from anitilky.config.database import db
from anitilky.core.transfer.job import TransferJob
from anitilky.core.transfer.stats import FileResult
from anitilky.models.db.transfer import (
    TransferItemRecord,
    TransferJobRecord,
    TransferJobState,
)
from anitilky.models.schemas.transfer import TransferItemStatus, TransferJobStatus

__all__ = ["TransferHistory"]


class TransferHistory:
    """Reads and writes the ``transfer_job`` and ``transfer_item`` tables."""

    @staticmethod
    def _job_status(record: TransferJobRecord) -> TransferJobStatus:
        elapsed = None
        if record.started_at and record.finished_at:
            elapsed = (record.finished_at - record.started_at).total_seconds()
        progress = record.processed / record.total * 100 if record.total else 100.0
        return TransferJobStatus(
            id=record.id,
            anime_id=record.anime_id,
            anime_title=record.anime_title,
            season_number=record.season_number,
            folder_id=record.folder_id,
            state=record.state,
            live=False,
            total=record.total,
            processed=record.processed,
            successful=record.successful,
            failed=record.failed,
            skipped=record.skipped,
            progress=round(progress, 2),
            elapsed_seconds=round(elapsed, 3) if elapsed is not None else None,
            error_message=record.error_message,
            created_at=record.created_at,
            started_at=record.started_at,
            finished_at=record.finished_at,
        )

    def create_job(self, job: TransferJob) -> None:
        """Insert the row of a newly accepted job."""
        with db() as ctx:
            ctx.session.add(
                TransferJobRecord(
                    id=job.id,
                    anime_id=job.anime_id,
                    anime_title=job.anime_title,
                    season_number=job.season_number,
                    folder_id=job.folder_id,
                    state=job.state,
                    created_at=job.created_at,
                    **job.stats.counters(),
                )
            )
            ctx.session.commit()

    def update_job(self, job: TransferJob) -> None:
        """Write a job's state, counters and timestamps."""
        with db() as ctx:
            ctx.session.execute(
                update(TransferJobRecord)
                .where(TransferJobRecord.id == job.id)
                .values(
                    state=job.state,
                    error_message=job.error_message,
                    started_at=job.started_at,
                    finished_at=job.finished_at,
                    **job.stats.counters(),
                )
            )
            ctx.session.commit()

    def record_item(self, job: TransferJob, result: FileResult) -> None:
        """Store one file outcome and the job's updated counters.

        Args:
            job (TransferJob): The owning job.
            result (FileResult): The file's outcome.
        """
        with db() as ctx:
            ctx.session.add(
                TransferItemRecord(job_id=job.id, **result.model_dump())
            )
            ctx.session.execute(
                update(TransferJobRecord)
                .where(TransferJobRecord.id == job.id)
                .values(**job.stats.counters())
            )
            ctx.session.commit()

    def get_job(self, job_id: str) -> TransferJobStatus | None:
        """Load a persisted job status, if present."""
        with db() as ctx:
            record = ctx.session.get(TransferJobRecord, job_id)
            return self._job_status(record) if record else None

    def list_jobs(
        self, anime_id: str | None = None, limit: int = 50
    ) -> list[TransferJobStatus]:
        """List persisted jobs, newest first.

        Args:
            anime_id (str | None): Only jobs targeting this anime.
            limit (int): Maximum number of jobs.

        Returns:
            list[TransferJobStatus]: The job statuses.
        """
        with db() as ctx:
            stmt = select(TransferJobRecord).order_by(
                TransferJobRecord.created_at.desc()
            )
            if anime_id is not None:
                stmt = stmt.where(TransferJobRecord.anime_id == anime_id)
            records = ctx.session.scalars(stmt.limit(limit)).all()
            return [self._job_status(r) for r in records]

    def list_items(
        self, job_id: str, page: int = 1, per_page: int = 50
    ) -> tuple[list[TransferItemStatus], int]:
        """Page through the per-file outcomes of a job in listing order.

        Args:
            job_id (str): The job identifier.
            page (int): 1-based page number.
            per_page (int): Items per page.

        Returns:
            tuple[list[TransferItemStatus], int]: The page and the total count.
        """
        with db() as ctx:
            total = (
                ctx.session.scalar(
                    select(func.count(TransferItemRecord.id)).where(
                        TransferItemRecord.job_id == job_id
                    )
                )
                or 0
            )
            records = ctx.session.scalars(
                select(TransferItemRecord)
                .where(TransferItemRecord.job_id == job_id)
                .order_by(TransferItemRecord.position)
                .offset((page - 1) * per_page)
                .limit(per_page)
            ).all()
            items = [
                TransferItemStatus.model_validate(r.model_dump()) for r in records
            ]
        return items, total

    def mark_interrupted(self) -> int:
        """Mark jobs left unfinished by a previous process as crashed.

        Returns:
            int: Number of jobs updated.
        """
        with db() as ctx:
            result = ctx.session.execute(
                update(TransferJobRecord)
                .where(
                    TransferJobRecord.state.in_(
                        [TransferJobState.PENDING, TransferJobState.RUNNING]
                    )
                )
                .values(
                    state=TransferJobState.CRASHED,
                    error_message="Interrupted by application restart",
                    finished_at=datetime.now(UTC),
                )
            )
            ctx.session.commit()
            count = result.rowcount or 0  # type: ignore[attr-defined]
        if count:
            log.warning(f"Marked {count} interrupted transfer jobs as crashed")
        return count
