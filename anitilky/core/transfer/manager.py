"""Lifecycle management of background bulk transfer jobs."""

import asyncio
from collections import OrderedDict

from anitilky import log
from anitilky.config.settings import AniTilkyConfig
from anitilky.core.catalog import CatalogStore
from anitilky.core.drive import DriveClient
from anitilky.core.storage import BunnyStorageClient
from anitilky.core.transfer.history import TransferHistory
from anitilky.core.transfer.job import TransferJob
from anitilky.core.transfer.pipeline import (
    BulkTransferRequest,
    ObjectStore,
    RemoteSource,
    TransferPipeline,
)
from anitilky.core.transfer.stats import FileResult
from anitilky.exceptions import (
    TransferJobFinishedError,
    TransferJobNotFoundError,
    TransferManagerUnavailableError,
)
from anitilky.models.db.transfer import TransferJobState
from anitilky.models.schemas.transfer import TransferJobStatus

__all__ = ["TransferManager"]


class TransferManager:
    """Starts bulk transfers as detached tasks and tracks them until they finish.

    Each job runs in its own asyncio task, held in a strong-reference set so it
    is not garbage collected while running. Live jobs and the most recent finished
    ones stay in memory for status lookups; every job is also written to the
    transfer history tables.
    """

    def __init__(
        self,
        config: AniTilkyConfig,
        catalog: CatalogStore | None = None,
        source: RemoteSource | None = None,
        store: ObjectStore | None = None,
        history: TransferHistory | None = None,
    ) -> None:
        """Initialize the manager.

        Args:
            config (AniTilkyConfig): Application configuration.
            catalog (CatalogStore | None): Catalog store; a new one if omitted.
            source (RemoteSource | None): Drive client; built from config if omitted.
            store (ObjectStore | None): Storage client; built from config if omitted.
            history (TransferHistory | None): History store; a new one if omitted.
        """
        self.config = config
        self.catalog = catalog or CatalogStore()
        self.source = source or DriveClient(config.drive)
        self.store = store or BunnyStorageClient(config.storage)
        self.history = history or TransferHistory()
        self.pipeline = TransferPipeline(
            catalog=self.catalog,
            source=self.source,
            store=self.store,
            config=config.transfer,
            video_extensions=config.drive.video_extensions,
        )
        self.jobs: OrderedDict[str, TransferJob] = OrderedDict()
        self._tasks: set[asyncio.Task] = set()  # Prevents early GC
        self._running = False

    @property
    def is_running(self) -> bool:
        """Return whether the manager accepts new jobs."""
        return self._running

    @property
    def running_jobs(self) -> int:
        """Number of jobs that have not finished yet."""
        return sum(1 for job in self.jobs.values() if not job.finished)

    async def start(self) -> None:
        """Start accepting jobs and reconcile jobs left over from a restart."""
        if self._running:
            return
        self.history.mark_interrupted()
        self._running = True
        log.info("Transfer manager started")

    async def stop(self) -> None:
        """Cancel running jobs, wait for them to wind down and close clients."""
        if not self._running:
            return
        self._running = False

        tasks = list(self._tasks)
        if tasks:
            log.info(f"Cancelling {len(tasks)} running transfer jobs")
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        # Tasks cancelled before their first step never update their job
        for job in self.jobs.values():
            if not job.finished:
                job.mark_finished(TransferJobState.CANCELLED)
                self.history.update_job(job)

        for client in (self.source, self.store):
            close = getattr(client, "close", None)
            if close is not None:
                await close()

        log.info("Transfer manager stopped")

    async def start_transfer(self, request: BulkTransferRequest) -> TransferJob:
        """Validate a bulk transfer and run it in the background.

        Validation errors propagate to the caller; nothing runs in that case.

        Args:
            request (BulkTransferRequest): The operator's request.

        Returns:
            TransferJob: The accepted job, already scheduled.

        Raises:
            TransferManagerUnavailableError: If the manager is not running.
        """
        if not self._running:
            raise TransferManagerUnavailableError("Transfer manager is not running")

        job = await self.pipeline.prepare(request)
        self.history.create_job(job)
        self.jobs[job.id] = job

        task = asyncio.create_task(self._run_job(job), name=f"transfer-{job.id}")
        job.task = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        log.info(
            f"Started transfer of {job.stats.total} files into "
            f"$$'{job.anime_title}'$$ season {job.season_number} "
            f"$${{job_id: {job.id}}}$$"
        )
        return job

    async def _run_job(self, job: TransferJob) -> None:
        job.mark_running()
        self.history.update_job(job)
        try:
            await self.pipeline.run(job, on_result=self._record_result)
        except asyncio.CancelledError:
            job.mark_finished(TransferJobState.CANCELLED)
            log.warning(f"Transfer interrupted by shutdown $${{job_id: {job.id}}}$$")
            raise
        except Exception as e:
            job.mark_finished(
                TransferJobState.CRASHED, str(e) or e.__class__.__name__
            )
            log.error(
                f"Transfer crashed after {job.stats.processed}/{job.stats.total} "
                "files "
                f"$${{job_id: {job.id}}}$$",
                exc_info=True,
            )
        else:
            job.mark_finished(
                TransferJobState.CANCELLED
                if job.cancel_requested
                else TransferJobState.COMPLETED
            )
            stats = job.stats
            log.success(
                f"Transfer {job.state} in {job.elapsed or 0:.1f}s: "
                f"{stats.successful} successful, "
                f"{stats.failed} failed, {stats.skipped} skipped of {stats.total} "
                f"$${{job_id: {job.id}}}$$"
            )
        finally:
            self.history.update_job(job)
            self._prune()

    def _record_result(self, job: TransferJob, result: FileResult) -> None:
        try:
            self.history.record_item(job, result)
        except Exception:
            log.error(
                f"Failed to record outcome of $$'{result.file_name}'$$ "
                f"$${{job_id: {job.id}}}$$",
                exc_info=True,
            )

    def _prune(self) -> None:
        """Drop the oldest finished jobs beyond the configured history limit."""
        finished = [job_id for job_id, job in self.jobs.items() if job.finished]
        excess = len(finished) - self.config.transfer.history_limit
        for job_id in finished[: max(excess, 0)]:
            del self.jobs[job_id]

    def status(self, job_id: str) -> TransferJobStatus:
        """Return the status of a live or persisted job.

        Args:
            job_id (str): The job identifier.

        Returns:
            TransferJobStatus: The job status.

        Raises:
            TransferJobNotFoundError: If the job is unknown.
        """
        job = self.jobs.get(job_id)
        if job is not None:
            return job.snapshot()
        persisted = self.history.get_job(job_id)
        if persisted is None:
            raise TransferJobNotFoundError(f"Transfer job '{job_id}' not found")
        return persisted

    def list_jobs(
        self, anime_id: str | None = None, limit: int = 50
    ) -> list[TransferJobStatus]:
        """List recent jobs, newest first, preferring live snapshots.

        Args:
            anime_id (str | None): Only jobs targeting this anime.
            limit (int): Maximum number of jobs.

        Returns:
            list[TransferJobStatus]: The job statuses.
        """
        merged: dict[str, TransferJobStatus] = {
            s.id: s for s in self.history.list_jobs(anime_id=anime_id, limit=limit)
        }
        for job in self.jobs.values():
            if anime_id is None or job.anime_id == anime_id:
                merged[job.id] = job.snapshot()
        ordered = sorted(merged.values(), key=lambda s: s.created_at, reverse=True)
        return ordered[:limit]

    def cancel(self, job_id: str) -> TransferJobStatus:
        """Request cancellation of a job; it stops before its next file.

        Args:
            job_id (str): The job identifier.

        Returns:
            TransferJobStatus: The job status after the request.

        Raises:
            TransferJobNotFoundError: If the job is unknown.
            TransferJobFinishedError: If the job already finished.
        """
        job = self.jobs.get(job_id)
        if job is None:
            if self.history.get_job(job_id) is None:
                raise TransferJobNotFoundError(f"Transfer job '{job_id}' not found")
            raise TransferJobFinishedError(f"Transfer job '{job_id}' already finished")
        if job.finished:
            raise TransferJobFinishedError(f"Transfer job '{job_id}' already finished")

        job.cancel_requested = True
        log.info(
            f"Cancellation requested "
            f"$${{job_id: {job.id}}}$$"
        )
        return job.snapshot()

    async def wait_for_job(self, job_id: str) -> TransferJobStatus:
        """Wait until a live job finishes and return its final status.

        Args:
            job_id (str): The job identifier.

        Returns:
            TransferJobStatus: The final job status.
        """
        job = self.jobs.get(job_id)
        if job is not None and job.task is not None:
            await asyncio.gather(job.task, return_exceptions=True)
        return self.status(job_id)

    async def __aenter__(self) -> "TransferManager":
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.stop()
