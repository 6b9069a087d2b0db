"""Bulk transfer pipeline: Drive folder to Bunny storage to catalog."""

import asyncio
from collections.abc import AsyncIterable, AsyncIterator, Callable
from dataclasses import dataclass
from logging import DEBUG
from typing import Protocol

from anitilky import log
from anitilky.config.settings import TransferConfig
from anitilky.core.catalog import CatalogStore
from anitilky.core.drive import DriveFile, extract_folder_id
from anitilky.core.transfer.episodes import build_episode, insert_episode
from anitilky.core.transfer.job import TransferJob
from anitilky.core.transfer.naming import (
    build_destination_path,
    extract_episode_number,
    is_video_file,
)
from anitilky.core.transfer.stats import FileResult
from anitilky.core.transfer.streaming import StreamProgress, guard_stalls
from anitilky.exceptions import (
    AnimeNotFoundError,
    DuplicateEpisodeError,
    NoVideoFilesError,
    SeasonNotFoundError,
)
from anitilky.models.db.transfer import TransferOutcome, TransferReason
from anitilky.models.schemas.catalog import Anime, Episode, VideoSourceDefaults

__all__ = ["BulkTransferRequest", "ObjectStore", "RemoteSource", "TransferPipeline"]


class RemoteSource(Protocol):
    """Folder listing and file download collaborator."""

    async def get_folder(self, folder_id: str) -> DriveFile: ...

    async def list_video_files(self, folder_id: str) -> list[DriveFile]: ...

    def open_file_stream(
        self, file_id: str, chunk_size: int = ...
    ) -> AsyncIterator[bytes]: ...


class ObjectStore(Protocol):
    """Streamed upload and deletion collaborator."""

    def ensure_configured(self) -> None: ...

    async def upload_stream(
        self,
        path: str,
        chunks: AsyncIterable[bytes],
        content_length: int | None = None,
    ) -> str: ...

    async def delete_file(self, path: str) -> bool: ...

    def path_from_cdn_url(self, url: str) -> str | None: ...


@dataclass(slots=True)
class BulkTransferRequest:
    """Parameters of a bulk transfer as received from the operator."""

    anime_id: str
    season_number: int
    folder_ref: str
    defaults: VideoSourceDefaults


class TransferPipeline:
    """Moves every video of a Drive folder into a season of an anime.

    ``prepare`` performs all validation and the folder listing synchronously so
    request handlers can report errors and the accepted file list immediately.
    ``run`` then processes the files one after another: derive the episode number,
    skip numbers the season already has, stream the download into the upload,
    and persist the new episode. A failing file never stops the batch.
    """

    def __init__(
        self,
        catalog: CatalogStore,
        source: RemoteSource,
        store: ObjectStore,
        config: TransferConfig,
        video_extensions: list[str],
    ) -> None:
        """Initialize the pipeline.

        Args:
            catalog (CatalogStore): Anime document store.
            source (RemoteSource): Drive folder lister and downloader.
            store (ObjectStore): Object storage uploader.
            config (TransferConfig): Chunking, stall and retry settings.
            video_extensions (list[str]): Extensions treated as video files.
        """
        self.catalog = catalog
        self.source = source
        self.store = store
        self.config = config
        self.video_extensions = video_extensions

    async def prepare(self, request: BulkTransferRequest) -> TransferJob:
        """Validate a bulk transfer request and list its files.

        Args:
            request (BulkTransferRequest): The operator's request.

        Returns:
            TransferJob: A pending job holding the accepted files in order.

        Raises:
            AnimeNotFoundError: If the anime does not exist.
            SeasonNotFoundError: If the season does not exist on the anime.
            FolderNotFoundError: If the folder is missing or inaccessible.
            NotAFolderError: If the reference is not a folder.
            NoVideoFilesError: If the folder holds no video files.
            StorageConfigError: If uploads are not configured.
        """
        anime = self.catalog.get(request.anime_id)
        if anime.find_season(request.season_number) is None:
            raise SeasonNotFoundError(
                f"Season {request.season_number} not found on anime '{anime.id}'"
            )
        self.store.ensure_configured()

        folder_id = extract_folder_id(request.folder_ref)
        folder = await self.source.get_folder(folder_id)
        listed = await self.source.list_video_files(folder.id)
        files = [
            f
            for f in listed
            if is_video_file(f.name, f.mime_type, self.video_extensions)
        ]
        if not files:
            raise NoVideoFilesError(f"No video files found in folder '{folder_id}'")

        log.info(
            f"Accepted {len(files)} video files from "
            f"folder $$'{folder.name}'$$ for $$'{anime.title.display}'$$ season "
            f"{request.season_number} $${{folder_id: {folder.id}}}$$"
        )
        return TransferJob(
            anime_id=anime.id,
            anime_title=anime.title.display,
            season_number=request.season_number,
            folder_id=folder.id,
            files=files,
            defaults=request.defaults,
        )

    async def run(
        self,
        job: TransferJob,
        on_result: Callable[[TransferJob, FileResult], None] | None = None,
    ) -> None:
        """Process every accepted file of a job in listing order.

        Cancellation requests are honored between files only.

        Args:
            job (TransferJob): The job to run; its stats are updated in place.
            on_result (Callable[[TransferJob, FileResult], None] | None): Called
                after each processed file.
        """
        for position, file in enumerate(job.files, start=1):
            if job.cancel_requested:
                log.warning(
                    f"Cancelled after {job.stats.processed}/{job.stats.total} files "
                    f"$${{job_id: {job.id}}}$$"
                )
                break

            job.current_file = file.name
            result = await self.process_file(job, position, file)
            job.stats.record(result)
            if on_result is not None:
                on_result(job, result)

            log.debug(
                f"Progress {job.stats.processed}/"
                f"{job.stats.total} (successful: {job.stats.successful}, "
                f"failed: {job.stats.failed}, skipped: {job.stats.skipped}) "
                f"$${{job_id: {job.id}}}$$"
            )
        job.current_file = None

    async def process_file(
        self, job: TransferJob, position: int, file: DriveFile
    ) -> FileResult:
        """Transfer a single file and record its episode.

        Args:
            job (TransferJob): The owning job.
            position (int): 1-based position of the file in the listing.
            file (DriveFile): The file to process.

        Returns:
            FileResult: The file's outcome.

        Raises:
            AnimeNotFoundError: If the anime was deleted while the job ran.
            SeasonNotFoundError: If the season was deleted while the job ran.
        """
        result = FileResult(
            position=position,
            file_id=file.id,
            file_name=file.name,
            file_size=file.size,
            outcome=TransferOutcome.SKIPPED,
        )
        prefix = f"[{position}/{job.stats.total}]"

        episode_number = extract_episode_number(file.name)
        result.episode_number = episode_number
        if not episode_number:
            result.reason = TransferReason.NO_EPISODE_NUMBER
            log.info(f"{prefix} Skipping $$'{file.name}'$$: no episode number")
            return result

        anime = self.catalog.get(job.anime_id)
        season = anime.find_season(job.season_number)
        if season is None:
            raise SeasonNotFoundError(
                f"Season {job.season_number} no longer exists on anime '{anime.id}'"
            )
        if season.has_episode(episode_number):
            result.reason = TransferReason.DUPLICATE_EPISODE
            log.info(
                f"{prefix} Skipping $$'{file.name}'$$: episode {episode_number} "
                "already exists"
            )
            return result

        path = build_destination_path(
            anime.title.display, job.season_number, episode_number
        )
        progress = StreamProgress()
        log.info(f"{prefix} Transferring $$'{file.name}'$$ to $$'{path}'$$")
        try:
            chunks = guard_stalls(
                self.source.open_file_stream(file.id, self.config.chunk_size),
                self.config.stall_timeout,
                progress,
            )
            cdn_url = await self.store.upload_stream(
                path, chunks, content_length=file.size
            )
        except Exception as e:
            result.outcome = TransferOutcome.FAILED
            result.reason = (
                TransferReason.STALLED
                if progress.stalled
                else TransferReason.TRANSFER_ERROR
            )
            result.bytes_transferred = progress.bytes_transferred
            result.error_message = str(e) or e.__class__.__name__
            log.error(
                f"{prefix} Failed to transfer $$'{file.name}'$$: "
                f"{result.error_message}",
                exc_info=log.level <= DEBUG,
            )
            return result

        result.cdn_url = cdn_url
        result.bytes_transferred = progress.bytes_transferred
        log.debug(
            f"{prefix} Uploaded {progress.bytes_transferred} bytes in "
            f"{progress.chunks} chunks ({progress.elapsed:.1f}s)"
        )
        return await self._persist_episode(job, result, episode_number, cdn_url)

    async def _persist_episode(
        self, job: TransferJob, result: FileResult, episode_number: int, cdn_url: str
    ) -> FileResult:
        """Insert the uploaded episode, retrying transient persistence failures."""
        prefix = f"[{result.position}/{job.stats.total}]"

        def apply(anime: Anime) -> Episode:
            season = anime.find_season(job.season_number)
            if season is None:
                raise SeasonNotFoundError(
                    f"Season {job.season_number} no longer exists on anime "
                    f"'{anime.id}'"
                )
            episode = build_episode(anime, episode_number, cdn_url, job.defaults)
            insert_episode(anime, season, episode)
            return episode

        retries = self.config.persist_retries
        for attempt in range(1, retries + 1):
            try:
                await self.catalog.mutate(job.anime_id, apply)
            except DuplicateEpisodeError:
                result.outcome = TransferOutcome.SKIPPED
                result.reason = TransferReason.DUPLICATE_EPISODE
                log.warning(
                    f"{prefix} Episode {episode_number} appeared while "
                    f"$$'{result.file_name}'$$ was uploading; the upload at "
                    f"{cdn_url} is not referenced"
                )
                return result
            except (AnimeNotFoundError, SeasonNotFoundError):
                raise
            except Exception as e:
                result.error_message = str(e) or e.__class__.__name__
                if attempt < retries:
                    delay = self.config.persist_retry_delay * attempt
                    log.warning(
                        f"{prefix} Saving episode {episode_number} failed "
                        f"(attempt {attempt}/{retries}), retrying in {delay:g}s: "
                        f"{result.error_message}"
                    )
                    await asyncio.sleep(delay)
                    continue
                result.outcome = TransferOutcome.FAILED
                result.reason = TransferReason.PERSIST_ERROR
                log.error(
                    f"{prefix} Giving up saving episode {episode_number} after "
                    f"{retries} attempts; uploaded file is orphaned at {cdn_url}: "
                    f"{result.error_message}"
                )
                return result
            else:
                result.outcome = TransferOutcome.SUCCESSFUL
                result.error_message = None
                log.success(
                    f"{prefix} Added episode {episode_number} from "
                    f"$$'{result.file_name}'$$"
                )
                return result

        return result
