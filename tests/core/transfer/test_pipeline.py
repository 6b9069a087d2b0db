"""Tests for the bulk transfer pipeline."""

from collections.abc import AsyncIterable, Callable
from typing import Any

import pytest

from anitilky.config.settings import TransferConfig
from anitilky.core.catalog import CatalogStore
from anitilky.core.drive import DriveFile
from anitilky.core.transfer.episodes import insert_episode
from anitilky.core.transfer.job import TransferJob
from anitilky.core.transfer.pipeline import BulkTransferRequest, TransferPipeline
from anitilky.core.transfer.stats import FileResult
from anitilky.exceptions import (
    AnimeNotFoundError,
    FolderNotFoundError,
    NoVideoFilesError,
    NotAFolderError,
    SeasonNotFoundError,
    StorageConfigError,
)
from anitilky.models.db.transfer import TransferOutcome, TransferReason
from anitilky.models.schemas.catalog import (
    Anime,
    AnimeTitle,
    Episode,
    Season,
    SourceType,
    VideoSourceDefaults,
)
from tests.core.transfer.fakes import (
    FOLDER_ID,
    FakeDriveSource,
    FakeObjectStore,
    video,
)

DEFAULT_EXTENSIONS = [".mp4", ".mkv"]


class FlakyCatalog(CatalogStore):
    """Catalog whose first ``failures`` mutations raise a transient error."""

    def __init__(self, failures: int) -> None:
        super().__init__()
        self.failures = failures
        self.attempts = 0

    async def mutate(self, anime_id: str, mutation: Callable[[Anime], Any]):
        self.attempts += 1
        if self.attempts <= self.failures:
            raise RuntimeError("database is locked")
        return await super().mutate(anime_id, mutation)


def _seed(catalog: CatalogStore) -> None:
    catalog.create(
        Anime(
            id="demo",
            title=AnimeTitle(romaji="Demo Show"),
            seasons=[Season(season_number=1)],
        )
    )


def _pipeline(
    catalog: CatalogStore,
    source: FakeDriveSource,
    store: FakeObjectStore,
    **config: Any,
) -> TransferPipeline:
    config.setdefault("chunk_size", 4096)
    config.setdefault("persist_retry_delay", 0)
    return TransferPipeline(
        catalog=catalog,
        source=source,
        store=store,
        config=TransferConfig(**config),
        video_extensions=DEFAULT_EXTENSIONS,
    )


def _request(folder_ref: str = FOLDER_ID, season_number: int = 1):
    return BulkTransferRequest(
        anime_id="demo",
        season_number=season_number,
        folder_ref=folder_ref,
        defaults=VideoSourceDefaults(fansub="SubGroup"),
    )


@pytest.fixture
def catalog() -> CatalogStore:
    """A catalog holding 'Demo Show' with an empty season 1."""
    store = CatalogStore()
    _seed(store)
    return store


@pytest.fixture
def source() -> FakeDriveSource:
    """Folder with two good episodes, a text file and a third episode."""
    drive = FakeDriveSource()
    drive.add(video("f1", "01.mp4"))
    drive.add(video("f2", "02.mp4"))
    drive.files.append(
        DriveFile(id="n1", name="notes.txt", size=5, mime_type="text/plain")
    )
    drive.add(video("f3", "03.mp4"))
    return drive


@pytest.fixture
def store() -> FakeObjectStore:
    """An empty object store."""
    return FakeObjectStore()


async def _run(pipeline: TransferPipeline, request=None) -> TransferJob:
    job = await pipeline.prepare(request or _request())
    await pipeline.run(job)
    return job


@pytest.mark.asyncio
async def test_demo_batch_with_one_failing_upload(catalog, source, store) -> None:
    """Two episodes are added and the failing upload is counted as failed."""
    store.reject.add("demo-show/sezon-1/3.mp4")
    pipeline = _pipeline(catalog, source, store)

    job = await pipeline.prepare(_request())
    assert job.file_names == ["01.mp4", "02.mp4", "03.mp4"]

    await pipeline.run(job)

    assert job.stats.counters() == {
        "total": 3,
        "processed": 3,
        "successful": 2,
        "failed": 1,
        "skipped": 0,
    }
    season = catalog.get("demo").seasons[0]
    assert [e.episode_number for e in season.episodes] == [1, 2]
    urls = [e.video_sources[0].url for e in season.episodes]
    assert urls[0].endswith("demo-show/sezon-1/1.mp4")
    assert urls[1].endswith("demo-show/sezon-1/2.mp4")
    assert all(e.video_sources[0].source is SourceType.BUNNY for e in season.episodes)
    assert all(e.video_sources[0].fansub == "SubGroup" for e in season.episodes)

    failed = job.stats.results[2]
    assert failed.outcome is TransferOutcome.FAILED
    assert failed.reason is TransferReason.TRANSFER_ERROR
    assert failed.error_message
    assert job.current_file is None


@pytest.mark.asyncio
async def test_rerunning_a_processed_batch_skips_everything(
    catalog, source, store
) -> None:
    """A second run over the same folder adds nothing."""
    pipeline = _pipeline(catalog, source, store)
    first = await _run(pipeline)
    assert first.stats.successful == 3

    second = await _run(pipeline)

    assert second.stats.successful == 0
    assert second.stats.skipped == 3
    assert all(
        r.reason is TransferReason.DUPLICATE_EPISODE for r in second.stats.results
    )
    # Duplicates are detected before any download starts
    assert source.opened == ["f1", "f2", "f3"]
    assert len(catalog.get("demo").seasons[0].episodes) == 3


@pytest.mark.asyncio
async def test_files_without_episode_numbers_are_skipped(catalog, store) -> None:
    """Names without digits, or with episode zero, are never transferred."""
    drive = FakeDriveSource()
    drive.add(video("a", "opening.mkv"))
    drive.add(video("b", "00.mp4"))
    drive.add(video("c", "05.mp4"))
    pipeline = _pipeline(catalog, drive, store)

    job = await _run(pipeline)

    reasons = [r.reason for r in job.stats.results]
    assert reasons[:2] == [
        TransferReason.NO_EPISODE_NUMBER,
        TransferReason.NO_EPISODE_NUMBER,
    ]
    assert job.stats.results[2].outcome is TransferOutcome.SUCCESSFUL
    assert drive.opened == ["c"]
    assert list(store.objects) == ["demo-show/sezon-1/5.mp4"]


@pytest.mark.asyncio
async def test_extension_digits_give_the_episode_number(catalog, store) -> None:
    """A name whose only digit is in its extension still yields an episode."""
    drive = FakeDriveSource()
    drive.add(video("a", "opening.mp4"))
    pipeline = _pipeline(catalog, drive, store)

    job = await _run(pipeline)

    assert job.stats.counters() == {
        "total": 1,
        "processed": 1,
        "successful": 1,
        "failed": 0,
        "skipped": 0,
    }
    assert job.stats.results[0].episode_number == 4
    assert list(store.objects) == ["demo-show/sezon-1/4.mp4"]


@pytest.mark.asyncio
async def test_episodes_stay_sorted_and_unique(catalog, store) -> None:
    """Out-of-order listings still produce a sorted season without duplicates."""
    drive = FakeDriveSource()
    for file_id, name in [
        ("a", "10.mp4"),
        ("b", "2.mp4"),
        ("c", "Episode 02 v2.mp4"),
        ("d", "1.mkv"),
    ]:
        drive.add(video(file_id, name))
    pipeline = _pipeline(catalog, drive, store)

    job = await _run(pipeline)

    numbers = [e.episode_number for e in catalog.get("demo").seasons[0].episodes]
    assert numbers == [1, 2, 10]
    assert job.stats.skipped == 1
    assert job.stats.results[2].reason is TransferReason.DUPLICATE_EPISODE


@pytest.mark.asyncio
async def test_download_failure_marks_file_failed(catalog, store) -> None:
    """A download breaking mid-stream fails the file and the batch continues."""
    drive = FakeDriveSource()
    drive.add(video("a", "01.mp4", b"x" * 10000), b"x" * 10000)
    drive.add(video("b", "02.mp4"))
    drive.broken.add("a")
    pipeline = _pipeline(catalog, drive, store)

    job = await _run(pipeline)

    first, second = job.stats.results
    assert first.outcome is TransferOutcome.FAILED
    assert first.reason is TransferReason.TRANSFER_ERROR
    assert first.bytes_transferred == 4096
    assert second.outcome is TransferOutcome.SUCCESSFUL
    assert "a" in drive.closed


@pytest.mark.asyncio
async def test_stalled_download_is_reported_as_stalled(catalog, store) -> None:
    """A source that stops sending fails the file with the stalled reason."""
    drive = FakeDriveSource()
    drive.add(video("a", "01.mp4", b"x" * 10000), b"x" * 10000)
    drive.stalling.add("a")
    pipeline = _pipeline(catalog, drive, store, stall_timeout=0.05)

    job = await _run(pipeline)

    (result,) = job.stats.results
    assert result.outcome is TransferOutcome.FAILED
    assert result.reason is TransferReason.STALLED
    assert catalog.get("demo").seasons[0].episodes == []


@pytest.mark.asyncio
async def test_persist_is_retried_after_transient_errors(source, store) -> None:
    """Transient catalog errors are retried until the episode is saved."""
    catalog = FlakyCatalog(failures=2)
    _seed(catalog)
    drive = FakeDriveSource()
    drive.add(video("a", "01.mp4"))
    pipeline = _pipeline(catalog, drive, store, persist_retries=3)

    job = await _run(pipeline)

    (result,) = job.stats.results
    assert result.outcome is TransferOutcome.SUCCESSFUL
    assert result.error_message is None
    assert catalog.attempts == 3


@pytest.mark.asyncio
async def test_persist_gives_up_after_retries(store) -> None:
    """Exhausted retries fail the file but keep the uploaded URL for cleanup."""
    catalog = FlakyCatalog(failures=10)
    _seed(catalog)
    drive = FakeDriveSource()
    drive.add(video("a", "01.mp4"))
    pipeline = _pipeline(catalog, drive, store, persist_retries=2)

    job = await _run(pipeline)

    (result,) = job.stats.results
    assert result.outcome is TransferOutcome.FAILED
    assert result.reason is TransferReason.PERSIST_ERROR
    assert result.cdn_url == "https://demo-zone.b-cdn.net/demo-show/sezon-1/1.mp4"
    assert result.error_message == "database is locked"
    assert catalog.attempts == 2
    assert "demo-show/sezon-1/1.mp4" in store.objects


@pytest.mark.asyncio
async def test_episode_added_during_upload_is_skipped(catalog) -> None:
    """An episode that appears while uploading turns the file into a skip."""

    class RacingStore(FakeObjectStore):
        async def upload_stream(
            self,
            path: str,
            chunks: AsyncIterable[bytes],
            content_length: int | None = None,
        ) -> str:
            url = await super().upload_stream(path, chunks, content_length)
            anime = catalog.get("demo")
            insert_episode(anime, anime.seasons[0], Episode(episode_number=1))
            catalog.save(anime)
            return url

    drive = FakeDriveSource()
    drive.add(video("a", "01.mp4"))
    pipeline = _pipeline(catalog, drive, RacingStore())

    job = await _run(pipeline)

    (result,) = job.stats.results
    assert result.outcome is TransferOutcome.SKIPPED
    assert result.reason is TransferReason.DUPLICATE_EPISODE
    assert len(catalog.get("demo").seasons[0].episodes) == 1


@pytest.mark.asyncio
async def test_cancellation_stops_between_files(catalog, source, store) -> None:
    """A cancel request lets the current file finish and skips the rest."""
    pipeline = _pipeline(catalog, source, store)
    job = await pipeline.prepare(_request())

    def cancel_after_first(job: TransferJob, result: FileResult) -> None:
        job.cancel_requested = True

    await pipeline.run(job, on_result=cancel_after_first)

    assert job.stats.processed == 1
    assert job.stats.successful == 1
    assert job.stats.remaining == 2
    assert source.opened == ["f1"]


@pytest.mark.asyncio
async def test_on_result_sees_consistent_counters(catalog, source, store) -> None:
    """Counters satisfy processed == successful + failed + skipped after each file."""
    store.reject.add("demo-show/sezon-1/2.mp4")
    pipeline = _pipeline(catalog, source, store)
    job = await pipeline.prepare(_request())
    seen: list[int] = []

    def check(job: TransferJob, result: FileResult) -> None:
        stats = job.stats
        assert stats.processed == stats.successful + stats.failed + stats.skipped
        assert job.current_file == result.file_name
        seen.append(result.position)

    await pipeline.run(job, on_result=check)

    assert seen == [1, 2, 3]


@pytest.mark.asyncio
async def test_deleted_season_aborts_the_run(catalog, source, store) -> None:
    """Removing the target season mid-run raises out of the loop."""
    pipeline = _pipeline(catalog, source, store)
    job = await pipeline.prepare(_request())

    def drop_season(job: TransferJob, result: FileResult) -> None:
        anime = catalog.get("demo")
        anime.seasons.clear()
        catalog.save(anime)

    with pytest.raises(SeasonNotFoundError):
        await pipeline.run(job, on_result=drop_season)

    assert job.stats.processed == 1


@pytest.mark.asyncio
async def test_prepare_accepts_folder_urls(catalog, source, store) -> None:
    """Folder links are reduced to their id."""
    pipeline = _pipeline(catalog, source, store)

    job = await pipeline.prepare(
        _request(f"https://drive.google.com/drive/folders/{FOLDER_ID}?usp=sharing")
    )

    assert job.folder_id == FOLDER_ID
    assert job.anime_title == "Demo Show"
    assert job.stats.total == 3


@pytest.mark.asyncio
async def test_prepare_validation_errors(catalog, source, store) -> None:
    """Invalid requests fail before anything is transferred."""
    pipeline = _pipeline(catalog, source, store)

    with pytest.raises(AnimeNotFoundError):
        await pipeline.prepare(
            BulkTransferRequest(
                anime_id="missing",
                season_number=1,
                folder_ref=FOLDER_ID,
                defaults=VideoSourceDefaults(),
            )
        )
    with pytest.raises(SeasonNotFoundError):
        await pipeline.prepare(_request(season_number=2))
    with pytest.raises(FolderNotFoundError):
        await pipeline.prepare(_request("0" * 33))

    source.is_folder = False
    with pytest.raises(NotAFolderError):
        await pipeline.prepare(_request())

    source.is_folder = True
    store.configured = False
    with pytest.raises(StorageConfigError):
        await pipeline.prepare(_request())

    assert source.opened == []


@pytest.mark.asyncio
async def test_prepare_rejects_folder_without_videos(catalog, store) -> None:
    """A folder holding only non-video files is rejected."""
    drive = FakeDriveSource()
    drive.files.append(
        DriveFile(id="n1", name="notes.txt", size=5, mime_type="text/plain")
    )
    pipeline = _pipeline(catalog, drive, store)

    with pytest.raises(NoVideoFilesError):
        await pipeline.prepare(_request())
