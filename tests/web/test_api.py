"""Tests for the admin HTTP API."""

import time
from collections.abc import Iterator
from typing import Any

import pytest
from fastapi.testclient import TestClient

from anitilky.config.settings import AniTilkyConfig
from anitilky.core.catalog import CatalogStore
from anitilky.core.transfer.history import TransferHistory
from anitilky.core.transfer.manager import TransferManager
from anitilky.web.app import create_app
from tests.core.transfer.fakes import (
    FOLDER_ID,
    FakeDriveSource,
    FakeObjectStore,
    video,
)

DEMO = {
    "id": "demo",
    "title": {"romaji": "Demo Show", "english": "The Demo"},
    "coverImage": "https://img.example/demo.jpg",
    "type": "TV",
    "status": "ongoing",
    "genres": ["Action"],
}


@pytest.fixture
def client() -> Iterator[TestClient]:
    """API client without a transfer manager."""
    with TestClient(create_app()) as test_client:
        yield test_client


@pytest.fixture
def source() -> FakeDriveSource:
    """Drive folder with two numbered episodes and one unnumbered extra."""
    drive = FakeDriveSource()
    drive.add(video("f2", "Demo - 02.mp4"))
    drive.add(video("f1", "Demo - 01.mp4"))
    drive.add(video("fx", "Trailer.mkv"))
    return drive


@pytest.fixture
def store() -> FakeObjectStore:
    """An empty object store."""
    return FakeObjectStore()


@pytest.fixture
def manager(source, store) -> TransferManager:
    """A transfer manager wired to the fakes."""
    return TransferManager(
        AniTilkyConfig(transfer={"chunk_size": 4096, "persist_retry_delay": 0}),
        catalog=CatalogStore(),
        source=source,
        store=store,
        history=TransferHistory(),
    )


@pytest.fixture
def admin(manager) -> Iterator[TestClient]:
    """API client with a running transfer manager."""
    with TestClient(create_app(manager)) as test_client:
        yield test_client


def _create_demo(client: TestClient, seasons: tuple[int, ...] = (1,)) -> None:
    assert client.post("/api/anime", json=DEMO).status_code == 201
    for number in seasons:
        response = client.post(
            "/api/anime/demo/seasons", json={"seasonNumber": number}
        )
        assert response.status_code == 201


def _wait_for_job(client: TestClient, job_id: str) -> dict[str, Any]:
    for _ in range(500):
        data = client.get(f"/api/transfers/{job_id}").json()
        if not data["live"]:
            return data
        time.sleep(0.01)
    raise AssertionError(f"job {job_id} did not finish")


def test_anime_crud(client: TestClient) -> None:
    """Anime can be created, listed, fetched and deleted with camelCase JSON."""
    created = client.post("/api/anime", json=DEMO)
    assert created.status_code == 201
    body = created.json()
    assert body["coverImage"] == "https://img.example/demo.jpg"
    assert body["seasons"] == []
    assert body["version"] == 1

    listing = client.get("/api/anime").json()
    assert listing["total"] == 1
    assert listing["items"][0]["title"]["romaji"] == "Demo Show"
    assert listing["items"][0]["seasonCount"] == 0

    assert client.get("/api/anime/demo").json()["id"] == "demo"
    assert client.delete("/api/anime/demo").json() == {"ok": True}
    assert client.get("/api/anime/demo").status_code == 404


def test_anime_id_is_generated_when_omitted(client: TestClient) -> None:
    """A fresh id is assigned when the payload carries none."""
    payload = {k: v for k, v in DEMO.items() if k != "id"}

    body = client.post("/api/anime", json=payload).json()

    assert body["id"]
    assert client.get(f"/api/anime/{body['id']}").status_code == 200


def test_domain_errors_use_structured_payload(client: TestClient) -> None:
    """Domain exceptions become {error, detail, path} with their status code."""
    response = client.get("/api/anime/missing")

    assert response.status_code == 404
    assert response.json() == {
        "error": "AnimeNotFoundError",
        "detail": "Anime 'missing' not found",
        "path": "/api/anime/missing",
    }

    _create_demo(client)
    duplicate = client.post("/api/anime", json=DEMO)
    assert duplicate.status_code == 409
    assert duplicate.json()["error"] == "CatalogConflictError"


def test_list_pagination_is_validated(client: TestClient) -> None:
    """Out of range pagination parameters are rejected with 400."""
    assert client.get("/api/anime", params={"page": 0}).status_code == 400
    assert client.get("/api/anime", params={"per_page": 500}).status_code == 400


def test_seasons_are_kept_sorted_and_unique(client: TestClient) -> None:
    """Seasons are ordered by number and duplicates are rejected."""
    _create_demo(client, seasons=(2, 1))

    anime = client.get("/api/anime/demo").json()
    assert [s["seasonNumber"] for s in anime["seasons"]] == [1, 2]

    duplicate = client.post("/api/anime/demo/seasons", json={"seasonNumber": 2})
    assert duplicate.status_code == 400
    assert duplicate.json()["error"] == "DuplicateSeasonError"

    remaining = client.delete("/api/anime/demo/seasons/2").json()
    assert [s["seasonNumber"] for s in remaining["seasons"]] == [1]
    assert client.delete("/api/anime/demo/seasons/9").status_code == 404


def test_episode_lifecycle(client: TestClient) -> None:
    """Episodes are added with generated source ids, updated and deleted."""
    _create_demo(client)
    base = "/api/anime/demo/seasons/1/episodes"

    added = client.post(
        base,
        json={
            "episodeNumber": 1,
            "videoSources": [{"url": "https://www.youtube.com/watch?v=abc"}],
        },
    )
    assert added.status_code == 201
    episode = added.json()["seasons"][0]["episodes"][0]
    source = episode["videoSources"][0]
    assert source["source"] == "youtube"
    assert source["sourceId"].startswith("youtube-")
    assert episode["publishedAt"] is not None
    assert added.json()["source"]["name"] == "Custom"

    duplicate = client.post(
        base, json={"episodeNumber": 1, "videoSources": [{"url": "https://x/1.mp4"}]}
    )
    assert duplicate.status_code == 400
    no_sources = client.post(base, json={"episodeNumber": 2, "videoSources": []})
    assert no_sources.status_code == 400
    assert no_sources.json()["error"] == "InvalidEpisodeError"

    updated = client.patch(f"{base}/1", json={"title": "Pilot"}).json()
    episode = updated["seasons"][0]["episodes"][0]
    assert episode["title"] == "Pilot"
    assert episode["videoSources"][0]["sourceId"] == source["sourceId"]

    deleted = client.delete(f"{base}/1").json()
    assert deleted["anime"]["seasons"][0]["episodes"] == []
    assert deleted["purged"] == []
    assert client.delete(f"{base}/1").status_code == 404


def test_bulk_upload_requires_transfer_manager(client: TestClient) -> None:
    """Without a transfer manager bulk uploads answer 503."""
    _create_demo(client)

    response = client.post(
        "/api/anime/demo/bulk-upload", json={"seasonNumber": 1, "folderId": FOLDER_ID}
    )

    assert response.status_code == 503
    assert response.json()["error"] == "TransferManagerUnavailableError"


def test_bulk_upload_runs_in_background(admin: TestClient, store) -> None:
    """A bulk upload is accepted immediately and its progress can be polled."""
    _create_demo(admin)

    response = admin.post(
        "/api/anime/demo/bulk-upload",
        json={
            "seasonNumber": 1,
            "folderId": f"https://drive.google.com/drive/folders/{FOLDER_ID}",
            "fansub": "DemoSubs",
            "quality": "1080p",
        },
    )
    assert response.status_code == 202
    accepted = response.json()
    assert accepted["totalFiles"] == 3
    assert accepted["files"] == ["Demo - 02.mp4", "Demo - 01.mp4", "Trailer.mkv"]

    status = _wait_for_job(admin, accepted["jobId"])
    assert status["state"] == "completed"
    assert (status["successful"], status["skipped"], status["failed"]) == (2, 1, 0)
    assert status["progress"] == 100.0

    episodes = admin.get("/api/anime/demo").json()["seasons"][0]["episodes"]
    assert [e["episodeNumber"] for e in episodes] == [1, 2]
    source = episodes[0]["videoSources"][0]
    assert source["source"] == "bunny"
    assert source["fansub"] == "DemoSubs"
    assert source["quality"] == "1080p"
    assert source["url"] == store.cdn_prefix + "demo-show/sezon-1/1.mp4"

    items = admin.get(f"/api/transfers/{accepted['jobId']}/items").json()
    assert items["total"] == 3
    assert [i["outcome"] for i in items["items"]] == [
        "successful",
        "successful",
        "skipped",
    ]
    assert items["items"][2]["reason"] == "no_episode_number"

    jobs = admin.get("/api/transfers", params={"anime_id": "demo"}).json()["jobs"]
    assert [j["id"] for j in jobs] == [accepted["jobId"]]


def test_bulk_upload_validation_errors(admin: TestClient) -> None:
    """Invalid targets are rejected before any job starts."""
    _create_demo(admin)

    missing_season = admin.post(
        "/api/anime/demo/bulk-upload", json={"seasonNumber": 5, "folderId": FOLDER_ID}
    )
    assert missing_season.status_code == 404
    assert missing_season.json()["error"] == "SeasonNotFoundError"

    missing_folder = admin.post(
        "/api/anime/demo/bulk-upload",
        json={"seasonNumber": 1, "folderId": "0ZyXwVuTsRqPoNmLkJiHgFeDcBa"},
    )
    assert missing_folder.status_code == 404
    assert missing_folder.json()["error"] == "FolderNotFoundError"

    assert admin.get("/api/transfers").json() == {"jobs": []}


def test_cancel_and_shutdown(manager, source) -> None:
    """A cancel request is acknowledged and shutdown stops the stalled job."""
    source.stalling.add("f2")
    source.contents["f2"] = b"x" * 10000

    with TestClient(create_app(manager)) as admin:
        _create_demo(admin)
        job_id = admin.post(
            "/api/anime/demo/bulk-upload",
            json={"seasonNumber": 1, "folderId": FOLDER_ID},
        ).json()["jobId"]

        cancelled = admin.post(f"/api/transfers/{job_id}/cancel")
        assert cancelled.status_code == 200
        assert cancelled.json()["cancelRequested"] is True
        assert admin.post("/api/transfers/missing/cancel").status_code == 404

    assert manager.status(job_id).state == "cancelled"
    assert not manager.is_running


def test_delete_episode_can_purge_uploads(admin: TestClient, store) -> None:
    """Purging deletes bunny uploads of the removed episode from storage."""
    _create_demo(admin)
    path = "demo-show/sezon-1/1.mp4"
    store.objects[path] = b"data"
    admin.post(
        "/api/anime/demo/seasons/1/episodes",
        json={
            "episodeNumber": 1,
            "videoSources": [
                {"url": store.cdn_prefix + path, "source": "bunny"},
                {"url": "https://www.youtube.com/watch?v=abc"},
            ],
        },
    )

    result = admin.delete(
        "/api/anime/demo/seasons/1/episodes/1", params={"purge": True}
    ).json()

    assert result["purged"] == [path]
    assert result["purgeErrors"] == []
    assert store.objects == {}


def test_transfer_lookups(admin: TestClient) -> None:
    """Unknown jobs are 404 and item pagination is validated."""
    assert admin.get("/api/transfers/missing").status_code == 404
    assert admin.get("/api/transfers/missing/items").status_code == 404
    assert admin.get("/api/transfers", params={"limit": 0}).status_code == 422


def test_system_status_without_manager(client: TestClient) -> None:
    """Transfers are reported unavailable when no manager runs."""
    status = client.get("/api/system/status").json()

    assert status["transfers_available"] is False
    assert status["running_jobs"] == 0
    assert status["uptime_seconds"] >= 0


def test_system_status_with_manager(admin: TestClient) -> None:
    """The status endpoint reports version and transfer availability."""
    status = admin.get("/api/system/status").json()

    assert status["version"]
    assert status["git_hash"]
    assert status["transfers_available"] is True
    assert status["running_jobs"] == 0
