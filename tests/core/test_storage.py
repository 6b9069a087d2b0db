"""Tests for the Bunny storage client."""

from collections.abc import AsyncIterator

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from anitilky.config.settings import StorageConfig
from anitilky.core.storage import BunnyStorageClient
from anitilky.exceptions import (
    StorageConfigError,
    StorageDeleteError,
    UploadRejectedError,
)


class FakeZone:
    """Records what the fake storage API received."""

    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.access_keys: list[str | None] = []

    def app(self) -> web.Application:
        async def put(request: web.Request) -> web.Response:
            self.access_keys.append(request.headers.get("AccessKey"))
            path = request.match_info["path"]
            body = await request.read()
            if path.startswith("denied/"):
                return web.Response(status=401, text="bad key")
            self.objects[path] = body
            return web.json_response({"HttpCode": 201}, status=201)

        async def delete(request: web.Request) -> web.Response:
            path = request.match_info["path"]
            if path.startswith("broken/"):
                return web.Response(status=500, text="oops")
            if self.objects.pop(path, None) is None:
                return web.Response(status=404)
            return web.json_response({"HttpCode": 200})

        app = web.Application()
        app.router.add_put("/demo-zone/{path:.+}", put)
        app.router.add_delete("/demo-zone/{path:.+}", delete)
        return app


async def _chunks(*parts: bytes) -> AsyncIterator[bytes]:
    for part in parts:
        yield part


@pytest.fixture
def zone() -> FakeZone:
    """The fake storage zone."""
    return FakeZone()


@pytest_asyncio.fixture
async def client(zone, monkeypatch):
    """A storage client whose API URLs point at the fake zone."""
    server = TestServer(zone.app())
    await server.start_server()
    storage = BunnyStorageClient(
        StorageConfig(zone_name="demo-zone", api_key="storage-key")
    )
    monkeypatch.setattr(
        storage,
        "storage_url",
        lambda path: str(server.make_url(f"/demo-zone/{path.lstrip('/')}")),
    )
    try:
        yield storage
    finally:
        await storage.close()
        await server.close()


@pytest.mark.asyncio
async def test_upload_stream(client, zone) -> None:
    """Uploaded chunks are stored whole and the CDN URL is returned."""
    url = await client.upload_stream(
        "Demo_Show/s1/ep1.mp4", _chunks(b"abc", b"def"), content_length=6
    )

    assert url == "https://demo-zone.b-cdn.net/Demo_Show/s1/ep1.mp4"
    assert zone.objects == {"Demo_Show/s1/ep1.mp4": b"abcdef"}
    assert zone.access_keys == ["storage-key"]


@pytest.mark.asyncio
async def test_upload_without_length(client, zone) -> None:
    """Uploads of unknown size are still accepted."""
    await client.upload_stream("a/b.mp4", _chunks(b"x" * 10, b"y" * 5))

    assert zone.objects["a/b.mp4"] == b"x" * 10 + b"y" * 5


@pytest.mark.asyncio
async def test_upload_rejected(client) -> None:
    """Any answer other than 201 is an UploadRejectedError."""
    with pytest.raises(UploadRejectedError, match="401"):
        await client.upload_stream("denied/ep1.mp4", _chunks(b"abc"))


@pytest.mark.asyncio
async def test_delete_file(client, zone) -> None:
    """Deletion reports whether the object existed."""
    zone.objects["a/ep1.mp4"] = b"data"

    assert await client.delete_file("a/ep1.mp4") is True
    assert await client.delete_file("a/ep1.mp4") is False
    with pytest.raises(StorageDeleteError, match="500"):
        await client.delete_file("broken/ep1.mp4")


def test_cdn_urls() -> None:
    """CDN URLs map to object paths only for this zone's host."""
    storage = BunnyStorageClient(
        StorageConfig(zone_name="demo-zone", api_key="storage-key")
    )
    url = storage.cdn_url("/Demo_Show/s1/ep1.mp4")

    assert url == "https://demo-zone.b-cdn.net/Demo_Show/s1/ep1.mp4"
    assert storage.path_from_cdn_url(url) == "Demo_Show/s1/ep1.mp4"
    assert storage.path_from_cdn_url("https://other.example/ep1.mp4") is None
    assert storage.path_from_cdn_url("https://demo-zone.b-cdn.net/") is None


def test_cdn_host_override() -> None:
    """A custom CDN host replaces the default pull zone host."""
    storage = BunnyStorageClient(
        StorageConfig(zone_name="demo-zone", api_key="k", cdn_host="cdn.example.com")
    )

    assert storage.cdn_url("a.mp4") == "https://cdn.example.com/a.mp4"
    assert storage.storage_url("a.mp4") == (
        "https://storage.bunnycdn.com/demo-zone/a.mp4"
    )


@pytest.mark.asyncio
async def test_unconfigured_storage() -> None:
    """Missing credentials are reported before any request is made."""
    storage = BunnyStorageClient(StorageConfig(zone_name="demo-zone"))

    assert storage.configured is False
    with pytest.raises(StorageConfigError):
        storage.ensure_configured()
    with pytest.raises(StorageConfigError):
        await storage.upload_stream("a.mp4", _chunks(b"x"))
