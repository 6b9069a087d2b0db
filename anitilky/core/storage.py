"""Bunny Storage Client."""

from collections.abc import AsyncIterable

import aiohttp

from anitilky import __version__, log
from anitilky.config.settings import StorageConfig
from anitilky.exceptions import (
    StorageConfigError,
    StorageDeleteError,
    StorageError,
    UploadRejectedError,
)

__all__ = ["BunnyStorageClient"]


class BunnyStorageClient:
    """Client for the Bunny Storage REST API.

    Uploads are streamed: the request body is fed from an async chunk iterator, so
    the source is only read as fast as the storage endpoint accepts data.
    """

    def __init__(self, config: StorageConfig) -> None:
        """Initialize the storage client.

        Args:
            config (StorageConfig): Storage zone settings and access key.
        """
        self.config = config
        self._session: aiohttp.ClientSession | None = None

    @property
    def configured(self) -> bool:
        """Whether a storage zone and access key are set."""
        return bool(self.config.zone_name and self.config.api_key)

    def ensure_configured(self) -> None:
        """Fail early when uploads cannot possibly succeed.

        Raises:
            StorageConfigError: If the zone name or access key is missing.
        """
        if not self.configured:
            raise StorageConfigError(
                "Bunny storage is not configured "
                "(set storage.zone_name and storage.api_key)"
            )

    def storage_url(self, path: str) -> str:
        """Return the storage API URL of an object path."""
        return (
            f"https://{self.config.storage_host}/{self.config.zone_name}/"
            f"{path.lstrip('/')}"
        )

    def cdn_url(self, path: str) -> str:
        """Return the public CDN URL of an object path."""
        host = self.config.cdn_host or f"{self.config.zone_name}.b-cdn.net"
        return f"https://{host}/{path.lstrip('/')}"

    def path_from_cdn_url(self, url: str) -> str | None:
        """Map a CDN URL produced by this client back to its object path.

        Args:
            url (str): A public URL.

        Returns:
            str | None: The object path, or None if the URL is not served from
                this zone's CDN host.
        """
        prefix = self.cdn_url("")
        if not url.startswith(prefix) or len(url) == len(prefix):
            return None
        return url[len(prefix) :]

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create the aiohttp session.

        Returns:
            aiohttp.ClientSession: The active session for making HTTP requests.

        Raises:
            StorageConfigError: If the zone name or access key is missing.
        """
        self.ensure_configured()
        api_key = self.config.api_key
        if api_key is None:
            raise StorageConfigError("Bunny storage access key is not configured")
        if self._session is None or self._session.closed:
            headers = {
                "AccessKey": api_key.get_secret_value(),
                "User-Agent": f"AniTilky/{__version__}",
            }
            self._session = aiohttp.ClientSession(headers=headers)
        return self._session

    async def close(self) -> None:
        """Close the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def upload_stream(
        self,
        path: str,
        chunks: AsyncIterable[bytes],
        content_length: int | None = None,
    ) -> str:
        """Upload an object from a chunk stream.

        Args:
            path (str): Destination object path inside the zone.
            chunks (AsyncIterable[bytes]): The object content.
            content_length (int | None): Size in bytes when known upfront;
                otherwise the body is sent with chunked transfer encoding.

        Returns:
            str: The public CDN URL of the uploaded object.

        Raises:
            UploadRejectedError: If the storage API does not answer 201.
            StorageError: If the connection fails mid-upload.
        """
        session = await self._get_session()
        headers = {"Content-Type": "application/octet-stream"}
        if content_length is not None:
            headers["Content-Length"] = str(content_length)

        timeout = aiohttp.ClientTimeout(total=None, sock_connect=30)
        try:
            async with session.put(
                self.storage_url(path), data=chunks, headers=headers, timeout=timeout
            ) as response:
                if response.status != 201:
                    body = await response.text()
                    raise UploadRejectedError(
                        f"Upload of '{path}' rejected with {response.status}: "
                        f"{body[:200]}"
                    )
        except aiohttp.ClientError as e:
            raise StorageError(f"Upload of '{path}' failed: {e}") from e

        url = self.cdn_url(path)
        log.debug(f"Uploaded $$'{path}'$$ to {url}")
        return url

    async def delete_file(self, path: str) -> bool:
        """Delete an object from the zone.

        Args:
            path (str): Object path inside the zone.

        Returns:
            bool: True if the object was deleted, False if it did not exist.

        Raises:
            StorageDeleteError: If the storage API refuses the deletion.
        """
        session = await self._get_session()
        try:
            async with session.delete(self.storage_url(path)) as response:
                if response.status == 404:
                    return False
                if response.status != 200:
                    body = await response.text()
                    raise StorageDeleteError(
                        f"Deletion of '{path}' failed with {response.status}: "
                        f"{body[:200]}"
                    )
        except aiohttp.ClientError as e:
            raise StorageDeleteError(f"Deletion of '{path}' failed: {e}") from e

        log.debug(f"Deleted $$'{path}'$$")
        return True
