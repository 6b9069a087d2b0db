"""Google Drive Client."""

import asyncio
import re
from collections.abc import AsyncIterator
from typing import Any

import aiohttp
from limiter import Limiter
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from anitilky import __version__, log
from anitilky.config.settings import DriveConfig
from anitilky.exceptions import (
    DriveConfigError,
    FolderNotFoundError,
    NotAFolderError,
    RemoteFileError,
    RemoteSourceError,
)

__all__ = ["DriveClient", "DriveFile", "extract_folder_id"]

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"

_FOLDER_ID_RE = re.compile(r"[-\w]{25,}")

drive_limiter = Limiter(rate=10, capacity=10, jitter=False)


def extract_folder_id(folder_ref: str) -> str:
    """Pull a Drive folder id out of a raw id or any Drive folder URL.

    Args:
        folder_ref (str): A folder id or a URL containing one.

    Returns:
        str: The first run of 25 or more ``[-\\w]`` characters, or the stripped
            reference itself when there is none.
    """
    folder_ref = folder_ref.strip()
    match = _FOLDER_ID_RE.search(folder_ref)
    return match.group() if match else folder_ref


class DriveFile(BaseModel):
    """File metadata returned by the Drive ``files`` endpoints."""

    id: str
    name: str
    size: int | None = None
    mime_type: str | None = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DriveClient:
    """Client for the Google Drive v3 REST API.

    Authenticates with either an OAuth bearer token or an API key (enough for
    folders shared by link). Metadata requests are rate limited; media downloads
    are streamed in chunks and never buffered whole.
    """

    LIST_FIELDS = "nextPageToken, files(id, name, size, mimeType)"

    def __init__(self, config: DriveConfig) -> None:
        """Initialize the Drive client.

        Args:
            config (DriveConfig): Drive API settings and credentials.
        """
        self.config = config
        self._session: aiohttp.ClientSession | None = None

    @property
    def api_url(self) -> str:
        """Base URL of the Drive API without a trailing slash."""
        return self.config.api_url.rstrip("/")

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create the aiohttp session.

        Returns:
            aiohttp.ClientSession: The active session for making HTTP requests.

        Raises:
            DriveConfigError: If neither an access token nor an API key is set.
        """
        if not self.config.access_token and not self.config.api_key:
            raise DriveConfigError(
                "Google Drive credentials are not configured "
                "(set drive.access_token or drive.api_key)"
            )
        if self._session is None or self._session.closed:
            headers = {
                "Accept": "application/json",
                "User-Agent": f"AniTilky/{__version__}",
            }
            if self.config.access_token:
                headers["Authorization"] = (
                    f"Bearer {self.config.access_token.get_secret_value()}"
                )
            self._session = aiohttp.ClientSession(headers=headers)
        return self._session

    async def close(self) -> None:
        """Close the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()

    def _params(self, **params: Any) -> dict[str, str]:
        if not self.config.access_token and self.config.api_key:
            params["key"] = self.config.api_key.get_secret_value()
        params.setdefault("supportsAllDrives", "true")
        return {k: str(v) for k, v in params.items() if v is not None}

    @drive_limiter()
    async def _get_json(
        self, path: str, params: dict[str, str], retry_count: int = 0
    ) -> dict[str, Any]:
        """Make a rate-limited metadata request to the Drive API.

        Args:
            path (str): Path below the API base URL.
            params (dict[str, str]): Query parameters.
            retry_count (int): Number of retries attempted (used for temporary errors)

        Returns:
            dict[str, Any]: JSON response from the API.

        Raises:
            aiohttp.ClientResponseError: If the API answers with an error status.
            RemoteSourceError: If the API stays unreachable after 3 tries.
        """
        if retry_count >= 3:
            raise RemoteSourceError("Failed to reach the Drive API after 3 tries")

        session = await self._get_session()
        try:
            async with session.get(f"{self.api_url}{path}", params=params) as response:
                if response.status == 429 or response.status >= 500:
                    retry_after = int(response.headers.get("Retry-After", 1))
                    log.warning(
                        f"Drive API returned {response.status}, retrying in "
                        f"{retry_after} seconds"
                    )
                    await asyncio.sleep(retry_after)
                    return await self._get_json(path, params, retry_count + 1)

                try:
                    response.raise_for_status()
                except aiohttp.ClientResponseError:
                    response_text = await response.text()
                    log.debug(
                        f"Drive API error {response.status}: {response_text[:500]}"
                    )
                    raise
                return await response.json()
        except aiohttp.ClientResponseError:
            raise
        except (TimeoutError, aiohttp.ClientError):
            log.warning("Connection error while calling the Drive API, retrying")
            await asyncio.sleep(1)
            return await self._get_json(path, params, retry_count + 1)

    async def get_folder(self, folder_id: str) -> DriveFile:
        """Look up a folder and verify it really is one.

        Args:
            folder_id (str): The Drive folder id.

        Returns:
            DriveFile: The folder metadata.

        Raises:
            FolderNotFoundError: If the folder does not exist or is not shared.
            NotAFolderError: If the id belongs to a file.
            RemoteSourceError: For any other Drive failure.
        """
        try:
            data = await self._get_json(
                f"/files/{folder_id}", self._params(fields="id, name, mimeType")
            )
        except aiohttp.ClientResponseError as e:
            if e.status == 404:
                raise FolderNotFoundError(
                    f"Folder '{folder_id}' not found or inaccessible"
                ) from e
            raise RemoteSourceError(
                f"Google Drive lookup of folder '{folder_id}' failed: "
                f"{e.status} {e.message}"
            ) from e

        folder = DriveFile.model_validate(data)
        if folder.mime_type != FOLDER_MIME_TYPE:
            raise NotAFolderError(f"'{folder_id}' is not a Google Drive folder")
        return folder

    async def list_video_files(self, folder_id: str) -> list[DriveFile]:
        """List the video-like files directly inside a folder, sorted by name.

        Follows ``nextPageToken`` until the listing is exhausted.

        Args:
            folder_id (str): The Drive folder id.

        Returns:
            list[DriveFile]: Files in the order returned by Drive (by name).

        Raises:
            FolderNotFoundError: If the folder disappeared.
            RemoteSourceError: For any other Drive failure.
        """
        query = (
            f"'{folder_id}' in parents and trashed = false and "
            "(mimeType contains 'video/' or name contains '.mp4' "
            "or name contains '.mkv')"
        )
        files: list[DriveFile] = []
        page_token: str | None = None
        while True:
            params = self._params(
                q=query,
                fields=self.LIST_FIELDS,
                orderBy="name",
                pageSize=self.config.page_size,
                pageToken=page_token,
                includeItemsFromAllDrives="true",
            )
            try:
                data = await self._get_json("/files", params)
            except aiohttp.ClientResponseError as e:
                if e.status == 404:
                    raise FolderNotFoundError(
                        f"Folder '{folder_id}' not found or inaccessible"
                    ) from e
                raise RemoteSourceError(
                    f"Google Drive listing of folder '{folder_id}' failed: "
                    f"{e.status} {e.message}"
                ) from e

            files.extend(DriveFile.model_validate(f) for f in data.get("files", []))
            page_token = data.get("nextPageToken")
            if not page_token:
                break

        log.debug(
            f"Listed {len(files)} candidate files in folder "
            f"$${{folder_id: {folder_id}}}$$"
        )
        return files

    async def open_file_stream(
        self, file_id: str, chunk_size: int = 1024 * 1024
    ) -> AsyncIterator[bytes]:
        """Stream a file's content in chunks.

        The download only advances as fast as the consumer pulls chunks.

        Args:
            file_id (str): The Drive file id.
            chunk_size (int): Maximum bytes per yielded chunk.

        Yields:
            bytes: Consecutive chunks of the file content.

        Raises:
            RemoteFileError: If the download cannot be started or breaks off.
        """
        session = await self._get_session()
        timeout = aiohttp.ClientTimeout(total=None, sock_connect=30)
        try:
            async with session.get(
                f"{self.api_url}/files/{file_id}",
                params=self._params(alt="media"),
                timeout=timeout,
            ) as response:
                if response.status != 200:
                    body = await response.text()
                    raise RemoteFileError(
                        f"Download of file '{file_id}' failed with "
                        f"{response.status}: {body[:200]}"
                    )
                async for chunk in response.content.iter_chunked(chunk_size):
                    yield chunk
        except aiohttp.ClientError as e:
            raise RemoteFileError(f"Download of file '{file_id}' broke off: {e}") from e
