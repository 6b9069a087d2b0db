"""File name heuristics used by the bulk transfer pipeline."""

import re
from collections.abc import Iterable
from pathlib import PurePosixPath

__all__ = [
    "DEFAULT_ANIME_SLUG",
    "build_destination_path",
    "extract_episode_number",
    "is_video_file",
    "sanitize_name",
]

DEFAULT_ANIME_SLUG = "anime"

_DIGITS_RE = re.compile(r"\d+")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")


def extract_episode_number(file_name: str) -> int | None:
    """Derive an episode number from a file name.

    The first run of decimal digits anywhere in the name wins, extension
    included, so ``"2024-episode-03.mp4"`` yields ``2024`` and ``"opening.mp4"``
    yields ``4``.

    Args:
        file_name (str): The remote file name.

    Returns:
        int | None: The parsed number, or None when the name has no digits.
    """
    match = _DIGITS_RE.search(file_name)
    if match is None:
        return None
    return int(match.group())


def sanitize_name(name: str) -> str:
    """Turn an anime title into a storage path segment.

    Lowercases, collapses every run of characters outside ``[a-z0-9]`` into a
    single hyphen and trims leading and trailing hyphens.

    Args:
        name (str): The title to sanitize.

    Returns:
        str: The sanitized segment, ``"anime"`` if nothing is left.
    """
    slug = _NON_ALNUM_RE.sub("-", name.lower()).strip("-")
    return slug or DEFAULT_ANIME_SLUG


def build_destination_path(
    anime_name: str, season_number: int, episode_number: int
) -> str:
    """Build the object storage path of an uploaded episode.

    Args:
        anime_name (str): Display title of the anime.
        season_number (int): Target season number.
        episode_number (int): Derived episode number.

    Returns:
        str: ``{sanitized-name}/sezon-{season}/{episode}.mp4``
    """
    return f"{sanitize_name(anime_name)}/sezon-{season_number}/{episode_number}.mp4"


def is_video_file(
    name: str, mime_type: str | None, video_extensions: Iterable[str]
) -> bool:
    """Check whether a listed remote file looks like a video.

    Args:
        name (str): The file name.
        mime_type (str | None): The MIME type reported by the drive.
        video_extensions (Iterable[str]): Lowercase extensions including the dot.

    Returns:
        bool: True if the MIME type mentions video or the extension is known.
    """
    if mime_type and "video" in mime_type.lower():
        return True
    return PurePosixPath(name).suffix.lower() in set(video_extensions)
