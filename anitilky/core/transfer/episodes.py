"""Episode construction and source id helpers shared by transfers and admin."""

import secrets
import string
import time
from collections.abc import Iterable
from datetime import UTC, datetime

from anitilky.exceptions import DuplicateEpisodeError
from anitilky.models.schemas.catalog import (
    Anime,
    AnimeSourceTag,
    Episode,
    Season,
    SourceOrigin,
    SourceType,
    VideoSource,
    VideoSourceDefaults,
)

__all__ = [
    "assign_source_ids",
    "build_episode",
    "collect_source_ids",
    "detect_source_type",
    "ensure_anime_source",
    "generate_source_id",
    "insert_episode",
]

_BASE36 = string.digits + string.ascii_lowercase
_SUFFIX_LENGTH = 9

_YOUTUBE_HOSTS = ("youtube.com", "youtu.be")
_DRIVE_HOSTS = ("drive.google.com", "docs.google.com")


def _now_ms() -> int:
    return int(time.time() * 1000)


def generate_source_id(source_type: SourceType | str, taken: set[str]) -> str:
    """Mint a ``sourceId`` that is not yet used anywhere in the anime tree.

    Ids look like ``{type}-{ms timestamp}-{9 base36 chars}``. The new id is added
    to ``taken`` so several ids minted in one operation stay distinct.

    Args:
        source_type (SourceType | str): Transfer origin of the video source.
        taken (set[str]): Ids already present in the anime; updated in place.

    Returns:
        str: The new unique id.
    """
    while True:
        suffix = "".join(secrets.choice(_BASE36) for _ in range(_SUFFIX_LENGTH))
        source_id = f"{source_type}-{_now_ms()}-{suffix}"
        if source_id not in taken:
            taken.add(source_id)
            return source_id


def collect_source_ids(anime: Anime) -> set[str]:
    """Collect every ``sourceId`` present in an anime's seasons."""
    return {
        source.source_id
        for season in anime.seasons
        for episode in season.episodes
        for source in episode.video_sources
        if source.source_id
    }


def detect_source_type(url: str) -> SourceType:
    """Guess where a manually added video URL is hosted.

    Args:
        url (str): The video URL.

    Returns:
        SourceType: ``youtube`` or ``drive`` for those hosts, ``direct`` otherwise.
    """
    lowered = url.lower()
    if any(host in lowered for host in _YOUTUBE_HOSTS):
        return SourceType.YOUTUBE
    if any(host in lowered for host in _DRIVE_HOSTS):
        return SourceType.DRIVE
    return SourceType.DIRECT


def assign_source_ids(anime: Anime, sources: Iterable[VideoSource]) -> None:
    """Fill in missing source types and ids for video sources about to be stored.

    Args:
        anime (Anime): The anime the sources will belong to.
        sources (Iterable[VideoSource]): Sources to complete in place.
    """
    taken = collect_source_ids(anime)
    for source in sources:
        if source.source is None:
            source.source = detect_source_type(source.url)
        if not source.source_id:
            source.source_id = generate_source_id(source.source, taken)


def ensure_anime_source(anime: Anime) -> None:
    """Default the anime's metadata source once it starts holding episodes."""
    if anime.source is None:
        anime.source = AnimeSourceTag(
            name=SourceOrigin.CUSTOM, id=f"custom-{_now_ms()}"
        )


def build_episode(
    anime: Anime,
    episode_number: int,
    cdn_url: str,
    defaults: VideoSourceDefaults,
) -> Episode:
    """Build the episode created for a successfully uploaded file.

    Args:
        anime (Anime): The target anime, used for naming and id uniqueness.
        episode_number (int): The derived episode number.
        cdn_url (str): Public URL of the uploaded object.
        defaults (VideoSourceDefaults): Attributes for the new video source.

    Returns:
        Episode: The new episode with a single ``bunny`` video source.
    """
    source = VideoSource(
        url=cdn_url,
        quality=defaults.quality,
        language=defaults.language,
        type=defaults.type,
        fansub=defaults.fansub,
        source=SourceType.BUNNY,
        source_id=generate_source_id(SourceType.BUNNY, collect_source_ids(anime)),
    )
    return Episode(
        episode_number=episode_number,
        title=f"Bölüm {episode_number}",
        description=f"{anime.title.display} {episode_number}. Bölüm",
        thumbnail=anime.cover_image,
        published_at=datetime.now(UTC),
        video_sources=[source],
    )


def insert_episode(anime: Anime, season: Season, episode: Episode) -> None:
    """Insert an episode keeping the season sorted and episode numbers unique.

    Args:
        anime (Anime): The anime owning the season.
        season (Season): The season to insert into.
        episode (Episode): The episode to insert.

    Raises:
        DuplicateEpisodeError: If the season already has that episode number.
    """
    if season.has_episode(episode.episode_number):
        raise DuplicateEpisodeError(
            f"Episode {episode.episode_number} already exists in season "
            f"{season.season_number}"
        )
    season.episodes.append(episode)
    season.sort_episodes()
    ensure_anime_source(anime)
