"""Anime Catalog Models Module.

The catalog is stored as one nested document per anime:
Anime -> Season -> Episode -> VideoSource. Field names are exposed in camelCase
on the wire and snake_case in Python.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

__all__ = [
    "Anime",
    "AnimeSourceTag",
    "AnimeStatus",
    "AnimeSummary",
    "AnimeTitle",
    "AnimeType",
    "CatalogBaseModel",
    "Episode",
    "Language",
    "Quality",
    "Season",
    "SourceOrigin",
    "SourceType",
    "UTCDateTime",
    "VideoSource",
    "VideoSourceDefaults",
    "VideoType",
]

UTCDateTime = Annotated[
    datetime,
    AfterValidator(
        lambda dt: dt.replace(tzinfo=UTC) if dt.tzinfo is None else dt.astimezone(UTC)
    ),
]


class Quality(StrEnum):
    """Video quality labels."""

    Q360P = "360p"
    Q480P = "480p"
    Q720P = "720p"
    Q1080P = "1080p"
    Q4K = "4K"


class Language(StrEnum):
    """Audio or subtitle language of a video source."""

    TR = "TR"
    JP = "JP"
    EN = "EN"


class VideoType(StrEnum):
    """Whether a video source is subtitled or dubbed."""

    SUBTITLED = "Altyazılı"
    DUBBED = "Dublaj"


class SourceType(StrEnum):
    """Where a video source's bytes are served from."""

    BUNNY = "bunny"
    DRIVE = "drive"
    YOUTUBE = "youtube"
    DIRECT = "direct"


class SourceOrigin(StrEnum):
    """Metadata provider an anime entry was imported from."""

    ANILIST = "AniList"
    MYANIMELIST = "MyAnimeList"
    TMDB = "TMDB"
    MANUAL = "Manual"
    CUSTOM = "Custom"


class AnimeType(StrEnum):
    """Format of an anime entry."""

    TV = "TV"
    MOVIE = "Movie"
    OVA = "OVA"
    ONA = "ONA"
    SPECIAL = "Special"


class AnimeStatus(StrEnum):
    """Airing status of an anime entry."""

    ONGOING = "ongoing"
    COMPLETED = "completed"
    UPCOMING = "upcoming"


class CatalogBaseModel(BaseModel):
    """Base class for catalog documents, serialized with camelCase keys."""

    def model_dump(self, **kwargs) -> dict[str, Any]:
        """Convert the model to a dictionary, converting all keys to camelCase.

        Returns:
            dict[str, Any]: Dictionary representation of the model.
        """
        kwargs.setdefault("by_alias", True)
        return super().model_dump(**kwargs)

    def model_dump_json(self, **kwargs) -> str:
        """Serialize the model to JSON, converting all keys to camelCase.

        Returns:
            str: JSON serialized string of the model.
        """
        kwargs.setdefault("by_alias", True)
        return super().model_dump_json(**kwargs)

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class VideoSource(CatalogBaseModel):
    """A playable rendition of an episode."""

    url: str
    quality: Quality = Quality.Q720P
    language: Language = Language.TR
    type: VideoType = VideoType.SUBTITLED
    fansub: str | None = None
    source: SourceType | None = None
    source_id: str | None = None


class VideoSourceDefaults(CatalogBaseModel):
    """Attributes applied to every video source created by a bulk transfer."""

    fansub: str | None = None
    quality: Quality = Quality.Q720P
    language: Language = Language.TR
    type: VideoType = VideoType.SUBTITLED


class Episode(CatalogBaseModel):
    """A single episode within a season."""

    episode_number: int = Field(ge=1)
    title: str | None = None
    description: str | None = None
    thumbnail: str | None = None
    duration: int | None = None
    published_at: UTCDateTime | None = None
    video_sources: list[VideoSource] = Field(default_factory=list)


class Season(CatalogBaseModel):
    """An ordered list of episodes identified by its season number."""

    season_number: int = Field(ge=0)
    title: str | None = None
    description: str | None = None
    episodes: list[Episode] = Field(default_factory=list)

    def find_episode(self, episode_number: int) -> Episode | None:
        """Return the episode with the given number, if present."""
        for episode in self.episodes:
            if episode.episode_number == episode_number:
                return episode
        return None

    def has_episode(self, episode_number: int) -> bool:
        """Whether an episode with the given number already exists."""
        return self.find_episode(episode_number) is not None

    def sort_episodes(self) -> None:
        """Sort episodes ascending by episode number."""
        self.episodes.sort(key=lambda e: e.episode_number)


class AnimeTitle(CatalogBaseModel):
    """Localized titles of an anime."""

    romaji: str
    english: str | None = None
    native: str | None = None

    @property
    def display(self) -> str:
        """Preferred title for display and storage paths."""
        return self.romaji or self.english or self.native or ""


class AnimeSourceTag(CatalogBaseModel):
    """Identifies the metadata record an anime was created from."""

    name: SourceOrigin
    id: str


class Anime(CatalogBaseModel):
    """Root catalog document."""

    id: str
    title: AnimeTitle
    cover_image: str | None = None
    banner_image: str | None = None
    description: str | None = None
    type: AnimeType | None = None
    status: AnimeStatus | None = None
    genres: list[str] = Field(default_factory=list)
    source: AnimeSourceTag | None = None
    seasons: list[Season] = Field(default_factory=list)

    version: int = Field(default=0, ge=0)
    created_at: UTCDateTime | None = None
    updated_at: UTCDateTime | None = None

    def find_season(self, season_number: int) -> Season | None:
        """Return the season with the given number, if present."""
        for season in self.seasons:
            if season.season_number == season_number:
                return season
        return None

    def to_document(self) -> dict[str, Any]:
        """Serialize the tree that is persisted in the ``document`` column."""
        return self.model_dump(
            mode="json", exclude={"version", "created_at", "updated_at"}
        )

    def summary(self) -> AnimeSummary:
        """Build a lightweight listing entry for this anime."""
        return AnimeSummary(
            id=self.id,
            title=self.title,
            cover_image=self.cover_image,
            type=self.type,
            status=self.status,
            season_count=len(self.seasons),
            episode_count=sum(len(s.episodes) for s in self.seasons),
            version=self.version,
            updated_at=self.updated_at,
        )


class AnimeSummary(CatalogBaseModel):
    """Listing entry for an anime without its season tree."""

    id: str
    title: AnimeTitle
    cover_image: str | None = None
    type: AnimeType | None = None
    status: AnimeStatus | None = None
    season_count: int = 0
    episode_count: int = 0
    version: int = 0
    updated_at: UTCDateTime | None = None
