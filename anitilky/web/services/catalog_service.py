"""Catalog administration service for anime, seasons and episodes."""

from datetime import UTC, datetime
from functools import lru_cache
from uuid import uuid4

from pydantic import Field

from anitilky import log
from anitilky.core.catalog import CatalogStore
from anitilky.core.transfer.episodes import (
    assign_source_ids,
    ensure_anime_source,
    insert_episode,
)
from anitilky.exceptions import (
    DuplicateSeasonError,
    EpisodeNotFoundError,
    InvalidEpisodeError,
    SeasonNotFoundError,
    StorageError,
)
from anitilky.models.schemas.catalog import (
    Anime,
    AnimeSourceTag,
    AnimeStatus,
    AnimeSummary,
    AnimeTitle,
    AnimeType,
    CatalogBaseModel,
    Episode,
    Season,
    SourceType,
    UTCDateTime,
    VideoSource,
)
from anitilky.web.state import get_app_state

__all__ = [
    "AnimeCreatePayload",
    "AnimePage",
    "CatalogService",
    "EpisodeCreatePayload",
    "EpisodeDeleteResult",
    "EpisodeUpdatePayload",
    "SeasonCreatePayload",
    "get_catalog_service",
]


class AnimeCreatePayload(CatalogBaseModel):
    """Payload accepted when creating an anime."""

    id: str | None = Field(default=None, min_length=1)
    title: AnimeTitle
    cover_image: str | None = None
    banner_image: str | None = None
    description: str | None = None
    type: AnimeType | None = None
    status: AnimeStatus | None = None
    genres: list[str] = Field(default_factory=list)
    source: AnimeSourceTag | None = None


class AnimePage(CatalogBaseModel):
    """Pagination wrapper for anime summaries."""

    items: list[AnimeSummary]
    total: int
    page: int
    per_page: int
    pages: int


class SeasonCreatePayload(CatalogBaseModel):
    """Payload accepted when adding a season."""

    season_number: int = Field(ge=0)
    title: str | None = None
    description: str | None = None


class EpisodeCreatePayload(CatalogBaseModel):
    """Payload accepted when adding an episode manually."""

    episode_number: int = Field(ge=1)
    title: str | None = None
    description: str | None = None
    thumbnail: str | None = None
    duration: int | None = None
    published_at: UTCDateTime | None = None
    video_sources: list[VideoSource] = Field(default_factory=list)


class EpisodeUpdatePayload(CatalogBaseModel):
    """Payload accepted when updating an episode; omitted fields are kept."""

    title: str | None = None
    description: str | None = None
    thumbnail: str | None = None
    duration: int | None = None
    published_at: UTCDateTime | None = None
    video_sources: list[VideoSource] | None = None


class EpisodeDeleteResult(CatalogBaseModel):
    """Outcome of deleting an episode."""

    anime: Anime
    purged: list[str] = Field(default_factory=list)
    purge_errors: list[str] = Field(default_factory=list)


def _require_season(anime: Anime, season_number: int) -> Season:
    season = anime.find_season(season_number)
    if season is None:
        raise SeasonNotFoundError(
            f"Season {season_number} not found on anime '{anime.id}'"
        )
    return season


def _require_episode(season: Season, episode_number: int) -> Episode:
    episode = season.find_episode(episode_number)
    if episode is None:
        raise EpisodeNotFoundError(
            f"Episode {episode_number} not found in season {season.season_number}"
        )
    return episode


class CatalogService:
    """Catalog mutations routed through the store's serialized, versioned writes."""

    @property
    def store(self) -> CatalogStore:
        """The catalog store shared with the transfer manager."""
        return get_app_state().catalog

    def list_anime(self, page: int = 1, per_page: int = 50) -> AnimePage:
        """Return a page of anime summaries, most recently updated first."""
        total = self.store.count()
        items = self.store.list_anime(limit=per_page, offset=(page - 1) * per_page)
        return AnimePage(
            items=[a.summary() for a in items],
            total=total,
            page=page,
            per_page=per_page,
            pages=(total + per_page - 1) // per_page if total else 1,
        )

    def get_anime(self, anime_id: str) -> Anime:
        """Return a full anime document."""
        return self.store.get(anime_id)

    def create_anime(self, payload: AnimeCreatePayload) -> Anime:
        """Create an anime without seasons.

        Args:
            payload (AnimeCreatePayload): The anime metadata.

        Returns:
            Anime: The stored anime.
        """
        data = payload.model_dump(by_alias=False, exclude={"id"})
        anime = Anime(id=payload.id or uuid4().hex, **data)
        return self.store.create(anime)

    def delete_anime(self, anime_id: str) -> None:
        """Delete an anime and all of its seasons."""
        self.store.delete(anime_id)
        log.info(f"Deleted anime $${{id: {anime_id}}}$$")

    async def add_season(self, anime_id: str, payload: SeasonCreatePayload) -> Anime:
        """Add an empty season, keeping seasons ordered by number.

        Raises:
            DuplicateSeasonError: If the season number is already used.
        """

        def apply(anime: Anime) -> None:
            if anime.find_season(payload.season_number) is not None:
                raise DuplicateSeasonError(
                    f"Season {payload.season_number} already exists on anime "
                    f"'{anime.id}'"
                )
            anime.seasons.append(
                Season(
                    season_number=payload.season_number,
                    title=payload.title,
                    description=payload.description,
                )
            )
            anime.seasons.sort(key=lambda s: s.season_number)

        anime, _ = await self.store.mutate(anime_id, apply)
        return anime

    async def delete_season(self, anime_id: str, season_number: int) -> Anime:
        """Delete a season and its episodes."""

        def apply(anime: Anime) -> None:
            season = _require_season(anime, season_number)
            anime.seasons.remove(season)

        anime, _ = await self.store.mutate(anime_id, apply)
        return anime

    async def add_episode(
        self, anime_id: str, season_number: int, payload: EpisodeCreatePayload
    ) -> Anime:
        """Add an episode by hand.

        Source types are detected from the URLs and missing source ids minted.

        Raises:
            InvalidEpisodeError: If no video sources are given.
            DuplicateEpisodeError: If the episode number is already used.
        """
        if not payload.video_sources:
            raise InvalidEpisodeError("At least one video source is required")

        def apply(anime: Anime) -> None:
            season = _require_season(anime, season_number)
            episode = Episode.model_validate(payload.model_dump(by_alias=False))
            if episode.published_at is None:
                episode.published_at = datetime.now(UTC)
            assign_source_ids(anime, episode.video_sources)
            insert_episode(anime, season, episode)

        anime, _ = await self.store.mutate(anime_id, apply)
        return anime

    async def update_episode(
        self,
        anime_id: str,
        season_number: int,
        episode_number: int,
        payload: EpisodeUpdatePayload,
    ) -> Anime:
        """Merge fields into an existing episode.

        The episode number is always the one addressed; sources without an id get
        a fresh one.
        """
        changes = payload.model_dump(by_alias=False, exclude_unset=True)

        def apply(anime: Anime) -> None:
            season = _require_season(anime, season_number)
            episode = _require_episode(season, episode_number)
            merged = Episode.model_validate(
                {
                    **episode.model_dump(by_alias=False),
                    **changes,
                    "episode_number": episode_number,
                }
            )
            if "video_sources" in changes and not merged.video_sources:
                raise InvalidEpisodeError("At least one video source is required")
            assign_source_ids(anime, merged.video_sources)
            season.episodes[season.episodes.index(episode)] = merged
            ensure_anime_source(anime)

        anime, _ = await self.store.mutate(anime_id, apply)
        return anime

    async def delete_episode(
        self,
        anime_id: str,
        season_number: int,
        episode_number: int,
        purge: bool = False,
    ) -> EpisodeDeleteResult:
        """Delete an episode, optionally removing its uploads from storage.

        Args:
            anime_id (str): The anime identifier.
            season_number (int): The season number.
            episode_number (int): The episode number.
            purge (bool): Also delete ``bunny`` sources from object storage.

        Returns:
            EpisodeDeleteResult: The updated anime and the purged object paths.
        """

        def apply(anime: Anime) -> Episode:
            season = _require_season(anime, season_number)
            episode = _require_episode(season, episode_number)
            season.episodes.remove(episode)
            return episode

        anime, removed = await self.store.mutate(anime_id, apply)
        result = EpisodeDeleteResult(anime=anime)
        if purge:
            await self._purge_sources(removed, result)
        return result

    async def _purge_sources(
        self, episode: Episode, result: EpisodeDeleteResult
    ) -> None:
        store = get_app_state().require_transfer_manager().store
        for source in episode.video_sources:
            if source.source != SourceType.BUNNY:
                continue
            path = store.path_from_cdn_url(source.url)
            if path is None:
                result.purge_errors.append(f"{source.url}: not served by this zone")
                continue
            try:
                await store.delete_file(path)
            except StorageError as e:
                log.warning(f"Failed to purge $$'{path}'$$: {e}")
                result.purge_errors.append(f"{path}: {e}")
            else:
                result.purged.append(path)


@lru_cache(maxsize=1)
def get_catalog_service() -> CatalogService:
    """Get the singleton CatalogService instance.

    Returns:
        CatalogService: The catalog service instance.
    """
    return CatalogService()
