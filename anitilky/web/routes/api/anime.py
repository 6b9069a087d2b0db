"""Catalog administration and bulk upload endpoints."""

from fastapi import Path, Query, status
from fastapi.exceptions import HTTPException
from fastapi.routing import APIRouter
from pydantic import BaseModel

from anitilky.models.schemas.catalog import Anime
from anitilky.models.schemas.transfer import BulkUploadRequest, BulkUploadResponse
from anitilky.web.services.catalog_service import (
    AnimeCreatePayload,
    AnimePage,
    EpisodeCreatePayload,
    EpisodeDeleteResult,
    EpisodeUpdatePayload,
    SeasonCreatePayload,
    get_catalog_service,
)
from anitilky.web.services.transfer_service import get_transfer_service

__all__ = ["router"]


class OkResponse(BaseModel):
    ok: bool = True


router = APIRouter()


@router.get("", response_model=AnimePage)
def list_anime(page: int = 1, per_page: int = 50) -> AnimePage:
    """List anime summaries, most recently updated first.

    Args:
        page (int): 1-based page number.
        per_page (int): Items per page (1-200).

    Returns:
        AnimePage: The requested page.
    """
    if page < 1:
        raise HTTPException(400, "page must be >= 1")
    if per_page < 1 or per_page > 200:
        raise HTTPException(400, "per_page must be 1-200")
    return get_catalog_service().list_anime(page=page, per_page=per_page)


@router.post("", response_model=Anime, status_code=status.HTTP_201_CREATED)
def create_anime(payload: AnimeCreatePayload) -> Anime:
    """Create an anime without seasons."""
    return get_catalog_service().create_anime(payload)


@router.get("/{anime_id}", response_model=Anime)
def get_anime(anime_id: str = Path(..., min_length=1)) -> Anime:
    """Return the full anime document."""
    return get_catalog_service().get_anime(anime_id)


@router.delete("/{anime_id}", response_model=OkResponse)
def delete_anime(anime_id: str = Path(..., min_length=1)) -> OkResponse:
    """Delete an anime with all of its seasons and episodes.

    Uploaded objects are left in storage.
    """
    get_catalog_service().delete_anime(anime_id)
    return OkResponse()


@router.post(
    "/{anime_id}/seasons", response_model=Anime, status_code=status.HTTP_201_CREATED
)
async def add_season(anime_id: str, payload: SeasonCreatePayload) -> Anime:
    """Add an empty season."""
    return await get_catalog_service().add_season(anime_id, payload)


@router.delete("/{anime_id}/seasons/{season_number}", response_model=Anime)
async def delete_season(anime_id: str, season_number: int) -> Anime:
    """Delete a season and its episodes."""
    return await get_catalog_service().delete_season(anime_id, season_number)


@router.post(
    "/{anime_id}/seasons/{season_number}/episodes",
    response_model=Anime,
    status_code=status.HTTP_201_CREATED,
)
async def add_episode(
    anime_id: str, season_number: int, payload: EpisodeCreatePayload
) -> Anime:
    """Add a single episode with its video sources."""
    return await get_catalog_service().add_episode(anime_id, season_number, payload)


@router.patch(
    "/{anime_id}/seasons/{season_number}/episodes/{episode_number}",
    response_model=Anime,
)
async def update_episode(
    anime_id: str,
    season_number: int,
    episode_number: int,
    payload: EpisodeUpdatePayload,
) -> Anime:
    """Update an episode; omitted fields keep their value."""
    return await get_catalog_service().update_episode(
        anime_id, season_number, episode_number, payload
    )


@router.delete(
    "/{anime_id}/seasons/{season_number}/episodes/{episode_number}",
    response_model=EpisodeDeleteResult,
)
async def delete_episode(
    anime_id: str,
    season_number: int,
    episode_number: int,
    purge: bool = Query(
        False, description="Also delete the episode's uploads from object storage"
    ),
) -> EpisodeDeleteResult:
    """Delete an episode.

    Args:
        anime_id (str): The anime identifier.
        season_number (int): The season number.
        episode_number (int): The episode number.
        purge (bool): Also delete uploaded objects from storage.

    Returns:
        EpisodeDeleteResult: The updated anime and any purged object paths.
    """
    return await get_catalog_service().delete_episode(
        anime_id, season_number, episode_number, purge=purge
    )


@router.post(
    "/{anime_id}/bulk-upload",
    response_model=BulkUploadResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def bulk_upload(anime_id: str, payload: BulkUploadRequest) -> BulkUploadResponse:
    """Transfer every video of a Drive folder into a season in the background.

    The request is validated up front: the anime and season must exist, storage
    must be configured and the folder must hold at least one video. The files
    are then processed one at a time; poll ``/api/transfers/{jobId}`` for
    progress.

    Args:
        anime_id (str): The target anime.
        payload (BulkUploadRequest): Season, folder and video source defaults.

    Returns:
        BulkUploadResponse: The accepted files and the job id.
    """
    return await get_transfer_service().start_bulk_upload(anime_id, payload)
