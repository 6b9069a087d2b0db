"""API routes."""

from fastapi.routing import APIRouter

from anitilky.web.routes.api.anime import router as anime_router
from anitilky.web.routes.api.system import router as system_router
from anitilky.web.routes.api.transfers import router as transfers_router

__all__ = ["router"]

router = APIRouter()


router.include_router(anime_router, prefix="/anime", tags=["anime"])
router.include_router(transfers_router, prefix="/transfers", tags=["transfers"])
router.include_router(system_router, prefix="/system", tags=["system"])
