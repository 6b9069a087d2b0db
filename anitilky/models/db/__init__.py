"""Models for AniTilky database tables."""

from anitilky.models.db.anime import AnimeRecord
from anitilky.models.db.base import Base
from anitilky.models.db.transfer import TransferItemRecord, TransferJobRecord

__all__ = ["AnimeRecord", "Base", "TransferItemRecord", "TransferJobRecord"]
