"""Anime catalog document store."""

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime
from typing import TypeVar

from sqlalchemy import delete, func, select, update

from anitilky import log
from anitilky.config.database import db
from anitilky.exceptions import AnimeNotFoundError, CatalogConflictError
from anitilky.models.db.anime import AnimeRecord
from anitilky.models.schemas.catalog import Anime

__all__ = ["CatalogStore"]

T = TypeVar("T")


class CatalogStore:
    """Whole-document persistence for Anime trees.

    Every document carries a ``version`` counter. ``save`` only succeeds when the
    stored version still equals the version the caller loaded, and bumps it by one.
    Callers that mutate documents should go through ``mutate`` which additionally
    serializes writers of the same anime on an ``asyncio.Lock`` and re-applies the
    mutation on a fresh load when a conflicting write slipped in.
    """

    def __init__(self, conflict_retries: int = 3) -> None:
        """Initialize the store.

        Args:
            conflict_retries (int): How many times ``mutate`` reloads and re-applies
                a mutation after a version conflict before giving up.
        """
        self.conflict_retries = conflict_retries
        self._locks: dict[str, asyncio.Lock] = {}

    def lock_for(self, anime_id: str) -> asyncio.Lock:
        """Return the write lock guarding a single anime document.

        Args:
            anime_id (str): The anime identifier.

        Returns:
            asyncio.Lock: The lock shared by all writers of that anime.
        """
        lock = self._locks.get(anime_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[anime_id] = lock
        return lock

    @staticmethod
    def _to_model(record: AnimeRecord) -> Anime:
        return Anime.model_validate(
            {
                **(record.document or {}),
                "id": record.id,
                "version": record.version,
                "createdAt": record.created_at,
                "updatedAt": record.updated_at,
            }
        )

    def get(self, anime_id: str) -> Anime:
        """Load an anime document.

        Args:
            anime_id (str): The anime identifier.

        Returns:
            Anime: The stored document including its current version.

        Raises:
            AnimeNotFoundError: If no anime with that id exists.
        """
        with db() as ctx:
            record = ctx.session.get(AnimeRecord, anime_id)
            if record is None:
                raise AnimeNotFoundError(f"Anime '{anime_id}' not found")
            return self._to_model(record)

    def list_anime(self, limit: int | None = None, offset: int = 0) -> list[Anime]:
        """List stored anime documents ordered by most recently updated.

        Args:
            limit (int | None): Maximum number of documents to return.
            offset (int): Number of documents to skip.

        Returns:
            list[Anime]: The matching documents.
        """
        with db() as ctx:
            stmt = (
                select(AnimeRecord)
                .order_by(AnimeRecord.updated_at.desc(), AnimeRecord.id)
                .offset(offset)
            )
            if limit is not None:
                stmt = stmt.limit(limit)
            return [self._to_model(r) for r in ctx.session.scalars(stmt).all()]

    def count(self) -> int:
        """Return the number of stored anime documents."""
        with db() as ctx:
            return ctx.session.scalar(select(func.count(AnimeRecord.id))) or 0

    def create(self, anime: Anime) -> Anime:
        """Insert a new anime document with version 1.

        Args:
            anime (Anime): The document to insert.

        Returns:
            Anime: The stored document.

        Raises:
            CatalogConflictError: If an anime with the same id already exists.
        """
        now = datetime.now(UTC)
        with db() as ctx:
            if ctx.session.get(AnimeRecord, anime.id) is not None:
                raise CatalogConflictError(f"Anime '{anime.id}' already exists")
            record = AnimeRecord(
                id=anime.id,
                title=anime.title.display,
                version=1,
                document=anime.to_document(),
                created_at=now,
                updated_at=now,
            )
            ctx.session.add(record)
            ctx.session.commit()
            log.debug(
                f"Created anime $$'{anime.title.display}'$$ $${{id: {anime.id}}}$$"
            )
            return self._to_model(record)

    def save(self, anime: Anime) -> Anime:
        """Persist a whole anime document if nobody else wrote it in between.

        Args:
            anime (Anime): The modified document, still carrying the version it was
                loaded with.

        Returns:
            Anime: The stored document with its new version.

        Raises:
            AnimeNotFoundError: If the anime was deleted meanwhile.
            CatalogConflictError: If the stored version no longer matches.
        """
        expected = anime.version
        with db() as ctx:
            result = ctx.session.execute(
                update(AnimeRecord)
                .where(AnimeRecord.id == anime.id, AnimeRecord.version == expected)
                .values(
                    title=anime.title.display,
                    document=anime.to_document(),
                    version=expected + 1,
                    updated_at=datetime.now(UTC),
                )
            )
            if result.rowcount == 0:  # type: ignore[attr-defined]
                ctx.session.rollback()
                if ctx.session.get(AnimeRecord, anime.id) is None:
                    raise AnimeNotFoundError(f"Anime '{anime.id}' not found")
                raise CatalogConflictError(
                    f"Anime '{anime.id}' was modified concurrently "
                    f"(expected version {expected})"
                )
            ctx.session.commit()
            record = ctx.session.get(AnimeRecord, anime.id, populate_existing=True)
            if record is None:
                raise AnimeNotFoundError(f"Anime '{anime.id}' not found")
            return self._to_model(record)

    def delete(self, anime_id: str) -> None:
        """Delete an anime document.

        Args:
            anime_id (str): The anime identifier.

        Raises:
            AnimeNotFoundError: If no anime with that id exists.
        """
        with db() as ctx:
            result = ctx.session.execute(
                delete(AnimeRecord).where(AnimeRecord.id == anime_id)
            )
            if result.rowcount == 0:  # type: ignore[attr-defined]
                raise AnimeNotFoundError(f"Anime '{anime_id}' not found")
            ctx.session.commit()

    async def mutate(
        self, anime_id: str, mutation: Callable[[Anime], T]
    ) -> tuple[Anime, T]:
        """Apply a mutation to an anime document and persist it.

        The mutation receives a freshly loaded document, changes it in place and
        may return a value. Domain errors raised by the mutation propagate and
        nothing is written. On a version conflict the document is reloaded and the
        mutation re-applied, so checks inside the mutation always see the latest
        persisted state.

        Args:
            anime_id (str): The anime identifier.
            mutation (Callable[[Anime], T]): In-place document mutation.

        Returns:
            tuple[Anime, T]: The saved document and the mutation's return value.

        Raises:
            AnimeNotFoundError: If the anime does not exist.
            CatalogConflictError: If every attempt hit a concurrent write.
        """
        async with self.lock_for(anime_id):
            attempt = 0
            while True:
                attempt += 1
                anime = self.get(anime_id)
                result = mutation(anime)
                try:
                    return self.save(anime), result
                except CatalogConflictError:
                    if attempt > self.conflict_retries:
                        raise
                    log.debug(
                        f"Version conflict on anime $${{id: {anime_id}}}$$, "
                        "re-applying "
                        f"(attempt {attempt}/{self.conflict_retries})"
                    )
                    await asyncio.sleep(0)
