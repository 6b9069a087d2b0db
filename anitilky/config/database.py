"""Database Configuration for AniTilky."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from types import TracebackType

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from anitilky.config.settings import get_config

__all__ = ["AniTilkyDB", "DBContext", "db", "get_db"]

ALEMBIC_DIR = Path(__file__).resolve().parent.parent.parent / "alembic"


class DBContext:
    """Session scope handed out by ``db()``.

    Opens a fresh session on enter and closes it on exit, so concurrent request
    handlers and background transfer jobs never share a session.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        """Bind the context to a session factory."""
        self._session_factory = session_factory
        self._session: Session | None = None

    def __enter__(self) -> DBContext:
        """Enter the context manager, opening a session."""
        self._session = self._session_factory()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Roll back uncommitted work on error and close the session."""
        if self._session is None:
            return
        if exc_type is not None:
            self._session.rollback()
        self._session.close()
        self._session = None

    @property
    def session(self) -> Session:
        """Return the current SQLAlchemy session, creating it if needed."""
        if self._session is None:
            self._session = self._session_factory()
        return self._session


class AniTilkyDB:
    """Database manager for the AniTilky application.

    Handles the creation, initialization, and migration of the SQLite database.
    Uses SQLAlchemy for ORM and Alembic for database migrations.

    File Structure:
        {data_path}/
        └── anitilky.db    # SQLite database file
    """

    def __init__(self, data_path: Path) -> None:
        """Initializes the database manager and runs pending migrations.

        Args:
            data_path (Path): Directory where the database should be stored

        Raises:
            PermissionError: If the process lacks write permissions for data_path
            ValueError: If data_path exists but is a file instead of a directory
        """
        self.data_path = data_path
        self.db_path = data_path / "anitilky.db"

        self.engine = self._setup_db()
        self.session_factory = sessionmaker(
            bind=self.engine,
            autoflush=False,
            autocommit=False,
            expire_on_commit=False,
            future=True,
        )
        self._do_migrations()

    def _setup_db(self) -> Engine:
        """Creates the data directory and SQLite engine.

        Returns:
            Engine: Configured SQLAlchemy engine instance

        Raises:
            PermissionError: If unable to create the data directory
            ValueError: If data_path exists but is a file instead of a directory
        """
        import anitilky.models.db  # noqa: F401

        if not self.data_path.exists():
            try:
                self.data_path.mkdir(parents=True, exist_ok=True)
            except PermissionError as e:
                raise PermissionError(
                    f"{self.__class__.__name__}: You do not have permissions to "
                    f"create files at '{self.data_path}'"
                ) from e
        elif self.data_path.is_file():
            raise ValueError(
                f"{self.__class__.__name__}: The path '{self.data_path}' is a file, "
                "please delete it first or choose a different data folder path",
            )

        engine = create_engine(
            f"sqlite:///{self.db_path}",
            connect_args={"check_same_thread": False, "timeout": 30},
            pool_pre_ping=True,
            future=True,
        )

        @event.listens_for(engine, "connect")
        def _set_sqlite_pragma(dbapi_connection, _connection_record):
            cur = dbapi_connection.cursor()
            try:
                cur.execute("PRAGMA journal_mode=WAL;")
                cur.execute("PRAGMA synchronous=NORMAL;")
                cur.execute("PRAGMA foreign_keys=ON;")
            finally:
                cur.close()

        return engine

    def _do_migrations(self) -> None:
        """Upgrades the schema to the latest Alembic revision."""
        from alembic import command
        from alembic.config import Config

        cfg = Config()
        cfg.set_main_option("script_location", str(ALEMBIC_DIR))
        cfg.set_main_option("sqlalchemy.url", f"sqlite:///{self.db_path}")

        command.upgrade(cfg, "head")

    def context(self) -> DBContext:
        """Return a new session scope bound to this database."""
        return DBContext(self.session_factory)


@lru_cache(maxsize=1)
def get_db() -> AniTilkyDB:
    """Get the singleton database manager, creating it on first use.

    Returns:
        AniTilkyDB: The database manager.
    """
    return AniTilkyDB(get_config().data_path)


def db() -> DBContext:
    """Open a new database session scope.

    Returns:
        DBContext: Context manager exposing ``session``.
    """
    return get_db().context()
