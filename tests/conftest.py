"""Shared pytest configuration and fixtures for the test suite."""

import atexit
import os
import shutil
import tempfile
from pathlib import Path

import pytest
import yaml
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

_TEST_DATA_DIR = Path(tempfile.mkdtemp(prefix="at-tests-"))
os.environ["AT_DATA_PATH"] = str(_TEST_DATA_DIR)
_TEST_CONFIG_FILE = _TEST_DATA_DIR / "config.yaml"

_TEST_CONFIG_FILE.write_text(
    yaml.safe_dump(
        {
            "drive": {"api_key": "drive-key"},
            "storage": {"zone_name": "demo-zone", "api_key": "storage-key"},
        },
        sort_keys=False,
    ),
    encoding="utf-8",
)

from anitilky.config import settings as settings_module  # noqa: E402
from anitilky.config.database import DBContext  # noqa: E402
from anitilky.core import catalog as catalog_module  # noqa: E402
from anitilky.core.transfer import history as history_module  # noqa: E402
from anitilky.models.db import Base  # noqa: E402
from anitilky.web.state import get_app_state  # noqa: E402

settings_module.get_config.cache_clear()


@pytest.fixture(autouse=True)
def memory_db(monkeypatch: pytest.MonkeyPatch):
    """Point every store at a fresh in-memory SQLite database."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(engine)
    session_factory = sessionmaker(
        bind=engine, autoflush=False, expire_on_commit=False, future=True
    )

    def _db() -> DBContext:
        return DBContext(session_factory)

    monkeypatch.setattr(catalog_module, "db", _db)
    monkeypatch.setattr(history_module, "db", _db)
    yield session_factory
    engine.dispose()


@pytest.fixture(autouse=True)
def _reset_app_state():
    """Ensure each test interacts with a fresh AppState instance."""
    get_app_state.cache_clear()
    state = get_app_state()
    yield state
    get_app_state.cache_clear()


@atexit.register
def _cleanup_test_data_dir() -> None:
    """Remove the temporary test data directory after the test session."""
    shutil.rmtree(_TEST_DATA_DIR, ignore_errors=True)
