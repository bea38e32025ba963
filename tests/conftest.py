"""
Test configuration and fixtures for the embed sessions service.

Each test gets its own SQLite database file (through aiosqlite) so session
and lead rows never leak between tests.
"""

import os
import tempfile
from typing import Generator

from dotenv import load_dotenv

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import create_async_engine

load_dotenv()

os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{tempfile.mktemp(suffix='.db')}")
os.environ.setdefault("EMBED_SESSION_SECRET", "test-embed-secret-0123456789abcdef0123456789")
os.environ.setdefault("EMBED_SESSION_KEY_VERSION", "v1")

from app.features.embed_sessions import models  # noqa: E402,F401
from app.features.embed_sessions.services.lead_registry import LeadRegistry  # noqa: E402
from app.features.embed_sessions.services.session_manager import SessionLifecycleManager  # noqa: E402
from app.features.embed_sessions.services.store import SqlAlchemySessionStore  # noqa: E402
from app.platform.config import Settings, SigningConfig  # noqa: E402
from app.platform.db.base import Base  # noqa: E402
from app.platform.db.session import create_session_factory  # noqa: E402

TEST_SECRET = b"test-embed-secret-0123456789abcdef0123456789"


@pytest.fixture
def signing_config() -> SigningConfig:
    return SigningConfig(
        secret=TEST_SECRET,
        key_version="v1",
        audience="embed-session",
        issuer="prompt-reviews",
        ttl_minutes=45,
    )


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'sessions.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def store(engine) -> SqlAlchemySessionStore:
    return SqlAlchemySessionStore(create_session_factory(engine))


@pytest.fixture
def manager(store, signing_config) -> SessionLifecycleManager:
    return SessionLifecycleManager(store, signing_config)


@pytest.fixture
def registry(store) -> LeadRegistry:
    return LeadRegistry(store)


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'api.db'}",
        DB_CREATE_ALL=True,
        EMBED_SESSION_SECRET=TEST_SECRET.decode(),
        EMBED_SESSION_KEY_VERSION="v1",
    )


@pytest.fixture
def test_app(test_settings):
    """Create FastAPI test application bound to a throwaway database."""
    from app.main import create_app

    return create_app(test_settings)


@pytest.fixture(scope="function")
def client(test_app) -> Generator[TestClient, None, None]:
    """
    Create a test client for making HTTP requests.
    Entering the client runs the app lifespan, which builds the datastore.
    """
    with TestClient(test_app) as test_client:
        yield test_client
