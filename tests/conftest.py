import os
import tempfile

# Settings are read once at import time, so the environment goes first.
_db_dir = tempfile.mkdtemp(prefix="flashquiz-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_db_dir, 'test.db')}"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["FLASHQUIZ_USE_MOCK_DATA"] = "true"
os.environ["OPENAI_API_KEY"] = ""
os.environ["REDIS_URL"] = ""
os.environ["FLASHQUIZ_STORE_URL"] = ""
os.environ["FLASHQUIZ_STORE_KEY"] = ""

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel

from flashquiz.config import Settings
from flashquiz.db import engine
from flashquiz.main import app
from flashquiz.middleware.rate_limit import limiter
from flashquiz.services.cache import CacheService

limiter.enabled = False


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def database():
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def session(database):
    with Session(database) as session:
        yield session


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def app_state_override():
    """Swap services on app.state for one test and put them back afterwards."""
    saved = dict(app.state._state)

    def override(**services):
        for name, value in services.items():
            setattr(app.state, name, value)

    yield override
    app.state._state.clear()
    app.state._state.update(saved)


@pytest.fixture
def cache():
    return CacheService()


@pytest.fixture
def local_settings():
    return Settings(local_auth_delay=0, remote_timeout=1.0)


@pytest.fixture
def remote_settings():
    return Settings(
        store_url="http://flashquiz.test",
        store_key="test-key",
        local_auth_delay=0,
        remote_timeout=5.0,
    )


@pytest.fixture
def asgi_transport():
    return httpx.ASGITransport(app=app)
