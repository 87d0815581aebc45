from sqlmodel import SQLModel, create_engine, Session
from sqlalchemy.pool import StaticPool
import structlog

from flashquiz.config import get_settings
from flashquiz import models  # noqa: F401  registers the tables

logger = structlog.get_logger()

# Prefer DATABASE_URL (e.g. Postgres). Fallback to local SQLite.
DATABASE_URL = get_settings().database_url

engine_kwargs = {}
if DATABASE_URL.startswith("sqlite"):
    engine_kwargs["connect_args"] = {"check_same_thread": False}
    if DATABASE_URL in ("sqlite://", "sqlite:///:memory:"):
        # one shared connection, otherwise every session sees an empty database
        engine_kwargs["poolclass"] = StaticPool

engine = create_engine(DATABASE_URL, echo=False, **engine_kwargs)


def init_db(bind=None) -> None:
    """Create every table that does not exist yet."""
    bind = bind or engine
    SQLModel.metadata.create_all(bind)
    logger.info("database_initialized", backend=bind.url.get_backend_name())


def get_session():
    with Session(engine) as session:
        yield session
