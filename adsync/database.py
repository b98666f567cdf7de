"""ADSYNC — Database Engine & Session Factory.

One engine per process, built from ``settings.effective_database_url``.
Metric rows, the media catalog, cooldown records and the stored platform
connections all live in the same database.
"""

from sqlalchemy import text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

from adsync.config import settings
from adsync.core.logging import get_logger

# Table modules must be imported so their metadata is registered
from adsync.models import account_models, media_models, metric_models  # noqa: F401

logger = get_logger("database")

MEMORY_URLS = ("sqlite://", "sqlite:///:memory:")


def backend_name(url: str) -> str:
    return make_url(url).get_backend_name()


def masked_url(url: str) -> str:
    """URL with the password hidden, safe for logs and the debug endpoint."""
    return make_url(url).render_as_string(hide_password=True)


def build_engine(url: str, echo: bool = False) -> Engine:
    """Engine for ``url`` with per-backend connection settings.

    SQLite connections are used from FastAPI's worker threads;
    an in-memory database keeps a single connection so every session
    sees the same tables. PostgreSQL gets a pre-pinged, recycled pool.
    """
    kwargs: dict = {"echo": echo}

    if backend_name(url) == "sqlite":
        kwargs["connect_args"] = {"check_same_thread": False}
        if url in MEMORY_URLS:
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_pre_ping"] = True
        kwargs["pool_size"] = settings.db_pool_size
        kwargs["max_overflow"] = settings.db_max_overflow
        kwargs["pool_recycle"] = settings.db_pool_recycle

    return create_engine(url, **kwargs)


db_url = settings.effective_database_url
logger.info(f"📦 Database backend: {backend_name(db_url)} ({masked_url(db_url)})")
engine = build_engine(db_url)


def test_connection(bind: Engine | None = None) -> bool:
    """Test the database connection with SELECT 1."""
    try:
        with (bind or engine).connect() as conn:
            conn.execute(text("SELECT 1"))
        logger.info("✅ Database connection test: SUCCESS")
        return True
    except Exception as e:
        logger.error(f"❌ Database connection test: FAILED: {e}")
        return False


def init_db(bind: Engine | None = None) -> None:
    """Create the sync tables that do not exist yet."""
    SQLModel.metadata.create_all(bind or engine)
    logger.info(f"✅ Tables ready: {', '.join(sorted(SQLModel.metadata.tables))}")


def get_session():
    """Dependency that yields a DB session."""
    with Session(engine) as session:
        yield session
