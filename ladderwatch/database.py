"""Ladderwatch — Database Engine & Session Factory.

SQLite locally (file or in-memory), PostgreSQL when DATABASE_URL says so.
"""

from sqlalchemy import text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

from ladderwatch.config import settings
from ladderwatch.core.logging import get_logger

# Table modules must be imported so SQLModel.metadata knows every table
from ladderwatch.models import job_models, roster_models, snapshot_models  # noqa: F401

logger = get_logger("database")

IN_MEMORY_SQLITE = ("sqlite://", "sqlite:///:memory:")


def backend_name(url: str) -> str:
    return "sqlite" if url.startswith("sqlite") else "postgresql"


def _mask_url(url: str) -> str:
    """Hide the password before the URL reaches a log line or response."""
    return make_url(url).render_as_string(hide_password=True)


def build_engine(url: str) -> Engine:
    """Engine with pool settings for the URL's backend.

    In-memory SQLite gets a single shared connection so every session sees
    the same tables.
    """
    kwargs: dict = {"echo": False}
    if backend_name(url) == "sqlite":
        kwargs["connect_args"] = {"check_same_thread": False}
        if url in IN_MEMORY_SQLITE:
            kwargs["poolclass"] = StaticPool
    else:
        kwargs.update(pool_pre_ping=True, pool_size=5, max_overflow=10, pool_recycle=300)
    return create_engine(url, **kwargs)


db_url = settings.effective_database_url

if backend_name(db_url) == "sqlite":
    logger.info(f"📦 Database backend: SQLite ({db_url})")
else:
    logger.info(f"🐘 Database backend: PostgreSQL ({_mask_url(db_url)})")

engine = build_engine(db_url)


def test_connection() -> bool:
    """SELECT 1 against the configured database."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        logger.info("✅ Database connection test: SUCCESS")
        return True
    except Exception as e:
        logger.error(f"❌ Database connection test: FAILED — {e}")
        return False


def init_db(target: Engine | None = None) -> None:
    """Create any missing tables (snapshots, scores, jobs, deliveries)."""
    target = target or engine
    SQLModel.metadata.create_all(target)
    logger.info(f"✅ Database tables ready ({len(SQLModel.metadata.tables)} tables)")


def get_session():
    """Dependency — yields a DB session."""
    with Session(engine) as session:
        yield session


def open_session() -> Session:
    """Plain session for jobs running outside a request (scheduler, CLI)."""
    return Session(engine)
