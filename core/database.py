from typing import Generator
import logging

from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine, Session

from core.config import settings

logger = logging.getLogger(__name__)


# ============================================================
# ✅ Engine factory
# ============================================================
def build_engine(database_url: str, echo: bool = False):
    """
    Create a SQLModel engine for the given URL.
    In-memory SQLite gets a StaticPool so every session shares the one
    database; file-backed SQLite waits on the write lock instead of failing.
    """
    if database_url.startswith("sqlite"):
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            return create_engine(
                database_url,
                echo=echo,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": 30},
        )
    # For PostgreSQL, pool_pre_ping avoids stale connections
    return create_engine(database_url, echo=echo, pool_pre_ping=True)


engine = build_engine(settings.DATABASE_URL)
logger.info("Using database: %s", engine.url.render_as_string(hide_password=True))


# ============================================================
# ✅ Create tables (called at startup)
# ============================================================
def create_db_and_tables(target_engine=None) -> None:
    """Create all database tables based on SQLModel models."""
    # Import so every table is registered on SQLModel.metadata
    import models.models  # noqa: F401

    try:
        SQLModel.metadata.create_all(target_engine or engine)
        logger.info("✅ All database tables created successfully.")
    except Exception as e:
        logger.error(f"❌ Failed to create tables: {e}")
        raise


# ============================================================
# ✅ Dependency: FastAPI session generator
# ============================================================
def get_session() -> Generator[Session, None, None]:
    """
    Provides a SQLModel Session to FastAPI dependencies.
    Closes automatically after request completes.
    """
    with Session(engine) as session:
        yield session
