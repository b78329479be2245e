"""
Database session management and the settings blob store.
"""

import logging
from contextlib import contextmanager
from typing import Callable, Optional

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from ..config import StrategyConfig, settings
from .models import Base, SettingsBlob

logger = logging.getLogger(__name__)

DEFAULT_KEY = "default"

# Create engine
engine = create_engine(
    settings.database_url,
    echo=False,
    pool_pre_ping=True
)

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind=None):
    """Initialize database schema."""
    logger.info("Initializing database schema...")
    Base.metadata.create_all(bind=bind or engine)
    logger.info("Database schema created successfully")


@contextmanager
def get_session(session_factory: Optional[Callable[[], Session]] = None):
    """
    Get database session context manager.

    Usage:
        with get_session() as session:
            session.get(SettingsBlob, "default")
    """
    session = (session_factory or SessionLocal)()
    try:
        yield session
        session.commit()
    except Exception as e:
        session.rollback()
        logger.error(f"Database error: {e}")
        raise
    finally:
        session.close()


class SettingsStore:
    """
    Persist StrategyConfig as an opaque key/value blob.

    `load` merges whatever is stored over the defaults, so older blobs with
    missing keys still produce a complete config.
    """

    def __init__(self, session_factory: Optional[Callable[[], Session]] = None):
        self.session_factory = session_factory or SessionLocal

    def raw(self, key: str = DEFAULT_KEY) -> Optional[dict]:
        with get_session(self.session_factory) as session:
            row = session.get(SettingsBlob, key)
            return dict(row.value) if row is not None and row.value else None

    def load(self, key: str = DEFAULT_KEY) -> StrategyConfig:
        blob = self.raw(key) or {}
        return StrategyConfig.model_validate(blob)

    def save(self, config: StrategyConfig, key: str = DEFAULT_KEY):
        blob = config.to_blob()
        with get_session(self.session_factory) as session:
            row = session.get(SettingsBlob, key)
            if row is None:
                session.add(SettingsBlob(key=key, value=blob))
            else:
                row.value = blob
        logger.info(f"Saved settings '{key}'")

    def reset(self, key: str = DEFAULT_KEY) -> StrategyConfig:
        """Drop the stored blob and return the defaults."""
        with get_session(self.session_factory) as session:
            row = session.get(SettingsBlob, key)
            if row is not None:
                session.delete(row)
        logger.info(f"Reset settings '{key}' to defaults")
        return StrategyConfig()
