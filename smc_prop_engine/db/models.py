"""
SQLAlchemy database models for the SMC prop engine.
"""

from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, String
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow():
    return datetime.now(timezone.utc)


class SettingsBlob(Base):
    """Opaque key/value settings record (camelCase strategy settings)."""
    __tablename__ = 'settings_blobs'

    key = Column(String, primary_key=True)
    value = Column(JSON, nullable=False, default=dict)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<SettingsBlob(key={self.key}, updated_at={self.updated_at})>"
