"""Database models and session management."""

from .db import SettingsStore, get_session, init_db
from .models import Base, SettingsBlob

__all__ = [
    "get_session",
    "init_db",
    "SettingsStore",
    "Base",
    "SettingsBlob",
]
