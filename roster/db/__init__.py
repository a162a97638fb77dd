"""Database models, session management and key-value storage."""

from .models import Base, KeyValue
from .session import get_session, init_db, dispose_db
from .storage import KeyValueStorage, MemoryStorage, DatabaseStorage

__all__ = [
    "Base",
    "KeyValue",
    "get_session",
    "init_db",
    "dispose_db",
    "KeyValueStorage",
    "MemoryStorage",
    "DatabaseStorage",
]
