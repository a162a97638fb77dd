"""Flat key-value storage backends.

Every store keeps its whole collection under one key (``users``, ``tasks``,
``taskTemplates``, ``user``) as a JSON document. Two backends share the same
interface: an in-memory one for tests and demos, and one backed by the
``kv_store`` table.
"""

import json
import logging
import threading
from typing import Any, Dict, List, Optional

from .models import KeyValue
from .session import get_session

logger = logging.getLogger(__name__)


class KeyValueStorage:
    """Base class for JSON key-value storage.

    Subclasses implement the raw string accessors. ``lock`` is held by the
    services around each read-modify-write cycle.
    """

    def __init__(self):
        self.lock = threading.RLock()

    def get_raw(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set_raw(self, key: str, value: str) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> bool:
        raise NotImplementedError

    def keys(self) -> List[str]:
        raise NotImplementedError

    def contains(self, key: str) -> bool:
        return self.get_raw(key) is not None

    def load(self, key: str, default: Any = None) -> Any:
        """Load and decode the JSON document stored under ``key``."""
        raw = self.get_raw(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Discarding unreadable value stored under '{key}'")
            return default

    def save(self, key: str, value: Any) -> None:
        """Encode ``value`` as JSON and store it under ``key``."""
        self.set_raw(key, json.dumps(value, ensure_ascii=False))


class MemoryStorage(KeyValueStorage):
    """Process-local storage; values are still round-tripped through JSON."""

    def __init__(self, initial: Dict[str, Any] = None):
        super().__init__()
        self._data: Dict[str, str] = {}
        for key, value in (initial or {}).items():
            self.save(key, value)

    def get_raw(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_raw(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    def keys(self) -> List[str]:
        return sorted(self._data)


class DatabaseStorage(KeyValueStorage):
    """Storage backed by the ``kv_store`` table. Call ``init_db()`` first."""

    def get_raw(self, key: str) -> Optional[str]:
        with get_session() as session:
            row = session.query(KeyValue).filter(KeyValue.key == key).first()
            return row.value if row else None

    def set_raw(self, key: str, value: str) -> None:
        with get_session() as session:
            row = session.query(KeyValue).filter(KeyValue.key == key).first()
            if row:
                row.value = value
            else:
                session.add(KeyValue(key=key, value=value))

    def delete(self, key: str) -> bool:
        with get_session() as session:
            row = session.query(KeyValue).filter(KeyValue.key == key).first()
            if row:
                session.delete(row)
                return True
            return False

    def keys(self) -> List[str]:
        with get_session() as session:
            return [row.key for row in session.query(KeyValue).order_by(KeyValue.key).all()]
