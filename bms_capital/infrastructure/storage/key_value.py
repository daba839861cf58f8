"""Durable key-value stores used for loan application drafts"""

from typing import Dict, Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from bms_capital.domain.exceptions import StorageError, StorageQuotaExceededError
from bms_capital.infrastructure.storage.models import KeyValueEntry


class KeyValueStore(Protocol):
    """get/set/remove over string keys and values"""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def remove(self, key: str) -> None:
        ...


class InMemoryKeyValueStore:
    """
    Process-local store.

    An optional byte quota mimics browser storage limits: a write that would
    push the total size of all values past the quota raises
    StorageQuotaExceededError and leaves the store unchanged.
    """

    def __init__(self, quota_bytes: Optional[int] = None):
        self._data: Dict[str, str] = {}
        self.quota_bytes = quota_bytes

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if self.quota_bytes is not None:
            used = sum(len(v.encode("utf-8")) for k, v in self._data.items() if k != key)
            if used + len(value.encode("utf-8")) > self.quota_bytes:
                raise StorageQuotaExceededError(f"Storage quota of {self.quota_bytes} bytes exceeded")
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class SqlKeyValueStore:
    """Store backed by the kv_entry table"""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def get(self, key: str) -> Optional[str]:
        try:
            with self.session_factory() as db:
                entry = db.get(KeyValueEntry, key)
                return entry.value if entry else None
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read {key}: {e}") from e

    def set(self, key: str, value: str) -> None:
        self._write(key, lambda db: db.merge(KeyValueEntry(key=key, value=value)))

    def remove(self, key: str) -> None:
        def delete(db: Session) -> None:
            entry = db.get(KeyValueEntry, key)
            if entry:
                db.delete(entry)

        self._write(key, delete)

    def _write(self, key: str, operation) -> None:
        db = self.session_factory()
        try:
            operation(db)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageError(f"Failed to write {key}: {e}") from e
        finally:
            db.close()
