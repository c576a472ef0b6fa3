"""Key-value storage for persisted blobs (holdings, price cache, history).

The refresh cycle only ever needs get(key) -> blob-or-None and
set(key, blob). Read failures surface as StorageReadError and write
failures as StorageWriteError, so an unreadable key never looks absent.
"""

from typing import Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from portfolio_tracker.models import KeyValueEntry
from portfolio_tracker.services.repositories.exceptions import StorageReadError, StorageWriteError


class KeyValueStore(Protocol):
    """Opaque get/set-by-key storage port."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...


class InMemoryKeyValueStore:
    """Dict-backed store with an optional size quota.

    When ``max_chars`` is set, a write that would push the total stored size
    past it fails with StorageWriteError, like a full browser storage area.
    """

    def __init__(self, max_chars: int | None = None) -> None:
        self.max_chars = max_chars
        self._data: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if self.max_chars is not None:
            used = sum(len(v) for k, v in self._data.items() if k != key)
            if used + len(value) > self.max_chars:
                raise StorageWriteError(key, "storage quota exceeded")
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class SqlKeyValueStore:
    """Key-value store persisted in the kv_entries table."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def get(self, key: str) -> str | None:
        """Find the blob stored under ``key``, or None if absent.

        Raises:
            StorageReadError: If the database could not be queried
        """
        try:
            with self._session_factory() as db:
                entry = db.get(KeyValueEntry, key)
                return entry.value if entry else None
        except SQLAlchemyError as e:
            raise StorageReadError(key, str(e)) from e

    def set(self, key: str, value: str) -> None:
        """Insert or replace the blob stored under ``key``.

        Raises:
            StorageWriteError: If the write could not be committed
        """
        with self._session_factory() as db:
            try:
                entry = db.get(KeyValueEntry, key)
                if entry is None:
                    db.add(KeyValueEntry(key=key, value=value))
                else:
                    entry.value = value
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise StorageWriteError(key, str(e)) from e

    def delete(self, key: str) -> None:
        with self._session_factory() as db:
            try:
                entry = db.get(KeyValueEntry, key)
                if entry is not None:
                    db.delete(entry)
                    db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise StorageWriteError(key, str(e)) from e
