"""Storage access layer."""

from .exceptions import NotFoundError, RepositoryError, StorageReadError, StorageWriteError
from .key_value_repository import InMemoryKeyValueStore, KeyValueStore, SqlKeyValueStore

__all__ = [
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "NotFoundError",
    "RepositoryError",
    "SqlKeyValueStore",
    "StorageReadError",
    "StorageWriteError",
]
