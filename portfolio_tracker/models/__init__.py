"""SQLAlchemy ORM models."""

from .key_value_entry import KeyValueEntry

__all__ = ["KeyValueEntry"]
