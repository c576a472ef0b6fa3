"""Repository-specific exceptions.

These exceptions provide semantic meaning for storage errors,
separating them from general database errors.
"""


class RepositoryError(Exception):
    """Base exception for repository operations."""


class StorageReadError(RepositoryError):
    """A stored blob could not be read. Distinct from an absent key."""

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Failed to read {key}: {reason}")


class StorageWriteError(RepositoryError):
    """A blob could not be written (including storage quota exhaustion)."""

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Failed to write {key}: {reason}")


class NotFoundError(RepositoryError):
    """Entity not found."""

    def __init__(self, entity_type: str, identifier: str | int):
        self.entity_type = entity_type
        self.identifier = identifier
        super().__init__(f"{entity_type} not found: {identifier}")
