"""Key-value entry model - one persisted blob per key."""

from datetime import datetime

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from portfolio_tracker.database import Base


class KeyValueEntry(Base):
    """Serialized blob stored under a string key."""

    __tablename__ = "kv_entries"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    value: Mapped[str] = mapped_column(Text)
    updated_at: Mapped[datetime] = mapped_column(server_default=func.now(), onupdate=func.now())

    def __repr__(self) -> str:
        return f"<KeyValueEntry({self.key}, {len(self.value)} chars)>"
