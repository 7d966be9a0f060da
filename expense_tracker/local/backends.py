"""
Key-value backends for the local store.

The local store keeps one JSON blob per collection, the same way the
browser client keeps one localStorage entry per collection.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Optional

from sqlalchemy import Column, DateTime, MetaData, String, Table, Text, delete, select

from expense_tracker.database import make_engine, utcnow

logger = logging.getLogger(__name__)


class KeyValueBackend(ABC):
    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        ...

    def close(self) -> None:
        pass


class MemoryBackend(KeyValueBackend):
    """Process-local blobs; what tests and throwaway clients use."""

    def __init__(self):
        self._data: dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value


_metadata = MetaData()

local_blobs = Table(
    "local_blobs",
    _metadata,
    Column("key", String, primary_key=True),
    Column("value", Text, nullable=False),
    Column("updated_at", DateTime, nullable=False),
)


class SqliteBackend(KeyValueBackend):
    """Durable blobs in a single SQLAlchemy table."""

    def __init__(self, url: str):
        self.engine = make_engine(url)
        _metadata.create_all(self.engine)
        logger.info("Local store backend ready: %s", url)

    def get(self, key: str) -> Optional[str]:
        with self.engine.connect() as conn:
            return conn.execute(
                select(local_blobs.c.value).where(local_blobs.c.key == key)
            ).scalar()

    def set(self, key: str, value: str) -> None:
        with self.engine.begin() as conn:
            conn.execute(delete(local_blobs).where(local_blobs.c.key == key))
            conn.execute(local_blobs.insert().values(key=key, value=value, updated_at=utcnow()))

    def close(self) -> None:
        self.engine.dispose()
