"""Relational store for completed generations.

Each successful request (when persistence is enabled) adds one row to the
``generations`` table.  Rows are never updated or deleted by the
application.  Any SQLAlchemy URL works; SQLite is used in tests and for
local development.

The engine (and its connection pool) is shared per URL through
:func:`get_record_store`, so concurrent requests reuse connections instead
of opening a new pool each time.
"""

from __future__ import annotations

import logging
import threading
from typing import Any

from sqlalchemy import Column, DateTime, Integer, String, Text, create_engine, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker

from fluxdrop.core.errors import PersistenceError

logger = logging.getLogger(__name__)

Base = declarative_base()


class GenerationRecord(Base):
    __tablename__ = "generations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    prompt = Column(Text)
    width = Column(Integer)
    height = Column(Integer)
    steps = Column(Integer)
    n = Column(Integer)
    image_url = Column(String(2048), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "prompt": self.prompt,
            "width": self.width,
            "height": self.height,
            "steps": self.steps,
            "n": self.n,
            "image_url": self.image_url,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class RecordStore:
    """Insert and list :class:`GenerationRecord` rows.

    The table is created on first use rather than at construction, so
    building a store never touches the database.

    Args:
        database_url: SQLAlchemy connection URL.
    """

    def __init__(self, database_url: str):
        self.database_url = database_url
        # The 'check_same_thread' argument is only needed for SQLite.
        engine_args = {"connect_args": {"check_same_thread": False}} if database_url.startswith("sqlite") else {}
        try:
            self.engine = create_engine(database_url, **engine_args)
        except (SQLAlchemyError, ImportError) as e:
            # Malformed URL or missing database driver.
            logger.error(f"Cannot create database engine: {e}")
            raise PersistenceError(str(e)) from e
        self.Session = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)
        self._schema_ready = False
        self._schema_lock = threading.Lock()

    def _ensure_schema(self) -> None:
        """Create the ``generations`` table if it doesn't exist."""
        if self._schema_ready:
            return
        with self._schema_lock:
            if not self._schema_ready:
                Base.metadata.create_all(self.engine)
                self._schema_ready = True

    def add(
        self,
        *,
        prompt: Any,
        width: Any,
        height: Any,
        steps: Any,
        n: Any,
        image_url: str,
    ) -> int:
        """Insert one record in a single transaction.

        Returns:
            The generated row id.

        Raises:
            PersistenceError: On connectivity or constraint failure.
        """
        try:
            self._ensure_schema()
            with self.Session.begin() as session:
                record = GenerationRecord(
                    prompt=prompt,
                    width=width,
                    height=height,
                    steps=steps,
                    n=n,
                    image_url=image_url,
                )
                session.add(record)
                session.flush()
                record_id = record.id
        except SQLAlchemyError as e:
            logger.error(f"Error saving generation record for {image_url}: {e}")
            raise PersistenceError(str(e)) from e

        logger.info(f"Saved generation record {record_id}")
        return record_id

    def count(self) -> int:
        """Return the number of stored records."""
        try:
            self._ensure_schema()
            with self.Session() as session:
                return session.scalar(select(func.count()).select_from(GenerationRecord)) or 0
        except SQLAlchemyError as e:
            logger.error(f"Error counting generation records: {e}")
            raise PersistenceError(str(e)) from e

    def list_recent(self, offset: int = 0, limit: int = 20) -> list[dict]:
        """Return records newest first.

        Args:
            offset: Number of records to skip.
            limit: Maximum number of records to return.
        """
        try:
            self._ensure_schema()
            with self.Session() as session:
                rows = session.scalars(
                    select(GenerationRecord).order_by(GenerationRecord.id.desc()).offset(offset).limit(limit)
                ).all()
                return [row.to_dict() for row in rows]
        except SQLAlchemyError as e:
            logger.error(f"Error listing generation records: {e}")
            raise PersistenceError(str(e)) from e

    def dispose(self) -> None:
        """Close every pooled connection."""
        self.engine.dispose()


_stores: dict[str, RecordStore] = {}
_stores_lock = threading.Lock()


def get_record_store(database_url: str) -> RecordStore:
    """Return the shared :class:`RecordStore` for *database_url*."""
    with _stores_lock:
        store = _stores.get(database_url)
        if store is None:
            logger.info("Initialising generation record store")
            store = RecordStore(database_url)
            _stores[database_url] = store
        return store


def dispose_record_stores() -> None:
    """Dispose every shared store and forget it.

    Called on application shutdown so pooled connections are closed.
    """
    with _stores_lock:
        stores = list(_stores.values())
        _stores.clear()
    for store in stores:
        store.dispose()
    if stores:
        logger.info(f"Disposed {len(stores)} generation record store(s)")
