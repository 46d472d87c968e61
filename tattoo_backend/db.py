"""
Record store for tattoo submissions: SQLAlchemy-backed and in-memory.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Protocol

from sqlalchemy import JSON, Column, DateTime, Float, String, create_engine, delete, select, text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from tattoo_backend.errors import PersistenceError

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class TattooRecord:
    image_ref: str
    price: float
    duration: float
    tags: list[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=utc_now)
    id: Optional[str] = None

    def as_dict(self, duration_unit: str = "hours") -> dict:
        return {
            "id": self.id,
            "imageRef": self.image_ref,
            "price": self.price,
            "duration": self.duration,
            "durationUnit": duration_unit,
            "tags": list(self.tags),
            "createdAt": self.created_at.isoformat(),
        }


class RecordStore(Protocol):
    """Interface for tattoo record persistence."""

    def connect(self) -> None:
        ...

    def insert(self, record: TattooRecord) -> str:
        ...

    def list_all(self) -> list[TattooRecord]:
        ...

    def delete_by_id(self, record_id: str) -> bool:
        ...


class InMemoryRecordStore:
    """Simple in-memory record store for development and tests."""

    def __init__(self):
        self.records: Dict[str, TattooRecord] = {}

    def connect(self) -> None:
        return None

    def insert(self, record: TattooRecord) -> str:
        record_id = uuid.uuid4().hex
        self.records[record_id] = replace(record, id=record_id, tags=list(record.tags))
        return record_id

    def list_all(self) -> list[TattooRecord]:
        return sorted(self.records.values(), key=lambda r: r.created_at, reverse=True)

    def delete_by_id(self, record_id: str) -> bool:
        return self.records.pop(record_id, None) is not None

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.records.clear()


Base = declarative_base()


class TattooRow(Base):
    __tablename__ = "tattoos"

    id = Column(String, primary_key=True)
    image_ref = Column(String, nullable=False)
    price = Column(Float, nullable=False)
    duration = Column(Float, nullable=False)
    tags = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _is_memory_sqlite(database_url: str) -> bool:
    url = make_url(database_url)
    return url.get_backend_name() == "sqlite" and url.database in (None, "", ":memory:")


class SqlRecordStore:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).

    The engine is created lazily by SQLAlchemy; nothing touches the database
    until connect() or the first query.
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlRecordStore")
        engine_kwargs = {}
        if _is_memory_sqlite(database_url):
            # Every pooled connection would otherwise open its own empty database.
            engine_kwargs = {
                "poolclass": StaticPool,
                "connect_args": {"check_same_thread": False},
            }
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
            **engine_kwargs,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        self._schema_ready = False
        self._connect_lock = threading.Lock()

    def connect(self) -> None:
        with self._connect_lock:
            self._connect()

    def _connect(self) -> None:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            Base.metadata.create_all(self.engine)
        except SQLAlchemyError as exc:
            raise PersistenceError("Could not connect to the database", cause=exc) from exc
        self._schema_ready = True

    def _ensure_schema(self) -> None:
        if self._schema_ready:
            return
        with self._connect_lock:
            # The startup thread may have finished while this one waited.
            if not self._schema_ready:
                self._connect()

    def _to_record(self, row: TattooRow) -> TattooRecord:
        return TattooRecord(
            id=row.id,
            image_ref=row.image_ref,
            price=row.price,
            duration=row.duration,
            tags=list(row.tags or []),
            created_at=_as_utc(row.created_at),
        )

    def insert(self, record: TattooRecord) -> str:
        self._ensure_schema()
        record_id = uuid.uuid4().hex
        try:
            with self.Session() as session:
                session.add(
                    TattooRow(
                        id=record_id,
                        image_ref=record.image_ref,
                        price=record.price,
                        duration=record.duration,
                        tags=list(record.tags),
                        created_at=record.created_at,
                    )
                )
                session.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError("Failed to save tattoo record", cause=exc) from exc
        return record_id

    def list_all(self) -> list[TattooRecord]:
        self._ensure_schema()
        try:
            with self.Session() as session:
                rows = session.scalars(
                    select(TattooRow).order_by(TattooRow.created_at.desc())
                ).all()
                return [self._to_record(row) for row in rows]
        except SQLAlchemyError as exc:
            raise PersistenceError("Failed to fetch tattoo records", cause=exc) from exc

    def delete_by_id(self, record_id: str) -> bool:
        self._ensure_schema()
        try:
            with self.Session() as session:
                result = session.execute(delete(TattooRow).where(TattooRow.id == record_id))
                session.commit()
                return result.rowcount > 0
        except SQLAlchemyError as exc:
            raise PersistenceError("Failed to delete tattoo record", cause=exc) from exc


def backoff_delay(attempt: int, base_delay: float = 1.0, max_delay: float = 30.0) -> float:
    return min((2 ** attempt) * base_delay, max_delay)


def connect_with_retry(
    store: RecordStore,
    *,
    max_retries: int = 5,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """
    Connect the record store at startup, retrying with exponential backoff.

    Makes up to max_retries + 1 attempts. Returns False once they are exhausted;
    requests will keep failing with PersistenceError until the database is reachable.
    """
    for attempt in range(max_retries + 1):
        logger.info(
            "Attempting to connect to the database (attempt %d of %d)",
            attempt + 1,
            max_retries + 1,
        )
        try:
            store.connect()
        except PersistenceError as exc:
            logger.error("Database connection error: %s", exc.cause or exc)
            if attempt >= max_retries:
                break
            delay = backoff_delay(attempt, base_delay, max_delay)
            logger.info("Retrying connection in %.1fs", delay)
            sleep(delay)
        else:
            logger.info("Connected to the database")
            return True
    logger.error(
        "Maximum retry attempts reached. Please check DATABASE_URL and the database server."
    )
    return False
