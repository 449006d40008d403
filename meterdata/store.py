# meterdata/store.py
import logging
from itertools import islice
from typing import Iterable, Iterator

from sqlalchemy import func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from .config import Settings
from .db import make_engine, make_session_factory
from .errors import StoreError
from .models import Base, FetchedReading, Reading

logger = logging.getLogger(__name__)

BATCH_SIZE = 1000


def _chunks(items: Iterable, size: int):
    it = iter(items)
    while True:
        chunk = list(islice(it, size))
        if not chunk:
            return
        yield chunk


def _insert_ignoring_conflicts(engine: Engine):
    dialect = engine.dialect.name
    if dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    elif dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    else:
        raise StoreError(f"Unsupported database dialect: {dialect}")
    return insert(Reading.__table__).on_conflict_do_nothing(index_elements=["device_id", "timestamp"])


class Store:
    """Long-format reading table. Any database failure surfaces as StoreError."""

    def __init__(self, engine: Engine, batch_size: int = BATCH_SIZE):
        self.engine = engine
        self.batch_size = batch_size
        self._session_factory = make_session_factory(engine)

    @classmethod
    def from_settings(cls, settings: Settings) -> "Store":
        return cls(make_engine(settings.db_url, echo=settings.sql_echo))

    def ensure_schema(self) -> None:
        try:
            Base.metadata.create_all(bind=self.engine)
        except SQLAlchemyError as e:
            raise StoreError(f"Could not create schema: {e}") from e

    def upsert_many(self, readings: Iterable[FetchedReading]) -> int:
        """
        Insert readings, one transaction per batch, silently skipping any
        (device_id, timestamp) already stored. Returns the number of new rows.
        """
        stmt = _insert_ignoring_conflicts(self.engine)
        written = 0
        for batch in _chunks(readings, self.batch_size):
            written += self._write_batch(stmt, batch)
        return written

    def _write_batch(self, stmt, batch: list[FetchedReading]) -> int:
        inserted = 0
        try:
            with self._session_factory() as session, session.begin():
                for reading in batch:
                    inserted += session.execute(stmt, reading.as_row()).rowcount
        except SQLAlchemyError as e:
            raise StoreError(f"Writing a batch of {len(batch)} readings failed: {e}") from e
        logger.debug("Committed batch: %d new of %d", inserted, len(batch))
        return inserted

    def _scalar(self, stmt):
        try:
            with self._session_factory() as session:
                return session.execute(stmt).scalar()
        except SQLAlchemyError as e:
            raise StoreError(f"Query failed: {e}") from e

    def latest_timestamp_across(self, device_ids: Iterable[str], before: int | None = None) -> int | None:
        """
        Oldest of the newest: each device's latest timestamp, then the minimum of those.
        Devices without any stored reading do not take part.
        """
        ids = sorted(set(device_ids))
        if not ids:
            return None
        newest = (
            select(Reading.device_id, func.max(Reading.timestamp).label("newest"))
            .where(Reading.device_id.in_(ids))
            .group_by(Reading.device_id)
        )
        if before is not None:
            newest = newest.where(Reading.timestamp < before)
        newest = newest.subquery()
        return self._scalar(select(func.min(newest.c.newest)))

    def global_latest_timestamp(self) -> int | None:
        return self._scalar(select(func.max(Reading.timestamp)))

    def count(self) -> int:
        return self._scalar(select(func.count()).select_from(Reading))

    def device_ids_in_window(self, start: int, end: int) -> list[str]:
        stmt = (
            select(Reading.device_id)
            .where(Reading.timestamp >= start, Reading.timestamp < end)
            .distinct()
            .order_by(Reading.device_id)
        )
        try:
            with self._session_factory() as session:
                return list(session.execute(stmt).scalars())
        except SQLAlchemyError as e:
            raise StoreError(f"Query failed: {e}") from e

    def iter_window(self, start: int, end: int) -> Iterator[tuple]:
        """(timestamp, device_id, exported, imported) rows over [start, end), by timestamp then device."""
        stmt = (
            select(Reading.timestamp, Reading.device_id, Reading.energy_exported_wh, Reading.energy_imported_wh)
            .where(Reading.timestamp >= start, Reading.timestamp < end)
            .order_by(Reading.timestamp, Reading.device_id)
            .execution_options(yield_per=self.batch_size)
        )
        try:
            with self._session_factory() as session:
                for row in session.execute(stmt):
                    yield tuple(row)
        except SQLAlchemyError as e:
            raise StoreError(f"Query failed: {e}") from e
