"""Persistence of individual events and their periodic per-user counts."""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from sqlalchemy import DateTime, func, literal, select, text
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import QueuePool

from . import schemas
from .database import build_session_factory, create_engine_from_url, session_scope
from .errors import StorageError
from .models import Base, Event, UserEventCount, utcnow

logger = logging.getLogger(__name__)

_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def _ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class EventRepository(ABC):
    """Read/write access to individual events."""

    @abstractmethod
    def insert_event(self, user_id: int, action: str, metadata_page: Optional[str]) -> int:
        # Insert a single event and return its generated id
        pass

    @abstractmethod
    def get_events(
        self, user_id: Optional[int], start: datetime, end: datetime
    ) -> List[schemas.EventOut]:
        # Return events in [start, end], newest first
        pass


class EventAggregation(ABC):
    """Roll-up of events into per-user counts."""

    @abstractmethod
    def aggregate_events(self, seconds: int, now: Optional[datetime] = None) -> int:
        # Upsert counts for the window ending at now and return the bucket count
        pass


class EventStore(EventRepository, EventAggregation):
    @abstractmethod
    def health(self) -> Dict[str, str]:
        pass

    @abstractmethod
    def close(self) -> None:
        pass


class SQLAlchemyEventStore(EventStore):
    """Event store backed by any SQLAlchemy engine with upsert support."""

    def __init__(self, engine: Engine, clock: Callable[[], datetime] = utcnow) -> None:
        self._engine = engine
        self._session_factory = build_session_factory(engine)
        self._clock = clock

    @classmethod
    def from_url(
        cls, database_url: str, clock: Callable[[], datetime] = utcnow
    ) -> "SQLAlchemyEventStore":
        engine = create_engine_from_url(database_url)
        Base.metadata.create_all(bind=engine)
        logger.info("Connected event store to %s", engine.url.render_as_string(hide_password=True))
        return cls(engine, clock=clock)

    @property
    def engine(self) -> Engine:
        return self._engine

    def insert_event(self, user_id: int, action: str, metadata_page: Optional[str]) -> int:
        event = Event(
            user_id=user_id,
            action=action,
            metadata_page=metadata_page,
            created_at=_ensure_utc(self._clock()),
        )
        try:
            with session_scope(self._session_factory) as session:
                session.add(event)
                session.flush()
                event_id = event.id
        except SQLAlchemyError as exc:
            logger.exception("Failed to insert event for user %s", user_id)
            raise StorageError("failed to insert event") from exc
        return event_id

    def get_events(
        self, user_id: Optional[int], start: datetime, end: datetime
    ) -> List[schemas.EventOut]:
        stmt = select(Event).where(
            Event.created_at >= _ensure_utc(start),
            Event.created_at <= _ensure_utc(end),
        )
        if user_id is not None:
            stmt = stmt.where(Event.user_id == user_id)
        # id breaks ties between identical timestamps
        stmt = stmt.order_by(Event.created_at.desc(), Event.id.desc())

        try:
            with self._session_factory() as session:
                rows = session.execute(stmt).scalars().all()
        except SQLAlchemyError as exc:
            logger.exception("Failed to query events")
            raise StorageError("failed to fetch events") from exc

        return [
            schemas.EventOut(
                id=row.id,
                user_id=row.user_id,
                action=row.action,
                metadata_page=row.metadata_page,
                created_at=_ensure_utc(row.created_at),
            )
            for row in rows
        ]

    def aggregate_events(self, seconds: int, now: Optional[datetime] = None) -> int:
        period_end = _ensure_utc(now if now is not None else self._clock())
        period_start = period_end - timedelta(seconds=seconds)

        dialect = self._engine.dialect.name
        insert = _DIALECT_INSERTS.get(dialect)
        if insert is None:
            raise StorageError(f"aggregation upsert is not supported on {dialect}")

        window = (
            select(
                Event.user_id,
                literal(period_start, DateTime(timezone=True)),
                literal(period_end, DateTime(timezone=True)),
                func.count(),
            )
            .where(Event.created_at >= period_start, Event.created_at < period_end)
            .group_by(Event.user_id)
        )
        stmt = insert(UserEventCount).from_select(
            ["user_id", "period_start", "period_end", "event_count"], window
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[UserEventCount.user_id, UserEventCount.period_start],
            set_={"event_count": stmt.excluded.event_count},
        )

        try:
            with self._engine.begin() as conn:
                result = conn.execute(stmt)
        except SQLAlchemyError as exc:
            raise StorageError(f"aggregation failed: {exc}") from exc

        buckets = max(result.rowcount or 0, 0)
        logger.debug(
            "Aggregated %d buckets for window %s - %s",
            buckets,
            period_start.isoformat(),
            period_end.isoformat(),
        )
        return buckets

    def get_event_counts(self, user_id: Optional[int] = None) -> List[schemas.UserEventCountOut]:
        stmt = select(UserEventCount)
        if user_id is not None:
            stmt = stmt.where(UserEventCount.user_id == user_id)
        stmt = stmt.order_by(UserEventCount.period_start.desc(), UserEventCount.user_id.asc())

        try:
            with self._session_factory() as session:
                rows = session.execute(stmt).scalars().all()
        except SQLAlchemyError as exc:
            logger.exception("Failed to query event counts")
            raise StorageError("failed to fetch event counts") from exc

        return [
            schemas.UserEventCountOut(
                user_id=row.user_id,
                period_start=_ensure_utc(row.period_start),
                period_end=_ensure_utc(row.period_end),
                event_count=row.event_count,
            )
            for row in rows
        ]

    def health(self) -> Dict[str, str]:
        stats: Dict[str, str] = {}
        try:
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            logger.error("Database health check failed: %s", exc)
            stats["status"] = "down"
            stats["error"] = f"db down: {exc}"
            return stats

        stats["status"] = "up"
        stats["message"] = "It's healthy"

        pool = self._engine.pool
        if isinstance(pool, QueuePool):
            in_use = pool.checkedout()
            idle = pool.checkedin()
            stats["open_connections"] = str(in_use + idle)
            stats["in_use"] = str(in_use)
            stats["idle"] = str(idle)
            if in_use >= pool.size():
                stats["message"] = "The database is experiencing heavy load."
        return stats

    def close(self) -> None:
        self._engine.dispose()
        logger.info("Disconnected event store from %s", self._engine.url.database)
