"""SQLAlchemy models for events and per-user event counts."""
from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import BigInteger, Column, DateTime, Integer, Text, func
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Event(Base):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(BigInteger, index=True, nullable=False)
    action = Column(Text, nullable=False)
    metadata_page = Column(Text, nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
        index=True,
    )


class UserEventCount(Base):
    __tablename__ = "user_event_counts"

    user_id = Column(BigInteger, primary_key=True, autoincrement=False)
    period_start = Column(DateTime(timezone=True), primary_key=True)
    period_end = Column(DateTime(timezone=True), nullable=False)
    event_count = Column(BigInteger, nullable=False)
