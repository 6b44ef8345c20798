from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import JSON, Boolean, Column, DateTime, String, func, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Field, Session, SQLModel, create_engine, select

from .errors import UniqueConstraintViolation

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; everything stored here is UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def normalize_email(email: str) -> str:
    return email.strip().lower()


class Subscriber(SQLModel, table=True):
    __tablename__ = "newsletter_subscriptions"

    id: int | None = Field(default=None, primary_key=True)
    email: str = Field(
        sa_column=Column(String(254), unique=True, index=True, nullable=False)
    )
    is_active: bool = Field(
        default=True, sa_column=Column(Boolean, nullable=False, index=True)
    )
    subscribed_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    preferences: dict[str, Any] = Field(
        default_factory=dict, sa_column=Column(JSON, nullable=False)
    )
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )


class SubscriptionStore:
    """Keyed subscriber storage backed by one SQLAlchemy engine.

    Owned by the application lifespan: construct, ``init_db()``, and
    ``close()`` on shutdown. The unique index on ``email`` is the only
    duplicate guard that holds under concurrent writers.
    """

    def __init__(self, url: str) -> None:
        connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
        self.url = url
        self.engine: Engine = create_engine(url, echo=False, connect_args=connect_args)

    def init_db(self) -> None:
        SQLModel.metadata.create_all(self.engine)

    def close(self) -> None:
        self.engine.dispose()

    def _session(self) -> Session:
        return Session(self.engine, expire_on_commit=False)

    def ping(self) -> bool:
        try:
            with self.engine.connect() as connection:
                connection.execute(text("SELECT 1"))
        except SQLAlchemyError:
            logger.warning("database ping failed", exc_info=True)
            return False
        return True

    def find_by_email(self, normalized_email: str) -> Optional[Subscriber]:
        with self._session() as session:
            return session.exec(
                select(Subscriber).where(Subscriber.email == normalized_email)
            ).first()

    def email_exists(self, email: str) -> bool:
        return self.find_by_email(normalize_email(email)) is not None

    def create(self, record: Subscriber) -> Subscriber:
        with self._session() as session:
            session.add(record)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise UniqueConstraintViolation(record.email) from exc
            return record

    def _set_active(self, email: str, active: bool) -> Optional[Subscriber]:
        with self._session() as session:
            record = session.exec(
                select(Subscriber).where(Subscriber.email == normalize_email(email))
            ).first()
            if record is None:
                return None
            record.is_active = active
            record.updated_at = utcnow()
            session.add(record)
            session.commit()
            return record

    def deactivate(self, email: str) -> Optional[Subscriber]:
        return self._set_active(email, False)

    def reactivate(self, email: str) -> Optional[Subscriber]:
        return self._set_active(email, True)

    def count(self, active_only: bool = False) -> int:
        with self._session() as session:
            stmt = select(func.count()).select_from(Subscriber)
            if active_only:
                stmt = stmt.where(Subscriber.is_active == True)  # noqa: E712
            return int(session.exec(stmt).one())
