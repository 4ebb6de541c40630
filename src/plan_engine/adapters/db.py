"""SQLAlchemy engine and tables for the local embedded store."""

from datetime import UTC, datetime

from sqlalchemy import DateTime, Engine, Integer, String, Text, create_engine
from sqlalchemy.orm import (
    Mapped,
    Session,
    declarative_base,
    mapped_column,
    sessionmaker,
)

Base = declarative_base()


class PlanCacheRow(Base):
    """Persistent tier of the plan cache: one current record per user."""

    __tablename__ = "plan_cache"

    user_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    computed_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    payload: Mapped[str] = mapped_column(Text, nullable=False)


class PendingOperationRow(Base):
    """Journal entry for a mutation awaiting replay."""

    __tablename__ = "pending_operations"

    sequence: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(36), unique=True, nullable=False)
    user_id: Mapped[str] = mapped_column(String(36), index=True, nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    payload: Mapped[str] = mapped_column(Text, nullable=False)
    enqueued_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(16), index=True, nullable=False)
    next_attempt_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)


def create_session_factory(database_url: str) -> sessionmaker[Session]:
    """Create the engine, ensure tables exist and return a session factory."""
    connect_args = (
        {"check_same_thread": False} if database_url.startswith("sqlite") else {}
    )
    engine: Engine = create_engine(
        database_url, pool_pre_ping=True, connect_args=connect_args
    )
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def to_storage_time(value: datetime) -> datetime:
    """Normalize to naive UTC for storage."""
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def from_storage_time(value: datetime) -> datetime:
    """Attach UTC to a stored naive timestamp."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value
