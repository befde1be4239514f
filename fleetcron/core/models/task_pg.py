from __future__ import annotations
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import (
    String,
    Text,
    Boolean,
    DateTime,
    Integer,
    Index,
    CheckConstraint,
    Enum as SQLAlchemyEnum,
    false as sa_false,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from fleetcron.core.types.status import HistoryStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for PostgreSQL models"""

    pass


class TaskModel(Base):
    """
    SQLAlchemy model for the schedulable tasks shared by every server.

    - id: int # autoincrement
    - name: str # unique human-readable name
    - interval_seconds: int # re-run cadence
    - function_name: str # key into the function registry
    - is_running: bool # whether some server currently holds the claim
    - server_id: str # claim holder, set iff is_running
    - started_at: datetime # claim time, set iff is_running
    - last_run_at: datetime # when the most recent execution was released
    - next_run_at: datetime # when the task becomes eligible for claiming
    - created_at: datetime
    - updated_at: datetime

    Rows are provisioned externally and never created or deleted by the scheduler.
    """

    __tablename__ = 'fleetcron_tasks'
    __table_args__ = (
        # A task is never half-claimed
        CheckConstraint(
            '(is_running AND server_id IS NOT NULL AND started_at IS NOT NULL) '
            'OR (NOT is_running AND server_id IS NULL AND started_at IS NULL)',
            name='ck_fleetcron_tasks_claim_state',
        ),
        CheckConstraint('interval_seconds > 0', name='ck_fleetcron_tasks_interval'),
        Index('idx_fleetcron_tasks_due', 'is_running', 'next_run_at'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    interval_seconds: Mapped[int] = mapped_column(Integer, nullable=False)
    function_name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Claim state
    is_running: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=sa_false(),
    )
    server_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    started_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Schedule
    last_run_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    next_run_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    # Metadata
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text('NOW()'),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text('NOW()'),
        onupdate=_utcnow,
    )


class TaskHistoryModel(Base):
    """Append-only audit of execution attempts.

    One row per executed attempt, written by the server that ran it.
    A forced reclaim writes nothing here since no execution completed.

    Retention: pruning is left to operators; the scheduler never deletes rows.
    """

    __tablename__ = 'fleetcron_task_history'
    __table_args__ = (
        CheckConstraint(
            "(status = 'completed' AND error IS NULL) "
            "OR (status = 'failed' AND error IS NOT NULL)",
            name='ck_fleetcron_task_history_error',
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    task_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    task_name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    server_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    completed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
    duration_ms: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[HistoryStatus] = mapped_column(
        SQLAlchemyEnum(
            HistoryStatus,
            native_enum=False,
            length=16,
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
        index=True,
    )
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text('NOW()'),
    )
