from __future__ import annotations

import os
import socket
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Protocol

from fleetcron.core.types.status import HistoryStatus, TaskState


class Clock(Protocol):
    """Source of the current time. Must return timezone-aware UTC datetimes."""

    def now(self) -> datetime: ...


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class ServerIdentity:
    """
    Identity of one scheduler process.

    `server_id` is the opaque claim tag written to task rows; it is never parsed.
    hostname/pid are informational only.
    """

    server_id: str
    hostname: str
    pid: int
    started_at: datetime

    @classmethod
    def generate(cls, clock: Clock | None = None) -> ServerIdentity:
        return cls(
            server_id=str(uuid.uuid4()),
            hostname=socket.gethostname(),
            pid=os.getpid(),
            started_at=(clock or SystemClock()).now(),
        )


@dataclass(frozen=True, slots=True)
class ClaimedTask:
    """Transient copy of a task row as returned by a successful claim."""

    id: int
    name: str
    function_name: str
    interval_seconds: int
    server_id: str
    started_at: datetime
    next_run_at: datetime

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> ClaimedTask:
        return cls(
            id=row['id'],
            name=row['name'],
            function_name=row['function_name'],
            interval_seconds=row['interval_seconds'],
            server_id=row['server_id'],
            started_at=row['started_at'],
            next_run_at=row['next_run_at'],
        )

    def next_run_after(self, released_at: datetime) -> datetime:
        return released_at + timedelta(seconds=self.interval_seconds)


@dataclass(frozen=True, slots=True)
class ExecutionOutcome:
    """What one executor invocation did. Returned for logging and tests."""

    task_id: int
    task_name: str
    status: HistoryStatus
    error: str | None
    duration_ms: int
    history_written: bool
    released: bool


@dataclass
class HistoryRecord:
    """One row of the execution history."""

    id: int
    task_id: int
    task_name: str
    server_id: str
    started_at: datetime
    completed_at: datetime
    duration_ms: int
    status: HistoryStatus
    error: str | None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> HistoryRecord:
        return cls(
            id=row['id'],
            task_id=row['task_id'],
            task_name=row['task_name'],
            server_id=row['server_id'],
            started_at=row['started_at'],
            completed_at=row['completed_at'],
            duration_ms=row['duration_ms'],
            status=HistoryStatus(row['status']),
            error=row['error'],
        )


@dataclass
class TaskSnapshot:
    """Read-only view of a task row with its derived monitoring state."""

    id: int
    name: str
    interval_seconds: int
    function_name: str
    state: TaskState
    server_id: str | None
    started_at: datetime | None
    last_run_at: datetime | None
    next_run_at: datetime
    running_time_ms: int | None
    time_until_next_run_ms: int | None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class TaskDetail:
    """A task snapshot together with its most recent executions."""

    task: TaskSnapshot
    recent_history: list[HistoryRecord] = field(default_factory=list)


@dataclass
class HistoryPage:
    records: list[HistoryRecord]
    total: int
    limit: int
    offset: int

    @property
    def has_more(self) -> bool:
        return self.offset + self.limit < self.total


@dataclass
class TaskPerformance:
    task_name: str
    avg_duration_ms: int
    execution_count: int


@dataclass
class TaskStats:
    """Aggregate over a trailing window (see TaskMonitor.get_stats)."""

    total_tasks: int
    running_tasks: int
    waiting_tasks: int
    recent_executions: int
    successful_executions: int
    failed_executions: int
    task_performance: list[TaskPerformance]
    active_servers: list[str]
    window: timedelta

    @property
    def success_rate(self) -> float:
        """Percentage of successful executions in the window, 0.0 when none ran."""
        if self.recent_executions == 0:
            return 0.0
        return self.successful_executions / self.recent_executions * 100.0

    @property
    def success_rate_formatted(self) -> str:
        if self.recent_executions == 0:
            return '0%'
        return f'{self.success_rate:.2f}%'
