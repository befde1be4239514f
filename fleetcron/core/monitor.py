# fleetcron/core/monitor.py
"""
Read-only monitoring queries over the task table and execution history.

Nothing here takes locks or writes; results are point-in-time snapshots
and may be stale by the time they are rendered.
"""

from __future__ import annotations
from datetime import datetime, timedelta
from typing import Any, Mapping, Optional
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from fleetcron.core.defaults import (
    DEFAULT_HISTORY_PAGE_SIZE,
    DEFAULT_STATS_WINDOW_HOURS,
    TASK_DETAIL_HISTORY_LIMIT,
)
from fleetcron.core.models.tasks import (
    Clock,
    HistoryPage,
    HistoryRecord,
    SystemClock,
    TaskDetail,
    TaskPerformance,
    TaskSnapshot,
    TaskStats,
)
from fleetcron.core.store.errors import StoreErrorCode, StoreOperationError
from fleetcron.core.store.sql import (
    ACTIVE_SERVERS_SQL,
    COUNT_HISTORY_SQL,
    COUNT_RECENT_EXECUTIONS_SQL,
    COUNT_TASKS_SQL,
    SELECT_HISTORY_PAGE_SQL,
    SELECT_RECENT_HISTORY_FOR_TASK_SQL,
    SELECT_TASK_BY_ID_SQL,
    SELECT_TASKS_SQL,
    TASK_PERFORMANCE_SQL,
)
from fleetcron.core.types.status import HistoryStatus, TaskState


def _ms(delta: timedelta) -> int:
    return int(delta.total_seconds() * 1000)


def format_duration(milliseconds: float) -> str:
    """Render milliseconds as '1h 2m 3s', '2m 3s' or '3s' (whole seconds, floored)."""
    seconds = int(milliseconds // 1000)
    minutes = seconds // 60
    hours = minutes // 60
    if hours > 0:
        return f'{hours}h {minutes % 60}m {seconds % 60}s'
    if minutes > 0:
        return f'{minutes}m {seconds % 60}s'
    return f'{seconds}s'


def derive_task_state(
    is_running: bool, started_at: Optional[datetime], next_run_at: datetime, now: datetime,
) -> TaskState:
    if is_running and started_at is not None:
        return TaskState.RUNNING
    if next_run_at > now:
        return TaskState.SCHEDULED
    return TaskState.WAITING


def snapshot_from_row(row: Mapping[str, Any], now: datetime) -> TaskSnapshot:
    state = derive_task_state(
        row['is_running'], row['started_at'], row['next_run_at'], now,
    )
    running_time_ms = (
        _ms(now - row['started_at']) if state is TaskState.RUNNING else None
    )
    time_until_next_run_ms = (
        _ms(row['next_run_at'] - now) if state is TaskState.SCHEDULED else None
    )
    return TaskSnapshot(
        id=row['id'],
        name=row['name'],
        interval_seconds=row['interval_seconds'],
        function_name=row['function_name'],
        state=state,
        server_id=row['server_id'],
        started_at=row['started_at'],
        last_run_at=row['last_run_at'],
        next_run_at=row['next_run_at'],
        running_time_ms=running_time_ms,
        time_until_next_run_ms=time_until_next_run_ms,
        created_at=row.get('created_at'),
        updated_at=row.get('updated_at'),
    )


class TaskMonitor:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Optional[Clock] = None,
    ):
        self.session_factory = session_factory
        self.clock: Clock = clock or SystemClock()

    async def list_tasks(self) -> list[TaskSnapshot]:
        """All tasks ordered by name, each with its derived state."""
        try:
            async with self.session_factory() as session:
                res = await session.execute(SELECT_TASKS_SQL)
                rows = res.mappings().all()
        except Exception as e:
            raise StoreOperationError.wrap(StoreErrorCode.MONITORING_QUERY_FAILED, e) from e
        now = self.clock.now()
        return [snapshot_from_row(row, now) for row in rows]

    async def get_task(self, task_id: int) -> Optional[TaskDetail]:
        """One task plus its most recent executions, or None if no such task."""
        try:
            async with self.session_factory() as session:
                res = await session.execute(SELECT_TASK_BY_ID_SQL, {'id': task_id})
                row = res.mappings().first()
                if row is None:
                    return None
                hist = await session.execute(
                    SELECT_RECENT_HISTORY_FOR_TASK_SQL,
                    {'task_id': task_id, 'limit': TASK_DETAIL_HISTORY_LIMIT},
                )
                history_rows = hist.mappings().all()
        except Exception as e:
            raise StoreOperationError.wrap(StoreErrorCode.MONITORING_QUERY_FAILED, e) from e
        return TaskDetail(
            task=snapshot_from_row(row, self.clock.now()),
            recent_history=[HistoryRecord.from_row(r) for r in history_rows],
        )

    async def query_history(
        self,
        *,
        task_name: Optional[str] = None,
        server_id: Optional[str] = None,
        status: Optional[HistoryStatus] = None,
        limit: int = DEFAULT_HISTORY_PAGE_SIZE,
        offset: int = 0,
    ) -> HistoryPage:
        """
        Page through execution history, newest first.

        Args:
            task_name: Only records for this task name.
            server_id: Only records written by this server.
            status: Only records with this outcome.
            limit: Page size (must be positive).
            offset: Number of records to skip (must be non-negative).
        """
        if limit <= 0:
            raise ValueError('limit must be positive')
        if offset < 0:
            raise ValueError('offset must be non-negative')

        filters = {
            'task_name': task_name,
            'server_id': server_id,
            'status': status.value if status is not None else None,
        }
        try:
            async with self.session_factory() as session:
                res = await session.execute(
                    SELECT_HISTORY_PAGE_SQL, {**filters, 'limit': limit, 'offset': offset},
                )
                rows = res.mappings().all()
                count_res = await session.execute(COUNT_HISTORY_SQL, filters)
                total = int(count_res.scalar_one())
        except Exception as e:
            raise StoreOperationError.wrap(StoreErrorCode.MONITORING_QUERY_FAILED, e) from e
        return HistoryPage(
            records=[HistoryRecord.from_row(r) for r in rows],
            total=total,
            limit=limit,
            offset=offset,
        )

    async def get_stats(
        self, window: timedelta = timedelta(hours=DEFAULT_STATS_WINDOW_HOURS),
    ) -> TaskStats:
        """Task counts plus execution aggregates over the trailing window."""
        since = self.clock.now() - window
        try:
            async with self.session_factory() as session:
                counts = (await session.execute(COUNT_TASKS_SQL)).mappings().one()
                recent = (
                    await session.execute(COUNT_RECENT_EXECUTIONS_SQL, {'since': since})
                ).mappings().one()
                perf_rows = (
                    await session.execute(TASK_PERFORMANCE_SQL, {'since': since})
                ).mappings().all()
                server_rows = (
                    await session.execute(ACTIVE_SERVERS_SQL, {'since': since})
                ).fetchall()
        except Exception as e:
            raise StoreOperationError.wrap(StoreErrorCode.MONITORING_QUERY_FAILED, e) from e

        return TaskStats(
            total_tasks=int(counts['total']),
            running_tasks=int(counts['running']),
            waiting_tasks=int(counts['waiting']),
            recent_executions=int(recent['total']),
            successful_executions=int(recent['completed']),
            failed_executions=int(recent['failed']),
            task_performance=[
                TaskPerformance(
                    task_name=r['task_name'],
                    avg_duration_ms=round(float(r['avg_duration_ms'])),
                    execution_count=int(r['execution_count']),
                )
                for r in perf_rows
            ],
            active_servers=[r[0] for r in server_rows],
            window=window,
        )
