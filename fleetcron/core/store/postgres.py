# fleetcron/core/store/postgres.py
from __future__ import annotations
import asyncio
import hashlib
from datetime import datetime, timedelta
from typing import Iterable
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from fleetcron.core.models.config import PostgresConfig, TaskDefinition
from fleetcron.core.models.task_pg import Base, TaskModel, TaskHistoryModel  # noqa: F401
from fleetcron.core.models.tasks import ClaimedTask
from fleetcron.core.store.errors import StoreErrorCode, StoreOperationError
from fleetcron.core.store.sql import (
    HEALTH_CHECK_SQL,
    INSERT_HISTORY_SQL,
    PROVISION_TASK_SQL,
    RELEASE_OWNED_SQL,
    RELEASE_SQL,
    SCHEMA_ADVISORY_LOCK_SQL,
)
from fleetcron.core.types.status import HistoryStatus
from fleetcron.core.utils.url import mask_database_url
from fleetcron.core.logging import get_logger


class TaskStore:
    """
    PostgreSQL-backed store for the task table and its execution history.

    Owns the engine and session factory shared by the claim protocol, the
    reclaimer and the monitor. Every mutation here runs in its own short
    transaction; failures surface as StoreOperationError.
    """

    def __init__(self, config: PostgresConfig):
        self.config = config
        self.logger = get_logger('store')

        engine_cfg = self.config.model_dump(exclude={'database_url'}, exclude_none=True)
        self.async_engine = create_async_engine(self.config.database_url, **engine_cfg)
        self.session_factory = async_sessionmaker(
            self.async_engine, expire_on_commit=False
        )
        self._initialized = False
        self._init_lock = asyncio.Lock()

        self.logger.info(
            f'TaskStore initialized for {mask_database_url(self.config.database_url)}'
        )

    def _schema_advisory_key(self) -> int:
        """
        Stable 64-bit advisory lock key for schema creation.

        Derived from the database URL so that different clusters do not
        contend on the same key.
        """
        basis = self.config.database_url.encode('utf-8', errors='ignore')
        h = hashlib.sha256(b'fleetcron-schema:' + basis).digest()
        return int.from_bytes(h[:8], byteorder='big', signed=True)

    async def ensure_schema_initialized(self) -> None:
        """
        Create the task and history tables if they do not exist.

        Safe to call multiple times and from multiple processes; DDL is
        serialized across the fleet by a transaction-scoped advisory lock.
        """
        if self._initialized:
            return
        async with self._init_lock:
            if self._initialized:
                return
            try:
                async with self.async_engine.begin() as conn:
                    await conn.execute(
                        SCHEMA_ADVISORY_LOCK_SQL, {'key': self._schema_advisory_key()},
                    )
                    await conn.run_sync(Base.metadata.create_all)
            except Exception as e:
                raise StoreOperationError.wrap(StoreErrorCode.SCHEMA_INIT_FAILED, e) from e
            self._initialized = True
            self.logger.info('Schema initialized')

    async def append_history_async(
        self,
        task: ClaimedTask,
        *,
        completed_at: datetime,
        status: HistoryStatus,
        error: str | None,
    ) -> int:
        """
        Append one execution record for a claimed task.

        Returns the recorded duration in milliseconds.
        """
        duration_ms = max(0, int((completed_at - task.started_at) / timedelta(milliseconds=1)))
        try:
            async with self.session_factory() as session:
                await session.execute(
                    INSERT_HISTORY_SQL,
                    {
                        'task_id': task.id,
                        'task_name': task.name,
                        'server_id': task.server_id,
                        'started_at': task.started_at,
                        'completed_at': completed_at,
                        'duration_ms': duration_ms,
                        'status': status.value,
                        'error': error,
                    },
                )
                await session.commit()
        except Exception as e:
            raise StoreOperationError.wrap(StoreErrorCode.HISTORY_WRITE_FAILED, e) from e
        return duration_ms

    async def release_async(self, task: ClaimedTask, *, now: datetime) -> bool:
        """
        Release a claim after execution and reschedule to now + interval.

        Returns False when the claim was no longer ours (it was reclaimed,
        and possibly re-claimed by another server, while we were running).
        """
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    RELEASE_SQL,
                    {
                        'id': task.id,
                        'server_id': task.server_id,
                        'started_at': task.started_at,
                        'now': now,
                        'next_run_at': task.next_run_after(now),
                    },
                )
                await session.commit()
        except Exception as e:
            raise StoreOperationError.wrap(StoreErrorCode.RELEASE_FAILED, e) from e
        return getattr(result, 'rowcount', 0) > 0

    async def release_owned_async(self, server_id: str, *, now: datetime) -> list[str]:
        """
        Clear every claim still held by `server_id` and reschedule to now + interval.

        Used on clean shutdown so the fleet does not wait out the lease.
        Returns the names of released tasks.
        """
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    RELEASE_OWNED_SQL, {'server_id': server_id, 'now': now},
                )
                rows = result.fetchall()
                await session.commit()
        except Exception as e:
            raise StoreOperationError.wrap(StoreErrorCode.RELEASE_FAILED, e) from e
        return [row.name for row in rows]

    async def provision_async(
        self, definitions: Iterable[TaskDefinition], *, now: datetime,
    ) -> list[str]:
        """
        Insert task rows that do not exist yet (matched by name).

        Existing rows are left untouched, nothing is ever deleted.
        Returns the names of newly inserted tasks.
        """
        inserted: list[str] = []
        try:
            async with self.session_factory() as session:
                for definition in definitions:
                    result = await session.execute(
                        PROVISION_TASK_SQL,
                        {
                            'name': definition.name,
                            'interval_seconds': definition.interval_seconds,
                            'function_name': definition.function_name,
                            'next_run_at': definition.first_run_at or now,
                        },
                    )
                    if result.first() is not None:
                        inserted.append(definition.name)
                await session.commit()
        except Exception as e:
            raise StoreOperationError.wrap(StoreErrorCode.PROVISION_FAILED, e) from e
        return inserted

    async def ping_async(self) -> None:
        """SELECT 1 against the database."""
        async with self.session_factory() as session:
            await session.execute(HEALTH_CHECK_SQL)

    async def close_async(self) -> None:
        try:
            await self.async_engine.dispose()
        except Exception as e:
            raise StoreOperationError.wrap(StoreErrorCode.CLOSE_FAILED, e) from e
        self.logger.info('TaskStore closed')
