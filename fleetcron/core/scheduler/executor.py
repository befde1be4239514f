# fleetcron/core/scheduler/executor.py
from __future__ import annotations
import asyncio
import inspect
from typing import Optional
from fleetcron.core.models.tasks import ClaimedTask, Clock, ExecutionOutcome, ServerIdentity
from fleetcron.core.registry.functions import FunctionRegistry, NotRegistered
from fleetcron.core.store.errors import StoreOperationError
from fleetcron.core.store.postgres import TaskStore
from fleetcron.core.types.status import HistoryStatus
from fleetcron.core.logging import get_logger

logger = get_logger('executor')


def _error_message(exc: BaseException) -> str:
    message = str(exc)
    return message if message else type(exc).__name__


class TaskExecutor:
    """
    Runs one claimed task to completion, records it, and releases the claim.

    The release step runs regardless of how the function or the history
    append ended. A release that matches no row means the claim was taken
    away by the reclaimer while the function was running.
    """

    def __init__(
        self,
        store: TaskStore,
        registry: FunctionRegistry,
        identity: ServerIdentity,
        clock: Clock,
    ):
        self.store = store
        self.registry = registry
        self.identity = identity
        self.clock = clock

    async def _invoke(self, claimed: ClaimedTask) -> None:
        fn = self.registry[claimed.function_name]
        if inspect.iscoroutinefunction(fn):
            await fn()
            return
        result = await asyncio.to_thread(fn)
        if inspect.isawaitable(result):
            await result

    async def execute(self, claimed: ClaimedTask) -> ExecutionOutcome:
        status = HistoryStatus.COMPLETED
        error: Optional[str] = None
        history_written = False
        released = False
        duration_ms = 0

        try:
            try:
                logger.info(f"Running task '{claimed.name}' -> {claimed.function_name}()")
                await self._invoke(claimed)
            except NotRegistered as e:
                status = HistoryStatus.FAILED
                error = e.message
                logger.error(f"Task '{claimed.name}' failed: {error}")
            except Exception as e:
                status = HistoryStatus.FAILED
                error = _error_message(e)
                logger.error(f"Task '{claimed.name}' failed: {error}", exc_info=True)

            completed_at = self.clock.now()
            duration_ms = max(
                0, int((completed_at - claimed.started_at).total_seconds() * 1000)
            )
            try:
                duration_ms = await self.store.append_history_async(
                    claimed, completed_at=completed_at, status=status, error=error,
                )
                history_written = True
            except StoreOperationError as e:
                logger.error(
                    f"Failed to record history for task '{claimed.name}': {e}"
                )
        finally:
            try:
                released = await self.store.release_async(claimed, now=self.clock.now())
                if not released:
                    logger.warning(
                        f"Claim lost for task '{claimed.name}' (id={claimed.id}); "
                        'it was reclaimed while running, release skipped'
                    )
            except StoreOperationError as e:
                logger.error(
                    f"Failed to release task '{claimed.name}' (id={claimed.id}): {e}; "
                    'the reclaimer will clear it once the stuck threshold passes'
                )

        if status is HistoryStatus.COMPLETED:
            logger.info(f"Task '{claimed.name}' completed in {duration_ms}ms")

        return ExecutionOutcome(
            task_id=claimed.id,
            task_name=claimed.name,
            status=status,
            error=error,
            duration_ms=duration_ms,
            history_written=history_written,
            released=released,
        )
