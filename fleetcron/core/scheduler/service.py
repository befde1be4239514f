# fleetcron/core/scheduler/service.py
from __future__ import annotations
import asyncio
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING, Optional
from fleetcron.core.models.tasks import (
    ClaimedTask,
    Clock,
    ExecutionOutcome,
    ServerIdentity,
    SystemClock,
)
from fleetcron.core.scheduler.claim import TaskClaimer
from fleetcron.core.scheduler.executor import TaskExecutor
from fleetcron.core.scheduler.reclaimer import StuckTaskReclaimer
from fleetcron.core.scheduler.ticker import Ticker
from fleetcron.core.store.errors import StoreOperationError
from fleetcron.core.store.postgres import TaskStore
from fleetcron.core.types.status import HistoryStatus, SchedulerState
from fleetcron.core.logging import get_logger

if TYPE_CHECKING:
    from fleetcron.core.app import Fleetcron

logger = get_logger('scheduler')


@dataclass
class SchedulerRuntime:
    """Mutable per-process runtime state of a Scheduler."""

    state: SchedulerState = SchedulerState.STOPPED
    in_flight: Optional[asyncio.Task[ExecutionOutcome]] = None
    claims: int = 0
    completed: int = 0
    failed: int = 0
    reclaimed: int = 0
    poll_errors: int = 0
    sweep_errors: int = 0

    @property
    def busy(self) -> bool:
        return self.in_flight is not None and not self.in_flight.done()


class Scheduler:
    """
    One scheduler process in the fleet.

    Responsibilities:
    1. Poll for a due task and claim it (at most one execution in flight)
    2. Run the claimed function, record history, release and reschedule
    3. Periodically reclaim tasks stuck on a dead or hung holder
    4. On clean shutdown, release anything still claimed by this server

    Coordination with other processes happens only through the task table.
    """

    def __init__(
        self,
        app: Fleetcron,
        *,
        store: Optional[TaskStore] = None,
        identity: Optional[ServerIdentity] = None,
        clock: Optional[Clock] = None,
    ):
        self.app = app
        self.config = app.config.scheduler
        self.clock: Clock = clock or SystemClock()
        self.identity = identity or ServerIdentity.generate(self.clock)
        self._owns_store = store is None
        self.store = store or app.get_store()

        self.claimer = TaskClaimer(self.store.session_factory, self.identity)
        self.executor = TaskExecutor(
            self.store, app.registry, self.identity, self.clock,
        )
        self.reclaimer = StuckTaskReclaimer(
            self.store.session_factory,
            timedelta(milliseconds=self.config.stuck_threshold_ms),
        )
        self.poll_ticker = Ticker(
            'poll',
            self.config.poll_interval_seconds,
            self.poll_once,
            fire_immediately=True,
        )
        self.reclaim_ticker = Ticker(
            'reclaim', self.config.reclaim_interval_seconds, self.sweep_once,
        )

        self.runtime = SchedulerRuntime()
        self._stop_requested = asyncio.Event()

        logger.info(
            f'Scheduler initialized as server {self.identity.server_id} '
            f'({self.identity.hostname}, pid {self.identity.pid}), '
            f'poll={self.config.poll_interval_ms}ms, '
            f'reclaim={self.config.reclaim_interval_ms}ms, '
            f'stuck_threshold={self.config.stuck_threshold_ms}ms'
        )

    @property
    def state(self) -> SchedulerState:
        return self.runtime.state

    async def start(self) -> None:
        """Ensure the schema and start the poll and reclaim tickers."""
        if self.runtime.state is not SchedulerState.STOPPED:
            return
        self.runtime.state = SchedulerState.STARTING

        if self.config.ensure_schema_on_start:
            try:
                await self.store.ensure_schema_initialized()
            except Exception:
                self.runtime.state = SchedulerState.STOPPED
                raise

        self.runtime.state = SchedulerState.RUNNING
        self.poll_ticker.start()
        self.reclaim_ticker.start()
        logger.info(
            f'Scheduler started with {len(self.app.registry)} registered function(s)'
        )

    async def stop(self) -> None:
        """
        Stop ticking, let the in-flight execution finish, then release leftovers.

        The in-flight function is never cancelled; stop() waits for it.
        """
        if self.runtime.state is not SchedulerState.RUNNING:
            return
        self.runtime.state = SchedulerState.STOPPING
        logger.info('Scheduler stopping')

        await self.poll_ticker.stop()
        await self.reclaim_ticker.stop()

        in_flight = self.runtime.in_flight
        if in_flight is not None and not in_flight.done():
            logger.info('Waiting for in-flight execution to finish')
        if in_flight is not None:
            await asyncio.gather(in_flight, return_exceptions=True)
            self.runtime.in_flight = None

        if self.config.release_on_stop:
            try:
                released = await self.store.release_owned_async(
                    self.identity.server_id, now=self.clock.now(),
                )
                if released:
                    logger.info(f'Released {len(released)} task(s) on shutdown: {released}')
            except StoreOperationError as e:
                logger.error(f'Failed to release owned tasks on shutdown: {e}')

        self.runtime.state = SchedulerState.STOPPED
        logger.info('Scheduler stopped')

    def request_stop(self) -> None:
        """Request run_forever() to stop gracefully."""
        self._stop_requested.set()

    async def run_forever(self) -> None:
        """Run until request_stop() is called, then shut down cleanly."""
        logger.info('Starting scheduler loop')
        try:
            await self.start()
            await self._stop_requested.wait()
        finally:
            await self.stop()
            if self._owns_store:
                await self.store.close_async()

    async def poll_once(self) -> None:
        """Claim one due task and spawn its execution, unless one is in flight."""
        if self.runtime.state is not SchedulerState.RUNNING or self.runtime.busy:
            return

        try:
            claimed = await self.claimer.try_claim_one(self.clock.now())
        except StoreOperationError as e:
            self.runtime.poll_errors += 1
            self._log_store_error('Claim', e)
            return

        if claimed is None:
            return
        self.runtime.claims += 1
        # Separate task so stopping the poll ticker never cancels an execution
        self.runtime.in_flight = asyncio.create_task(
            self._execute(claimed), name=f'execute-{claimed.name}',
        )

    async def sweep_once(self) -> None:
        try:
            reclaimed = await self.reclaimer.sweep(self.clock.now())
        except StoreOperationError as e:
            self.runtime.sweep_errors += 1
            self._log_store_error('Reclaim sweep', e)
            return
        self.runtime.reclaimed += reclaimed

    async def _execute(self, claimed: ClaimedTask) -> ExecutionOutcome:
        outcome = await self.executor.execute(claimed)
        if outcome.status is HistoryStatus.COMPLETED:
            self.runtime.completed += 1
        else:
            self.runtime.failed += 1
        return outcome

    def _log_store_error(self, operation: str, error: StoreOperationError) -> None:
        if error.retryable:
            logger.warning(f'{operation} failed (retryable): {error}')
        else:
            logger.error(f'{operation} failed: {error}')
