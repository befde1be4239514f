# fleetcron/core/scheduler/reclaimer.py
from __future__ import annotations
from datetime import datetime, timedelta
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from fleetcron.core.store.errors import StoreErrorCode, StoreOperationError
from fleetcron.core.store.sql import RECLAIM_STUCK_SQL
from fleetcron.core.logging import get_logger

logger = get_logger('reclaimer')


class StuckTaskReclaimer:
    """
    Clears claims whose holder has held them for at least the stuck threshold.

    A reclaimed task is rescheduled to now + interval and gets no history
    row: no execution completed. The original holder, if still alive, will
    find its release guarded out (claim lost) when it finishes.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        stuck_threshold: timedelta,
    ):
        self.session_factory = session_factory
        self.stuck_threshold = stuck_threshold

    async def sweep(self, now: datetime) -> int:
        """
        Reclaim every task claimed at or before now - stuck_threshold.

        Returns:
            Number of tasks reclaimed.

        Raises:
            StoreOperationError: RECLAIM_FAILED; nothing was modified.
        """
        cutoff = now - self.stuck_threshold
        try:
            async with self.session_factory() as session:
                res = await session.execute(
                    RECLAIM_STUCK_SQL, {'now': now, 'cutoff': cutoff},
                )
                rows = res.fetchall()
                await session.commit()
        except Exception as e:
            raise StoreOperationError.wrap(StoreErrorCode.RECLAIM_FAILED, e) from e

        for row in rows:
            logger.warning(
                f"Reclaimed stuck task '{row.name}' (id={row.id}) "
                f'held by server {row.former_server_id} since '
                f'{row.former_started_at.isoformat()}; next run at {row.next_run_at.isoformat()}'
            )
        if rows:
            logger.info(f'Reclaimed {len(rows)} stuck task(s)')
        return len(rows)
