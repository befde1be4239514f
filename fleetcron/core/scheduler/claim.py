# fleetcron/core/scheduler/claim.py
from __future__ import annotations
from datetime import datetime
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from fleetcron.core.models.tasks import ClaimedTask, ServerIdentity
from fleetcron.core.store.errors import StoreErrorCode, StoreOperationError
from fleetcron.core.store.sql import CLAIM_SELECT_SQL, CLAIM_UPDATE_SQL
from fleetcron.core.logging import get_logger

logger = get_logger('claim')


class TaskClaimer:
    """
    Claims at most one due task per call for this server.

    Probe and conditional update share one SERIALIZABLE transaction, so two
    servers polling at the same instant cannot both win the same row: the
    probe skips rows another claimer has locked, and the update re-checks
    the unclaimed predicate before writing the claim tag.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        identity: ServerIdentity,
    ):
        self.session_factory = session_factory
        self.identity = identity

    async def try_claim_one(self, now: datetime) -> Optional[ClaimedTask]:
        """
        Claim the earliest due, unclaimed task.

        Args:
            now: Current time in UTC; becomes the claim's started_at.

        Returns:
            The claimed task, or None when nothing is due or the race was lost.

        Raises:
            StoreOperationError: CLAIM_FAILED; the transaction was rolled back
                and no row was modified.
        """
        try:
            async with self.session_factory() as session:
                await session.connection(
                    execution_options={'isolation_level': 'SERIALIZABLE'},
                )
                probe = await session.execute(CLAIM_SELECT_SQL, {'now': now})
                candidate = probe.fetchone()
                if candidate is None:
                    await session.commit()
                    return None

                res = await session.execute(
                    CLAIM_UPDATE_SQL,
                    {
                        'id': candidate[0],
                        'server_id': self.identity.server_id,
                        'now': now,
                    },
                )
                row = res.fetchone()
                await session.commit()
        except Exception as e:
            raise StoreOperationError.wrap(StoreErrorCode.CLAIM_FAILED, e) from e

        if row is None:
            logger.debug(f'Task {candidate[0]} was claimed elsewhere between probe and update')
            return None

        claimed = ClaimedTask.from_row(dict(zip(res.keys(), row)))
        logger.info(
            f"Claimed task '{claimed.name}' (id={claimed.id}) "
            f'due at {claimed.next_run_at.isoformat()}'
        )
        return claimed
