"""Typed errors for task store operations.

Two error systems exist side by side:

1. ``FleetcronError`` (``fleetcron.core.errors``) -- startup and validation
   failures. Raised once, at a process boundary, and rendered Rust-style.

2. ``StoreOperationError`` (this module) -- runtime failures talking to
   PostgreSQL (claim, release, history append, sweep, monitoring queries).
   Carries a ``StoreErrorCode`` and a ``retryable`` flag.

Where they are handled:

* **Store layer** -- wraps driver/SQLAlchemy exceptions into
  ``StoreOperationError`` with ``retryable`` classified by
  ``is_retryable_connection_error``. Every mutation runs in its own
  transaction, so a raised error never leaves a partial write behind.

* **Executor** -- catches history-append and release failures so the
  release step always runs; logs them and reports them in
  ``ExecutionOutcome``.

* **Scheduler loops** -- catch everything at the tick boundary and log it
  (WARNING when retryable, ERROR otherwise). No store error ends a loop.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from fleetcron.core.utils.db import is_retryable_connection_error


class StoreErrorCode(str, Enum):
    """Categorized store operation failure codes."""

    SCHEMA_INIT_FAILED = 'SCHEMA_INIT_FAILED'
    CLAIM_FAILED = 'CLAIM_FAILED'
    RELEASE_FAILED = 'RELEASE_FAILED'
    HISTORY_WRITE_FAILED = 'HISTORY_WRITE_FAILED'
    RECLAIM_FAILED = 'RECLAIM_FAILED'
    PROVISION_FAILED = 'PROVISION_FAILED'
    MONITORING_QUERY_FAILED = 'MONITORING_QUERY_FAILED'
    CLOSE_FAILED = 'CLOSE_FAILED'


@dataclass(eq=False)
class StoreOperationError(Exception):
    """Raised when a task store operation fails.

    Fields:
        code: which operation category failed
        message: human-readable description
        retryable: whether the next tick may reasonably succeed
        exception: the original cause (if any)
    """

    code: StoreErrorCode
    message: str
    retryable: bool
    exception: BaseException | None = None

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def __str__(self) -> str:
        return f'{self.code.value}: {self.message}'

    @classmethod
    def wrap(cls, code: StoreErrorCode, exc: BaseException) -> StoreOperationError:
        return cls(
            code=code,
            message=f'{type(exc).__name__}: {exc}',
            retryable=is_retryable_connection_error(exc),
            exception=exc,
        )
