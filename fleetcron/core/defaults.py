"""Shared default constants for fleetcron."""

# How often each process probes the task table for a due task.
DEFAULT_POLL_INTERVAL_MS: int = 1_000  # 1 second

# How often each process sweeps for claims that outlived the lease.
DEFAULT_RECLAIM_INTERVAL_MS: int = 60_000  # 1 minute

# Claim lease. A task claimed longer ago than this is presumed abandoned by a
# crashed holder and force-released. Must exceed the slowest legitimate run.
DEFAULT_STUCK_THRESHOLD_MS: int = 300_000  # 5 minutes

# Trailing window of the monitoring stats aggregate.
DEFAULT_STATS_WINDOW_HOURS: int = 24

# Recent history rows attached to a single-task detail view.
TASK_DETAIL_HISTORY_LIMIT: int = 10

# Default page size of the history query.
DEFAULT_HISTORY_PAGE_SIZE: int = 100
