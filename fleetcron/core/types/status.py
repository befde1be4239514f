# core/types/status.py
"""
Core enums used throughout fleetcron.
This module should not import from other fleetcron modules.
"""

from enum import Enum


class HistoryStatus(str, Enum):
    """Outcome of one execution attempt, as recorded in task history"""

    COMPLETED = 'completed'  # The task function returned normally.
    FAILED = 'failed'  # The task function raised, or could not be resolved.


class TaskState(str, Enum):
    """Derived, read-only status of a task row for monitoring"""

    RUNNING = 'running'  # Claimed by some server and not yet released.
    SCHEDULED = 'scheduled'  # Idle, next_run_at is in the future.
    WAITING = 'waiting'  # Idle and due, waiting for a server to claim it.


class SchedulerState(str, Enum):
    """Lifecycle of a scheduler process"""

    STOPPED = 'stopped'
    STARTING = 'starting'
    RUNNING = 'running'
    STOPPING = 'stopping'
