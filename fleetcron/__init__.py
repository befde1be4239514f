"""fleetcron - fleet-wide interval task scheduling on PostgreSQL"""

# Install Rust-style error handler on import
from .core.errors import install_error_handler as _install_error_handler

_install_error_handler()

from .core.app import Fleetcron
from .core.models.config import AppConfig, PostgresConfig, SchedulerConfig, TaskDefinition
from .core.models.tasks import (
    ClaimedTask,
    Clock,
    ExecutionOutcome,
    HistoryPage,
    HistoryRecord,
    ServerIdentity,
    SystemClock,
    TaskDetail,
    TaskPerformance,
    TaskSnapshot,
    TaskStats,
)
from .core.types.status import HistoryStatus, SchedulerState, TaskState
from .core.registry.functions import (
    DuplicateFunctionNameError,
    FunctionRegistry,
    NotRegistered,
)
from .core.errors import (
    ConfigurationError,
    ErrorCode,
    FleetcronError,
    FunctionDefinitionError,
    RegistryError,
)
from .core.store.errors import StoreErrorCode, StoreOperationError
from .core.store.postgres import TaskStore
from .core.monitor import TaskMonitor, format_duration
from .core.scheduler import Scheduler, SchedulerRuntime

__all__ = [
    # Core
    'Fleetcron',
    'AppConfig',
    'PostgresConfig',
    'SchedulerConfig',
    'TaskDefinition',
    'Scheduler',
    'SchedulerRuntime',
    'TaskStore',
    'TaskMonitor',
    'format_duration',
    # Value types
    'ClaimedTask',
    'Clock',
    'SystemClock',
    'ServerIdentity',
    'ExecutionOutcome',
    'HistoryPage',
    'HistoryRecord',
    'TaskDetail',
    'TaskPerformance',
    'TaskSnapshot',
    'TaskStats',
    'HistoryStatus',
    'SchedulerState',
    'TaskState',
    # Registry
    'FunctionRegistry',
    'NotRegistered',
    'DuplicateFunctionNameError',
    # Errors
    'FleetcronError',
    'ConfigurationError',
    'RegistryError',
    'FunctionDefinitionError',
    'ErrorCode',
    'StoreErrorCode',
    'StoreOperationError',
]
