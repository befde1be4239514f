# fleetcron/core/app.py
from __future__ import annotations
import asyncio
import importlib
import os
from typing import TYPE_CHECKING, Callable, Optional, TypeVar
from fleetcron.core.models.config import AppConfig
from fleetcron.core.models.tasks import Clock, ServerIdentity
from fleetcron.core.registry.functions import FunctionRegistry, NotRegistered, TaskFunction
from fleetcron.core.store.postgres import TaskStore
from fleetcron.core.monitor import TaskMonitor
from fleetcron.core.errors import ConfigurationError, ErrorCode, FleetcronError, SourceLocation
from fleetcron.core.utils.imports import import_by_path
from fleetcron.core.utils.url import mask_database_url
from fleetcron.core.logging import get_logger

if TYPE_CHECKING:
    from fleetcron.core.scheduler.service import Scheduler

_F = TypeVar('_F', bound=TaskFunction)


def _no_location(error: FleetcronError) -> FleetcronError:
    """Drop the auto-detected location; it points into the CLI, not user code."""
    error.location = None
    return error


class Fleetcron:
    """
    A fleetcron application: configuration plus the functions tasks may run.

    Every process in the fleet builds the same app (same module) so that
    any of them can execute any task it claims.
    """

    def __init__(self, config: AppConfig):
        self.config = config
        self.registry = FunctionRegistry()
        self._store: Optional[TaskStore] = None
        self._function_modules: list[str] = []
        self.logger = get_logger('app')
        self.logger.info(
            f'fleetcron app initialized with {len(config.tasks)} configured task(s)'
        )

    def function(self, name: Optional[str] = None) -> Callable[[_F], _F]:
        """
        Register a zero-argument function that task rows can refer to by name.

            @app.function('processData')
            async def process_data() -> None: ...

        The name defaults to the function's __name__.
        """

        def decorator(fn: _F) -> _F:
            fn_name = name or getattr(fn, '__name__', None)
            if not fn_name:
                raise ConfigurationError(
                    message='cannot infer function name',
                    code=ErrorCode.FUNCTION_NOT_CALLABLE,
                    help_text="pass an explicit name: @app.function('name')",
                )
            location = SourceLocation.from_function(fn)
            source = location.format_short() if location else None
            self.registry.register(fn, name=fn_name, source=source)
            return fn

        return decorator

    def list_functions(self) -> list[str]:
        return self.registry.names()

    def discover_functions(self, modules: list[str]) -> None:
        """
        Record modules that register task functions, imported by the CLI.

        Accepts dotted module paths or .py file paths.
        """
        self._function_modules = list(modules)
        if modules:
            self.logger.info(f'Registered {len(modules)} function module(s) for discovery')

    def import_function_modules(self) -> list[str]:
        imported: list[str] = []
        for module in self._function_modules:
            if module.endswith('.py') or os.path.sep in module:
                abs_path = os.path.realpath(module)
                if not os.path.exists(abs_path):
                    self.logger.warning(f'Function module not found: {module}')
                    continue
                import_by_path(abs_path)
                imported.append(abs_path)
            else:
                importlib.import_module(module)
                imported.append(module)
        return imported

    def get_store(self) -> TaskStore:
        """Get the task store shared by everything this app creates."""
        if self._store is None:
            self._store = TaskStore(self.config.database)
        return self._store

    def create_scheduler(
        self,
        *,
        identity: Optional[ServerIdentity] = None,
        clock: Optional[Clock] = None,
    ) -> Scheduler:
        from fleetcron.core.scheduler.service import Scheduler

        return Scheduler(self, identity=identity, clock=clock)

    def monitor(self, clock: Optional[Clock] = None) -> TaskMonitor:
        return TaskMonitor(self.get_store().session_factory, clock)

    def check(self, *, live: bool = False) -> list[FleetcronError]:
        """Run validation phases and return every error found.

        Phase 1: Config, already validated by pydantic at construction.
        Phase 2: Function modules import cleanly.
        Phase 3: Every configured task's function_name is registered.
        Phase 4 (if live): Database answers SELECT 1.

        Returns:
            All errors found; empty means the app is ready to run.
        """
        errors: list[FleetcronError] = []

        errors.extend(self._check_function_imports())
        if errors:
            return errors

        errors.extend(self._check_registry_coverage())
        if errors:
            return errors

        if live:
            errors.extend(self._check_database_connectivity())
        return errors

    def _check_function_imports(self) -> list[FleetcronError]:
        errors: list[FleetcronError] = []
        for module in self._function_modules:
            try:
                import_by_path(module)
            except FleetcronError as exc:
                errors.append(exc)
            except Exception as exc:
                errors.append(
                    _no_location(
                        ConfigurationError(
                            message=f'failed to import function module: {module}',
                            code=ErrorCode.CLI_INVALID_ARGS,
                            notes=[f'{type(exc).__name__}: {exc}'],
                            help_text='fix the import error or the module path passed to discover_functions()',
                        )
                    )
                )
        return errors

    def _check_registry_coverage(self) -> list[FleetcronError]:
        errors: list[FleetcronError] = []
        for definition in self.config.tasks:
            if definition.function_name not in self.registry:
                err = NotRegistered(definition.function_name)
                err.with_note(f"referenced by task '{definition.name}'")
                errors.append(_no_location(err))
        return errors

    def _check_database_connectivity(self) -> list[FleetcronError]:
        """SELECT 1 through a short-lived TaskStore, independent of the app's store."""
        errors: list[FleetcronError] = []
        try:
            health_store = TaskStore(self.config.database)

            async def _test_connection() -> None:
                try:
                    await health_store.ping_async()
                finally:
                    await health_store.close_async()

            asyncio.run(_test_connection())
        except Exception as exc:
            errors.append(
                _no_location(
                    ConfigurationError(
                        message='database connectivity check failed',
                        code=ErrorCode.DATABASE_UNREACHABLE,
                        notes=[
                            f'url: {mask_database_url(self.config.database.database_url)}',
                            str(exc),
                        ],
                        help_text='check database_url in PostgresConfig',
                    )
                )
            )
        return errors
