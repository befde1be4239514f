# fleetcron/core/cli.py
"""
CLI for the fleetcron scheduler process, provisioning and monitoring.

Module path resolution follows Celery's approach:
1. User provides dotted module path: `fleetcron run myproject.cron:app`
2. User is responsible for PYTHONPATH / running from correct directory
3. Convenience: if cwd has pyproject.toml, we add cwd to sys.path
"""

import argparse
import asyncio
import importlib
import logging
import os
import signal
import sys
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, TypeVar

from fleetcron.core.app import Fleetcron
from fleetcron.core.codec.serde import dumps_json, to_jsonable
from fleetcron.core.errors import ConfigurationError, ErrorCode, FleetcronError, ValidationReport
from fleetcron.core.logging import configure_level, get_logger
from fleetcron.core.monitor import format_duration
from fleetcron.core.models.tasks import TaskSnapshot
from fleetcron.core.store.errors import StoreOperationError
from fleetcron.core.types.status import HistoryStatus
from fleetcron.core.utils.imports import import_file_path, setup_sys_path_from_cwd

T = TypeVar('T')

LOGLEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']


def _resolve_module_argument(args: argparse.Namespace) -> str:
    """Return module path from --module or positional, error if missing."""
    module_path = getattr(args, 'module', None) or getattr(args, 'module_pos', None)
    if not module_path:
        raise ConfigurationError(
            message='module path is required',
            code=ErrorCode.CLI_INVALID_ARGS,
            notes=['no --module flag or positional module argument provided'],
            help_text=(
                'provide module path in one of these formats:\n'
                '  fleetcron run myproject.cron:app  (recommended)\n'
                '  fleetcron run myproject/cron.py:app  (file path)\n'
                '  fleetcron run myproject.cron  (auto-discover app variable)'
            ),
        )
    return module_path


def _parse_locator(locator: str) -> tuple[str, str | None]:
    """
    Parse a module locator into (module_path, attribute_name).

    - "myproject.cron:app" -> ("myproject.cron", "app")
    - "myproject.cron" -> ("myproject.cron", None)
    - "/path/to/cron.py:app" -> ("/path/to/cron.py", "app")
    """
    if ':' in locator:
        module_part, attr = locator.rsplit(':', 1)
        return (module_part, attr)
    return (locator, None)


def _is_file_path(path: str) -> bool:
    return path.endswith('.py') or os.path.sep in path or '/' in path


def discover_app(module_locator: str) -> tuple[Fleetcron, str]:
    """
    Import the module and find its Fleetcron instance.

    Returns:
        (app_instance, variable_name)
    """
    logger = get_logger('cli')

    project_root = setup_sys_path_from_cwd()
    if project_root:
        logger.info(f'Added project root to sys.path: {project_root}')

    module_path, attr_name = _parse_locator(module_locator)

    if _is_file_path(module_path):
        if not module_path.endswith('.py'):
            module_path += '.py'
        file_path = os.path.realpath(module_path)
        if not os.path.exists(file_path):
            raise ConfigurationError(
                message=f'module file not found: {module_path}',
                code=ErrorCode.CLI_INVALID_ARGS,
                notes=[f'resolved to {file_path}'],
                help_text='check the path, or use a dotted module path instead',
            )
        module = import_file_path(file_path)
        module_name = module.__name__
    else:
        try:
            module = importlib.import_module(module_path)
        except ModuleNotFoundError as e:
            raise ConfigurationError(
                message=f'module not found: {module_path}',
                code=ErrorCode.CLI_INVALID_ARGS,
                notes=[str(e), f'sys.path: {sys.path[:5]}...'],
                help_text=(
                    'ensure you are running from the correct directory\n'
                    'or set PYTHONPATH to include your project root'
                ),
            )
        module_name = module_path

    if attr_name:
        if not hasattr(module, attr_name):
            raise AttributeError(
                f"Module '{module_name}' has no attribute '{attr_name}'"
            )
        obj = getattr(module, attr_name)
        if not isinstance(obj, Fleetcron):
            raise TypeError(
                f"'{attr_name}' in module '{module_name}' is not a Fleetcron instance "
                f'(got {type(obj).__name__})'
            )
        app, var_name = obj, attr_name
    else:
        app_instances: list[tuple[Fleetcron, str]] = []
        for name in dir(module):
            if not name.startswith('_'):
                obj = getattr(module, name)
                if isinstance(obj, Fleetcron):
                    app_instances.append((obj, name))

        if not app_instances:
            raise AttributeError(
                f'No Fleetcron instance found in {module_name}. '
                'Specify the variable name: module.path:variable'
            )
        if len(app_instances) > 1:
            var_names = [name for _, name in app_instances]
            raise AttributeError(
                f'Multiple Fleetcron instances found in {module_name}: {var_names}. '
                'Specify which one: module.path:variable'
            )
        app, var_name = app_instances[0]

    app.import_function_modules()
    logger.info(f"Discovered fleetcron app '{var_name}' from {module_name}")
    return app, var_name


def setup_logging(loglevel: str) -> None:
    """Configure logging level globally."""
    configure_level(getattr(logging, loglevel.upper(), logging.INFO))


def _load_app(args: argparse.Namespace) -> Fleetcron:
    """Set up logging and discover the app, exiting with status 1 on failure."""
    logger = get_logger('cli')
    setup_logging(args.loglevel)
    try:
        app, _var_name = discover_app(_resolve_module_argument(args))
    except FleetcronError as e:
        logger.error(str(e))
        sys.exit(1)
    except Exception as e:
        logger.error(f'Failed to discover app: {e}')
        sys.exit(1)
    return app


def _run_with_store(app: Fleetcron, fn: Callable[[], Awaitable[T]]) -> T:
    """Run one async store operation and dispose the engine afterwards."""

    async def runner() -> T:
        try:
            return await fn()
        finally:
            await app.get_store().close_async()

    return asyncio.run(runner())


def run_command(args: argparse.Namespace) -> None:
    """Handle run command: run one scheduler process until signalled."""
    logger = get_logger('cli')
    app = _load_app(args)

    missing = [
        t.function_name for t in app.config.tasks if t.function_name not in app.registry
    ]
    if missing:
        logger.warning(
            f'Configured tasks reference unregistered functions: {sorted(set(missing))}; '
            'those tasks will be recorded as failed when claimed'
        )

    logger.info(f'Registered functions: {app.list_functions()}')
    try:

        async def run_scheduler() -> None:
            scheduler = app.create_scheduler()
            loop = asyncio.get_running_loop()

            def signal_handler() -> None:
                logger.info('Received interrupt signal, stopping scheduler...')
                scheduler.request_stop()

            for sig in (signal.SIGTERM, signal.SIGINT):
                try:
                    loop.add_signal_handler(sig, signal_handler)
                except NotImplementedError:
                    pass

            await scheduler.run_forever()

        asyncio.run(run_scheduler())
    except KeyboardInterrupt:
        logger.info('Scheduler interrupted by user')
    except Exception as e:
        logger.error(f'Scheduler failed: {e}', exc_info=True)
        sys.exit(1)


def init_db_command(args: argparse.Namespace) -> None:
    logger = get_logger('cli')
    app = _load_app(args)
    try:
        _run_with_store(app, app.get_store().ensure_schema_initialized)
    except StoreOperationError as e:
        logger.error(f'Schema initialization failed: {e}')
        sys.exit(1)
    print('ok: schema initialized')


def provision_command(args: argparse.Namespace) -> None:
    """Insert configured task definitions that are not in the table yet."""
    logger = get_logger('cli')
    app = _load_app(args)
    store = app.get_store()

    async def provision() -> list[str]:
        await store.ensure_schema_initialized()
        return await store.provision_async(
            app.config.tasks, now=datetime.now(timezone.utc),
        )

    try:
        inserted = _run_with_store(app, provision)
    except StoreOperationError as e:
        logger.error(f'Provisioning failed: {e}')
        sys.exit(1)
    skipped = len(app.config.tasks) - len(inserted)
    print(f'ok: {len(inserted)} task(s) inserted, {skipped} already present')
    for name in inserted:
        print(f'  + {name}')


def _snapshot_json(snapshot: TaskSnapshot) -> Any:
    data = to_jsonable(snapshot)
    assert isinstance(data, dict)
    data['running_time_formatted'] = (
        format_duration(snapshot.running_time_ms)
        if snapshot.running_time_ms is not None
        else None
    )
    data['time_until_next_run_formatted'] = (
        format_duration(snapshot.time_until_next_run_ms)
        if snapshot.time_until_next_run_ms is not None
        else None
    )
    return data


def tasks_command(args: argparse.Namespace) -> None:
    """Print all tasks, or one task with its recent history when --id is given."""
    logger = get_logger('cli')
    app = _load_app(args)
    monitor = app.monitor()
    try:
        if args.task_id is None:
            snapshots = _run_with_store(app, monitor.list_tasks)
            print(dumps_json([_snapshot_json(s) for s in snapshots]))
            return
        detail = _run_with_store(app, lambda: monitor.get_task(args.task_id))
    except StoreOperationError as e:
        logger.error(f'Failed to fetch tasks: {e}')
        sys.exit(1)
    if detail is None:
        logger.error(f'Task {args.task_id} not found')
        sys.exit(1)
    print(
        dumps_json(
            {
                'task': _snapshot_json(detail.task),
                'recent_history': detail.recent_history,
            }
        )
    )


def history_command(args: argparse.Namespace) -> None:
    logger = get_logger('cli')
    app = _load_app(args)
    monitor = app.monitor()
    status = HistoryStatus(args.status) if args.status else None
    try:
        page = _run_with_store(
            app,
            lambda: monitor.query_history(
                task_name=args.task_name,
                server_id=args.server_id,
                status=status,
                limit=args.limit,
                offset=args.offset,
            ),
        )
    except (StoreOperationError, ValueError) as e:
        logger.error(f'Failed to fetch history: {e}')
        sys.exit(1)
    print(dumps_json(page))


def stats_command(args: argparse.Namespace) -> None:
    logger = get_logger('cli')
    app = _load_app(args)
    monitor = app.monitor()
    try:
        stats = _run_with_store(
            app, lambda: monitor.get_stats(timedelta(hours=args.window_hours)),
        )
    except StoreOperationError as e:
        logger.error(f'Failed to compute stats: {e}')
        sys.exit(1)
    data = to_jsonable(stats)
    assert isinstance(data, dict)
    data['success_rate'] = stats.success_rate_formatted
    data['task_performance'] = [
        {
            'task_name': p.task_name,
            'avg_duration_ms': p.avg_duration_ms,
            'avg_duration_formatted': format_duration(p.avg_duration_ms),
            'execution_count': p.execution_count,
        }
        for p in stats.task_performance
    ]
    print(dumps_json(data))


def check_command(args: argparse.Namespace) -> None:
    """Validate app configuration without starting the scheduler."""
    app = _load_app(args)
    errors = app.check(live=args.live)

    if errors:
        report = ValidationReport('check')
        for error in errors:
            report.add(error)
        print(report.format_rust_style(), file=sys.stderr)
        sys.exit(1)
    print(
        f'ok: all validations passed\n'
        f'  {len(app.list_functions())} function(s) registered\n'
        f'  {len(app.config.tasks)} task(s) configured'
    )
    sys.exit(0)


def _add_common_arguments(
    parser: argparse.ArgumentParser, *, default_loglevel: str = 'INFO',
) -> None:
    parser.add_argument(
        '-m',
        '--module',
        dest='module',
        help='Module path (e.g., myproject.cron:app)',
    )
    parser.add_argument(
        'module_pos',
        nargs='?',
        help='Module path (e.g., myproject.cron:app)',
    )
    parser.add_argument(
        '--loglevel',
        choices=LOGLEVELS,
        default=default_loglevel,
        type=str.upper,
        help=f'Logging level (default: {default_loglevel})',
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='fleetcron',
        description='fleetcron - fleet-wide interval task scheduler on PostgreSQL',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Create tables and insert the configured tasks
  fleetcron init-db myproject.cron:app
  fleetcron provision myproject.cron:app

  # Run one scheduler process (start as many as you like)
  fleetcron run myproject.cron:app

  # Inspect state
  fleetcron tasks myproject.cron:app
  fleetcron history myproject.cron:app --status failed --limit 20
  fleetcron stats myproject.cron:app --window-hours 24

  # Validate configuration without starting anything
  fleetcron check myproject.cron:app --live
""",
    )
    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    run_parser = subparsers.add_parser('run', help='Run a scheduler process')
    _add_common_arguments(run_parser)

    init_parser = subparsers.add_parser('init-db', help='Create tables if missing')
    _add_common_arguments(init_parser)

    provision_parser = subparsers.add_parser(
        'provision', help='Insert configured task definitions that do not exist yet',
    )
    _add_common_arguments(provision_parser)

    tasks_parser = subparsers.add_parser('tasks', help='Print tasks and their state')
    _add_common_arguments(tasks_parser, default_loglevel='WARNING')
    tasks_parser.add_argument(
        '--id',
        dest='task_id',
        type=int,
        default=None,
        help='Show one task with its recent executions',
    )

    history_parser = subparsers.add_parser('history', help='Print execution history')
    _add_common_arguments(history_parser, default_loglevel='WARNING')
    history_parser.add_argument('--task', dest='task_name', default=None)
    history_parser.add_argument('--server', dest='server_id', default=None)
    history_parser.add_argument(
        '--status', choices=[s.value for s in HistoryStatus], default=None,
    )
    history_parser.add_argument('--limit', type=int, default=100)
    history_parser.add_argument('--offset', type=int, default=0)

    stats_parser = subparsers.add_parser('stats', help='Print aggregate statistics')
    _add_common_arguments(stats_parser, default_loglevel='WARNING')
    stats_parser.add_argument(
        '--window-hours',
        type=float,
        default=24.0,
        help='Trailing window for execution statistics (default: 24)',
    )

    check_parser = subparsers.add_parser(
        'check', help='Validate app configuration without starting anything',
    )
    _add_common_arguments(check_parser, default_loglevel='WARNING')
    check_parser.add_argument(
        '--live',
        action='store_true',
        default=False,
        help='Also check database connectivity (SELECT 1)',
    )
    return parser


def main() -> None:
    """Main CLI entry point."""
    parser = build_parser()
    try:
        args = parser.parse_args()

        match args.command:
            case 'run':
                run_command(args)
            case 'init-db':
                init_db_command(args)
            case 'provision':
                provision_command(args)
            case 'tasks':
                tasks_command(args)
            case 'history':
                history_command(args)
            case 'stats':
                stats_command(args)
            case 'check':
                check_command(args)
            case _:
                parser.print_help()
                sys.exit(1)
    except KeyboardInterrupt:
        print('\nInterrupted by user')
        sys.exit(0)


if __name__ == '__main__':
    main()
