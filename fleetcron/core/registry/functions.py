# fleetcron/core/registry/functions.py
from __future__ import annotations
import inspect
from typing import Any, Awaitable, Callable, Dict, Iterator, Mapping, Union
from fleetcron.core.errors import (
    ErrorCode,
    RegistryError,
    function_definition_error,
)

# Zero-argument unit of work. Coroutine functions are awaited, plain callables
# are run in a worker thread by the executor.
TaskFunction = Callable[[], Union[Awaitable[Any], Any]]


class NotRegistered(RegistryError, KeyError):
    """Raised when a function name is not present in the registry.

    Inherits from KeyError so Mapping.__contains__ works correctly
    (it catches KeyError to implement the ``in`` operator).
    """

    def __init__(self, function_name: str) -> None:
        RegistryError.__init__(
            self,
            message=f"task function '{function_name}' not found",
            code=ErrorCode.FUNCTION_NOT_REGISTERED,
            notes=[f"requested function: '{function_name}'"],
            help_text=(
                'register the function with @app.function(name) before the scheduler starts\n'
                'or fix function_name on the task row'
            ),
        )
        self.function_name = function_name


class DuplicateFunctionNameError(RegistryError):
    """Raised when a function name is registered more than once."""

    def __init__(self, function_name: str, context: str = '') -> None:
        super().__init__(
            message=f"duplicate task function name '{function_name}'",
            code=ErrorCode.FUNCTION_DUPLICATE_NAME,
            notes=[context] if context else [],
            help_text='each function name must be unique within a fleetcron app',
        )
        self.function_name = function_name


def validate_task_function(name: str, fn: Any) -> None:
    """Reject anything that cannot be invoked with no arguments."""
    if not callable(fn):
        raise function_definition_error(
            f"task function '{name}' is not callable",
            code=ErrorCode.FUNCTION_NOT_CALLABLE,
            notes=[f'got object of type {type(fn).__name__}'],
            help_text='register a zero-argument function or coroutine function',
        )
    try:
        signature = inspect.signature(fn)
    except (TypeError, ValueError):
        # Builtins without introspectable signatures are accepted as-is
        return
    try:
        signature.bind()
    except TypeError as e:
        raise function_definition_error(
            f"task function '{name}' must be callable without arguments",
            code=ErrorCode.FUNCTION_REQUIRES_ARGS,
            fn=fn,
            notes=[f'signature: {name}{signature}', f'bind error: {e}'],
            help_text='give every parameter a default, or wrap the call in a closure',
        ) from e


class FunctionRegistry(Mapping[str, TaskFunction]):
    """Registry mapping function name -> zero-argument unit of work.

    Tracks source locations to detect duplicate registrations:
    - Same name + same source: silently skip (re-import scenario)
    - Same name + different source: raise DuplicateFunctionNameError
    """

    def __init__(self, initial: Dict[str, TaskFunction] | None = None) -> None:
        self._data: Dict[str, TaskFunction] = {}
        self._sources: Dict[str, str] = {}  # function name -> "file:lineno"
        for name, fn in (initial or {}).items():
            self.register(fn, name=name)

    def __getitem__(self, key: str) -> TaskFunction:
        try:
            return self._data[key]
        except KeyError:
            raise NotRegistered(key)

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def register(
        self, fn: TaskFunction, *, name: str, source: str | None = None
    ) -> TaskFunction:
        """Insert a function under `name` after validating it takes no arguments.

        Args:
            fn: The unit of work.
            name: The key task rows refer to through function_name.
            source: Optional "file.py:42" used to tell re-imports from true duplicates.

        Returns:
            The registered function (the existing one on re-import).

        Raises:
            FunctionDefinitionError: If fn is not callable without arguments.
            DuplicateFunctionNameError: If name is taken by a different source.
        """
        validate_task_function(name, fn)
        if name in self._data:
            existing_source = self._sources.get(name)
            if existing_source and source and existing_source == source:
                return self._data[name]
            raise DuplicateFunctionNameError(name, 'function with this name already exists')
        self._data[name] = fn
        if source:
            self._sources[name] = source
        return fn

    def unregister(self, name: str) -> None:
        self._data.pop(name, None)
        self._sources.pop(name, None)

    def names(self) -> list[str]:
        return list(self._data.keys())
