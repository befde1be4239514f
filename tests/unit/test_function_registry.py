"""Unit tests for FunctionRegistry and task function validation."""

from __future__ import annotations

import pytest

from fleetcron.core.errors import ErrorCode, FunctionDefinitionError, RegistryError
from fleetcron.core.registry.functions import (
    DuplicateFunctionNameError,
    FunctionRegistry,
    NotRegistered,
    validate_task_function,
)


async def process_data() -> None:
    pass


def clean_cache() -> None:
    pass


@pytest.mark.unit
class TestValidateTaskFunction:
    def test_coroutine_function_accepted(self) -> None:
        validate_task_function('processData', process_data)

    def test_defaults_only_accepted(self) -> None:
        def with_defaults(batch: int = 10) -> None:
            pass

        validate_task_function('withDefaults', with_defaults)

    def test_not_callable_rejected(self) -> None:
        with pytest.raises(FunctionDefinitionError) as exc_info:
            validate_task_function('notFn', 42)
        assert exc_info.value.code == ErrorCode.FUNCTION_NOT_CALLABLE

    def test_required_args_rejected(self) -> None:
        def needs_arg(path: str) -> None:
            pass

        with pytest.raises(FunctionDefinitionError) as exc_info:
            validate_task_function('needsArg', needs_arg)
        assert exc_info.value.code == ErrorCode.FUNCTION_REQUIRES_ARGS
        assert any(n.startswith('signature: needsArg(') for n in exc_info.value.notes)


@pytest.mark.unit
class TestFunctionRegistry:
    def test_register_and_lookup(self) -> None:
        registry = FunctionRegistry()
        registry.register(process_data, name='processData')
        assert registry['processData'] is process_data
        assert 'processData' in registry
        assert len(registry) == 1
        assert registry.names() == ['processData']

    def test_unknown_name_raises_not_registered(self) -> None:
        registry = FunctionRegistry()
        with pytest.raises(NotRegistered) as exc_info:
            registry['missing']
        err = exc_info.value
        assert isinstance(err, KeyError)
        assert isinstance(err, RegistryError)
        assert err.function_name == 'missing'
        assert err.message == "task function 'missing' not found"
        assert err.code == ErrorCode.FUNCTION_NOT_REGISTERED

    def test_contains_false_for_unknown(self) -> None:
        assert 'missing' not in FunctionRegistry()

    def test_get_returns_default_for_unknown(self) -> None:
        assert FunctionRegistry().get('missing') is None

    def test_duplicate_name_rejected(self) -> None:
        registry = FunctionRegistry()
        registry.register(process_data, name='job')
        with pytest.raises(DuplicateFunctionNameError) as exc_info:
            registry.register(clean_cache, name='job')
        assert exc_info.value.code == ErrorCode.FUNCTION_DUPLICATE_NAME

    def test_reimport_from_same_source_is_noop(self) -> None:
        registry = FunctionRegistry()
        registry.register(process_data, name='job', source='jobs.py:10')
        again = registry.register(clean_cache, name='job', source='jobs.py:10')
        assert again is process_data
        assert registry['job'] is process_data

    def test_initial_mapping(self) -> None:
        registry = FunctionRegistry({'processData': process_data, 'cleanCache': clean_cache})
        assert set(registry) == {'processData', 'cleanCache'}

    def test_unregister(self) -> None:
        registry = FunctionRegistry({'cleanCache': clean_cache})
        registry.unregister('cleanCache')
        registry.unregister('cleanCache')
        assert 'cleanCache' not in registry
