"""Unit tests for Rust-style error formatting."""

from __future__ import annotations

import sys
from collections.abc import Iterator
from io import StringIO
from unittest import mock

import pytest

from fleetcron.core.errors import (
    ConfigurationError,
    ErrorCode,
    FleetcronError,
    FunctionDefinitionError,
    MultipleValidationErrors,
    SourceLocation,
    ValidationReport,
    _fleetcron_excepthook,
    function_definition_error,
    install_error_handler,
    raise_collected,
    uninstall_error_handler,
)

pytestmark = pytest.mark.unit


@pytest.fixture(autouse=True)
def _plain_output(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    monkeypatch.delenv('FLEETCRON_FORCE_COLOR', raising=False)
    monkeypatch.delenv('FLEETCRON_PLAIN_ERRORS', raising=False)
    monkeypatch.delenv('FLEETCRON_VERBOSE', raising=False)
    monkeypatch.setenv('NO_COLOR', '1')
    yield


class TestSourceLocation:
    def test_format_short(self) -> None:
        assert SourceLocation(file='/a/b.py', line=7).format_short() == '/a/b.py:7'

    def test_from_function(self) -> None:
        def sample() -> None:
            pass

        loc = SourceLocation.from_function(sample)
        assert loc is not None
        assert loc.file == __file__
        assert loc.get_source_line() is not None
        assert 'def sample' in (loc.get_source_line() or '')

    def test_from_function_without_code(self) -> None:
        assert SourceLocation.from_function(len) is None


class TestFleetcronError:
    def test_rust_style_rendering(self) -> None:
        err = ConfigurationError(
            message='stuck_threshold_ms too low',
            code=ErrorCode.CONFIG_INVALID_SCHEDULER,
            location=None,
            notes=['got 500ms'],
            help_text='raise it',
        )
        text = err.format_rust_style(use_colors=False)
        assert 'error[E201]: stuck_threshold_ms too low' in text
        assert '= note: got 500ms' in text
        assert '= help:' in text
        assert 'raise it' in text

    def test_str_is_plain(self) -> None:
        err = ConfigurationError(message='bad', code=ErrorCode.CLI_INVALID_ARGS)
        assert '\033[' not in str(err)
        assert 'error[E203]: bad' in str(err)

    def test_location_defaults_to_caller_frame(self) -> None:
        err = ConfigurationError(message='here')
        assert err.location is not None
        assert err.location.file == __file__

    def test_with_note_appends(self) -> None:
        err = ConfigurationError(message='x').with_note('first').with_note('second')
        assert err.notes == ['first', 'second']


class TestFunctionDefinitionError:
    def test_points_at_function_definition(self) -> None:
        def needs_args(a: int) -> None:
            pass

        err = function_definition_error(
            'bad function', code=ErrorCode.FUNCTION_REQUIRES_ARGS, fn=needs_args,
        )
        assert isinstance(err, FunctionDefinitionError)
        assert err.location is not None
        assert err.location.line == needs_args.__code__.co_firstlineno


class TestRaiseCollected:
    def test_no_errors_is_noop(self) -> None:
        raise_collected(ValidationReport('empty'))

    def test_single_error_raised_as_is(self) -> None:
        report = ValidationReport('one')
        err = ConfigurationError(message='only')
        report.add(err)
        with pytest.raises(ConfigurationError) as exc_info:
            raise_collected(report)
        assert exc_info.value is err

    def test_multiple_errors_wrapped(self) -> None:
        report = ValidationReport('two')
        report.add(ConfigurationError(message='first'))
        report.add(ConfigurationError(message='second'))
        with pytest.raises(MultipleValidationErrors) as exc_info:
            raise_collected(report)
        text = str(exc_info.value)
        assert 'first' in text
        assert 'second' in text
        assert 'aborting due to 2 previous errors' in text


class TestExcepthook:
    def test_install_and_uninstall(self) -> None:
        original = sys.excepthook
        try:
            install_error_handler()
            assert sys.excepthook is _fleetcron_excepthook
            uninstall_error_handler()
            assert sys.excepthook is not _fleetcron_excepthook
        finally:
            sys.excepthook = original

    def test_renders_fleetcron_errors(self) -> None:
        err = ConfigurationError(message='pretty', code=ErrorCode.CONFIG_INVALID_TASKS)
        buf = StringIO()
        with mock.patch.object(sys, 'stderr', buf):
            _fleetcron_excepthook(type(err), err, None)
        assert 'error[E202]: pretty' in buf.getvalue()

    def test_plain_errors_flag_defers_to_default(
        self, monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setenv('FLEETCRON_PLAIN_ERRORS', '1')
        err = ConfigurationError(message='plain')
        with mock.patch('fleetcron.core.errors._original_excepthook') as original:
            _fleetcron_excepthook(type(err), err, None)
        original.assert_called_once()

    def test_other_exceptions_use_default_hook(self) -> None:
        exc = ValueError('x')
        with mock.patch('fleetcron.core.errors._original_excepthook') as original:
            _fleetcron_excepthook(ValueError, exc, None)
        original.assert_called_once_with(ValueError, exc, None)

    def test_base_class_is_exception(self) -> None:
        assert issubclass(FleetcronError, Exception)
