"""Rust-style error display for fleetcron startup/validation errors."""

from __future__ import annotations

import inspect
import linecache
import os
import sys
import traceback
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

# Absolute path to the fleetcron package directory.
# Frames under it are library frames, everything else is user code.
_FLEETCRON_PKG_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


class ErrorCode(str, Enum):
    """Error codes for startup/validation errors.

    Organized by category:
    - E100-E199: Task function definition errors
    - E200-E299: Config/database errors
    - E300-E399: Registry errors
    """

    # Task function definition (E100-E199)
    FUNCTION_NOT_CALLABLE = 'E100'
    FUNCTION_REQUIRES_ARGS = 'E101'

    # Config/database (E200-E299)
    DATABASE_INVALID_URL = 'E200'
    CONFIG_INVALID_SCHEDULER = 'E201'
    CONFIG_INVALID_TASKS = 'E202'
    CLI_INVALID_ARGS = 'E203'
    DATABASE_UNREACHABLE = 'E204'

    # Registry (E300-E399)
    FUNCTION_NOT_REGISTERED = 'E300'
    FUNCTION_DUPLICATE_NAME = 'E301'


class _Colors:
    """ANSI escape codes for terminal colors."""

    RESET = '\033[0m'
    BOLD = '\033[1m'
    RED = '\033[91m'
    BLUE = '\033[94m'
    CYAN = '\033[96m'
    GREEN = '\033[92m'
    DIM = '\033[2m'


class _NoColors:
    """No-op color codes for non-TTY output."""

    RESET = ''
    BOLD = ''
    RED = ''
    BLUE = ''
    CYAN = ''
    GREEN = ''
    DIM = ''


def _env_flag(name: str) -> bool:
    return os.environ.get(name, '').lower() in ('1', 'true', 'yes')


def _should_use_colors() -> bool:
    """Determine if colors should be used in output."""
    if _env_flag('FLEETCRON_FORCE_COLOR'):
        return True

    # https://no-color.org/
    if os.environ.get('NO_COLOR') is not None:
        return False

    return hasattr(sys.stderr, 'isatty') and sys.stderr.isatty()


@dataclass
class SourceLocation:
    """Source code location information."""

    file: str
    line: int

    @classmethod
    def from_frame(cls, frame: Any) -> SourceLocation:
        return cls(file=frame.f_code.co_filename, line=frame.f_lineno)

    @classmethod
    def from_function(cls, fn: Callable[..., Any]) -> SourceLocation | None:
        """Location of a function definition, or None for builtins and mocks."""
        code = getattr(fn, '__code__', None)
        if code is None:
            return None
        return cls(file=code.co_filename, line=code.co_firstlineno)

    def get_source_line(self) -> str | None:
        line = linecache.getline(self.file, self.line)
        return line.rstrip('\n') if line else None

    def format_short(self) -> str:
        return f'{self.file}:{self.line}'


@dataclass
class FleetcronError(Exception):
    """Base exception for fleetcron startup/validation errors.

    Rendered as:

        error[E201]: stuck_threshold_ms too low
          --> app.py:12
           |
         12| config = SchedulerConfig(stuck_threshold_ms=500)
           = note: ...

           = help:
                ...
    """

    message: str
    code: ErrorCode | None = None
    location: SourceLocation | None = None
    notes: list[str] = field(default_factory=lambda: [])
    help_text: str | None = None

    def __post_init__(self) -> None:
        super().__init__(self.message)

        if self.location is None:
            user_frame = _find_user_frame()
            if user_frame is not None:
                self.location = SourceLocation.from_frame(user_frame)

    def with_note(self, note: str) -> FleetcronError:
        self.notes.append(note)
        return self

    def format_rust_style(self, use_colors: bool | None = None) -> str:
        if use_colors is None:
            use_colors = _should_use_colors()

        c = _Colors if use_colors else _NoColors
        lines: list[str] = ['']

        code_part = f'[{self.code.value}]' if self.code else ''
        lines.append(f'{c.BOLD}{c.RED}error{code_part}:{c.RESET} {self.message}')

        if self.location:
            lines.append(
                f'  {c.BLUE}-->{c.RESET} {c.CYAN}{self.location.format_short()}{c.RESET}'
            )
            source_line = self.location.get_source_line()
            if source_line:
                line_num = str(self.location.line)
                padding = ' ' * len(line_num)
                stripped = source_line.lstrip()
                underline = ' ' * (len(source_line) - len(stripped)) + '^' * len(stripped)
                lines.append(f'   {c.BLUE}{padding}|{c.RESET}')
                lines.append(f'   {c.BLUE}{line_num}|{c.RESET} {source_line}')
                lines.append(f'   {c.BLUE}{padding}|{c.RESET} {c.RED}{underline}{c.RESET}')

        for note in self.notes:
            note_lines = note.split('\n')
            lines.append(
                f'   {c.BLUE}={c.RESET} {c.BOLD}{c.BLUE}note{c.RESET}: {note_lines[0]}'
            )
            for note_line in note_lines[1:]:
                lines.append(f'          {note_line}')

        if self.help_text:
            lines.append('')
            lines.append(f'   {c.BLUE}={c.RESET} {c.BOLD}{c.GREEN}help{c.RESET}:')
            for help_line in self.help_text.split('\n'):
                lines.append(f'        {help_line}')

        return '\n'.join(lines)

    def __str__(self) -> str:
        """Plain text rendering, safe for log handlers and storage."""
        return self.format_rust_style(use_colors=False)


_original_excepthook = sys.excepthook


def _fleetcron_excepthook(
    exc_type: type[BaseException],
    exc_value: BaseException,
    exc_tb: Any,
) -> None:
    if _env_flag('FLEETCRON_PLAIN_ERRORS') or not isinstance(exc_value, FleetcronError):
        _original_excepthook(exc_type, exc_value, exc_tb)
        return

    print(exc_value.format_rust_style(), file=sys.stderr)
    if _env_flag('FLEETCRON_VERBOSE'):
        c = _Colors if _should_use_colors() else _NoColors
        print(file=sys.stderr)
        print(f'{c.DIM}Full traceback (FLEETCRON_VERBOSE=1):{c.RESET}', file=sys.stderr)
        traceback.print_exception(exc_type, exc_value, exc_tb, file=sys.stderr)


def install_error_handler() -> None:
    """Install the custom exception hook for Rust-style error display."""
    sys.excepthook = _fleetcron_excepthook


def uninstall_error_handler() -> None:
    sys.excepthook = _original_excepthook


# =============================================================================
# Specific Error Classes
# =============================================================================


@dataclass
class ConfigurationError(FleetcronError):
    """Raised when app/database/scheduler configuration is invalid."""

    pass


@dataclass
class RegistryError(FleetcronError):
    """Raised when a function registry operation fails."""

    pass


@dataclass
class FunctionDefinitionError(FleetcronError):
    """Raised when a task function cannot be registered as a unit of work."""

    pass


# =============================================================================
# Phase-Gated Error Collection
# =============================================================================


class ValidationReport:
    """Collects multiple FleetcronError instances within a validation phase."""

    def __init__(self, phase_name: str) -> None:
        self.phase_name: str = phase_name
        self.errors: list[FleetcronError] = []

    def add(self, error: FleetcronError) -> None:
        self.errors.append(error)

    def has_errors(self) -> bool:
        return len(self.errors) > 0

    def format_rust_style(self, use_colors: bool | None = None) -> str:
        if use_colors is None:
            use_colors = _should_use_colors()

        c = _Colors if use_colors else _NoColors
        parts = [error.format_rust_style(use_colors=use_colors) for error in self.errors]
        parts.append(
            f'\n{c.BOLD}{c.RED}error{c.RESET}: aborting due to {len(self.errors)} previous errors'
        )
        return '\n'.join(parts)

    def __str__(self) -> str:
        return self.format_rust_style(use_colors=False)


@dataclass
class MultipleValidationErrors(FleetcronError):
    """Wraps a ValidationReport containing 2+ errors."""

    report: ValidationReport = field(default_factory=lambda: ValidationReport(''))

    def __post_init__(self) -> None:
        if not self.message:
            self.message = f'aborting due to {len(self.report.errors)} previous errors'
        # Location is per-error in the report
        super(FleetcronError, self).__init__(self.message)

    def format_rust_style(self, use_colors: bool | None = None) -> str:
        return self.report.format_rust_style(use_colors=use_colors)

    def __str__(self) -> str:
        return self.format_rust_style(use_colors=False)


def raise_collected(report: ValidationReport) -> None:
    """Raise collected errors.

    - 0 errors: no-op
    - 1 error: raises the original error (preserves except clauses)
    - 2+ errors: raises MultipleValidationErrors wrapping the report
    """
    count = len(report.errors)
    if count == 0:
        return
    if count == 1:
        raise report.errors[0]
    raise MultipleValidationErrors(
        message=f'aborting due to {count} previous errors',
        report=report,
    )


def _find_user_frame() -> Any | None:
    """Find the first frame outside of fleetcron internals and site-packages."""
    frame = inspect.currentframe()
    while frame is not None:
        filename = frame.f_code.co_filename
        if (
            not filename.startswith('<')
            and not filename.startswith(_FLEETCRON_PKG_DIR)
            and '/site-packages/' not in filename
        ):
            return frame
        frame = frame.f_back
    return None


def function_definition_error(
    message: str,
    *,
    code: ErrorCode | None = None,
    fn: Callable[..., Any] | None = None,
    notes: list[str] | None = None,
    help_text: str | None = None,
) -> FunctionDefinitionError:
    """Create a FunctionDefinitionError located at the function's definition."""
    location = SourceLocation.from_function(fn) if fn is not None else None
    return FunctionDefinitionError(
        message=message,
        code=code,
        location=location,
        notes=notes or [],
        help_text=help_text,
    )
