"""
Module loading for app discovery.

The CLI locates the user's app as `module.path:app` or `path/to/file.py:app`.
Dotted paths go through importlib with the caller's sys.path; file paths are
loaded directly under a stable synthetic module name.
"""

from __future__ import annotations

import hashlib
import importlib
import importlib.util
import os
import sys
from typing import Any

from fleetcron.core.logging import get_logger

logger = get_logger('imports')

_PROJECT_MARKERS = ('pyproject.toml', 'setup.cfg', 'setup.py')


def find_project_root(start_dir: str) -> str | None:
    """
    Return start_dir if it holds a project marker file, else None.

    Parent directories are not searched.
    """
    start_dir = os.path.abspath(start_dir)
    for marker in _PROJECT_MARKERS:
        if os.path.exists(os.path.join(start_dir, marker)):
            return start_dir
    return None


def setup_sys_path_from_cwd() -> str | None:
    """Put cwd on sys.path when it is a project root. Returns cwd if added."""
    cwd = os.getcwd()
    if find_project_root(cwd) and cwd not in sys.path:
        sys.path.insert(0, cwd)
        logger.debug(f'Added cwd to sys.path: {cwd}')
        return cwd
    return None


def _synthetic_module_name(path: str) -> str:
    digest = hashlib.sha256(os.path.realpath(path).encode()).hexdigest()[:12]
    return f'fleetcron._dynamic.{digest}'


def import_file_path(file_path: str, module_name: str | None = None) -> Any:
    """
    Load a module from a .py file, adding its directory to sys.path.

    A file that is already loaded (by realpath) is returned as-is.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        ImportError: If no loader can be built for it.
    """
    file_path = os.path.realpath(file_path)
    if not os.path.exists(file_path):
        raise FileNotFoundError(f'Module file not found: {file_path}')

    for mod in list(sys.modules.values()):
        mod_file = getattr(mod, '__file__', None)
        if mod_file and os.path.realpath(mod_file) == file_path:
            return mod

    parent_dir = os.path.dirname(file_path)
    if parent_dir not in sys.path:
        sys.path.insert(0, parent_dir)

    module_name = module_name or _synthetic_module_name(file_path)
    spec = importlib.util.spec_from_file_location(module_name, file_path)
    if spec is None or spec.loader is None:
        raise ImportError(f'Could not load module from path: {file_path}')

    mod = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = mod
    spec.loader.exec_module(mod)
    return mod


def import_by_path(path: str, module_name: str | None = None) -> Any:
    """Import `path` as a file when it looks like one, else as a dotted module."""
    if path.endswith('.py') or os.path.sep in path:
        return import_file_path(path, module_name)
    return importlib.import_module(path)
