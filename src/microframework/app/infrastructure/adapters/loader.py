# Copyright (C) 2025 Björn Gunnar Bryggman. Licensed under the MIT License.

"""
Provides discovery of application modules from directories.

This module includes:
- `discover_modules`: Lists the module files found under directories.
- `load_module`: Imports a module from its file path.
- `register_all`: Imports every discovered module and calls its `register` hook.
"""

import hashlib
import importlib.util
import sys
from collections.abc import Iterable
from pathlib import Path
from types import ModuleType
from typing import Any

from structlog import stdlib

from microframework.app.domain.errors import RegistrationError

log = stdlib.get_logger(__name__)

REGISTER_HOOK = "register"

# ======================================= #
#               Discovery                 #
# ======================================= #


def discover_modules(directories: Iterable[Path]) -> list[Path]:
    """
    List the module files found under directories.

    Directories are scanned recursively. Files whose name starts with an underscore are
    skipped, so packages can keep helpers next to their modules. Missing directories are
    skipped with a warning.

    Args:
        - directories: The directories to scan.

    Returns:
        - list[Path]: The module files, sorted per directory.
    """
    modules = []
    for directory in directories:
        directory = Path(directory)
        if not directory.is_dir():
            log.warning("Module directory '%s' does not exist, skipping.", str(directory))
            continue
        modules.extend(
            path
            for path in sorted(directory.rglob("*.py"))
            if not any(part.startswith("_") for part in path.relative_to(directory).parts)
        )
    return modules


def load_module(path: Path) -> ModuleType:
    """
    Import a module from its file path.

    The module is registered in `sys.modules` under a name derived from its resolved path,
    so loading the same file twice returns the same module.

    Args:
        - path: The module file.

    Returns:
        - ModuleType: The imported module.

    Raises:
        - ImportError: If the file cannot be imported.
    """
    resolved = Path(path).resolve()
    digest = hashlib.sha1(str(resolved).encode("utf-8")).hexdigest()[:12]
    name = f"_microframework_{resolved.stem}_{digest}"
    if name in sys.modules:
        return sys.modules[name]

    spec = importlib.util.spec_from_file_location(name, resolved)
    if spec is None or spec.loader is None:
        raise ImportError(f"Cannot import module from '{resolved}'.", path=str(resolved))

    module = importlib.util.module_from_spec(spec)
    sys.modules[name] = module
    try:
        spec.loader.exec_module(module)
    except Exception:
        del sys.modules[name]
        log.exception("Error importing module '%s'.", str(resolved))
        raise
    log.debug("Imported module '%s'.", str(resolved))
    return module


# ========================================== #
#               Registration                 #
# ========================================== #


def register_all(directories: Iterable[Path], handle: Any) -> list[ModuleType]:
    """
    Import every module found under directories and call its `register` hook.

    Args:
        - directories: The directories to scan.
        - handle: The object passed to each `register` hook.

    Returns:
        - list[ModuleType]: The registered modules, in registration order.

    Raises:
        - RegistrationError: If a module does not define a callable `register` hook.
    """
    modules = []
    for path in discover_modules(directories):
        module = load_module(path)
        hook = getattr(module, REGISTER_HOOK, None)
        if not callable(hook):
            raise RegistrationError(f"Module '{path}' does not define a '{REGISTER_HOOK}' function.")
        hook(handle)
        modules.append(module)
    return modules
