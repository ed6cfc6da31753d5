# Copyright (C) 2025 Björn Gunnar Bryggman. Licensed under the MIT License.

"""
Provides configuration and parameter loading for bootstrapped applications.

This module includes:
- `AppConfig`: A dataclass that stores the framework's own settings.
- `Configurator`: A layered store for the application configuration.
- Functions for reading configuration, parameter and environment-override files.
"""

import copy
import json
import os
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from structlog import stdlib

from microframework.app.domain.errors import ConfigurationError

log = stdlib.get_logger(__name__)

# ================================================= #
#               Environment Variables               #
# ================================================= #


ENVIRONMENT_VARIABLE = "APP_ENV"
LOG_LEVEL_VARIABLE = "LOG_LEVEL"


# ============================================= #
#               App Configuration               #
# ============================================= #


@dataclass
class AppConfig:
    """
    Stores the framework's own settings.

    Attributes:
        - log_level: The logging level.
        - environment: The runtime environment name, used to find override files.
    """

    log_level: str = field(default_factory=lambda: os.getenv(LOG_LEVEL_VARIABLE, "INFO"))
    environment: str | None = field(default_factory=lambda: os.getenv(ENVIRONMENT_VARIABLE) or None)


# ========================================= #
#               Configurator                #
# ========================================= #


PLACEHOLDER = re.compile(r"%([A-Za-z0-9_.\-]+)%")


def deep_merge(target: dict[str, Any], source: Mapping[str, Any]) -> dict[str, Any]:
    "Merge `source` into `target` in place, later values win per key path."
    for key, value in source.items():
        if isinstance(value, Mapping) and isinstance(target.get(key), dict):
            deep_merge(target[key], value)
        else:
            target[key] = copy.deepcopy(value)
    return target


class Configurator:
    """
    Layered store for the application configuration.

    Each added layer is deep-merged over the previous ones. Parameters are substituted into
    `%name%` placeholders once all layers are loaded.

    Methods:
        - add_configuration: Adds a configuration layer.
        - replace_with_parameters: Substitutes parameter values into placeholders.
        - get: Returns a value by dotted key path.
        - get_all: Returns a copy of the whole configuration.
    """

    def __init__(self) -> None:
        self._configuration: dict[str, Any] = {}

    def add_configuration(self, configuration: Mapping[str, Any]) -> None:
        deep_merge(self._configuration, configuration)

    def replace_with_parameters(self, parameters: Mapping[str, Any]) -> None:
        """
        Substitute parameter values into `%name%` placeholders.

        A string that is exactly one placeholder takes the parameter value with its type. A
        placeholder embedded in a longer string is replaced by the value's text. Placeholders
        naming an unknown parameter are left as they are.

        Args:
            - parameters: The merged parameters.
        """

        def replace(value: Any) -> Any:
            if isinstance(value, dict):
                return {key: replace(item) for key, item in value.items()}
            if isinstance(value, list):
                return [replace(item) for item in value]
            if not isinstance(value, str):
                return value

            match = PLACEHOLDER.fullmatch(value)
            if match and match.group(1) in parameters:
                return copy.deepcopy(parameters[match.group(1)])
            return PLACEHOLDER.sub(
                lambda m: str(parameters[m.group(1)]) if m.group(1) in parameters else m.group(0),
                value,
            )

        self._configuration = replace(self._configuration)

    def get(self, key: str, default: Any = None) -> Any:
        value: Any = self._configuration
        for part in key.split("."):
            if not isinstance(value, Mapping) or part not in value:
                return default
            value = value[part]
        return copy.deepcopy(value)

    def get_all(self) -> dict[str, Any]:
        return copy.deepcopy(self._configuration)


# ======================================== #
#               File Loading               #
# ======================================== #


def environment_file(path: Path, environment: str) -> Path:
    """
    Return the environment-specific sibling of a file.

    Example:
        - `configuration/config.json` with environment `prod` gives `configuration/config.prod.json`.
    """
    return path.with_name(f"{path.stem}.{environment}{path.suffix}")


def read_json_file(path: Path) -> dict[str, Any]:
    """
    Read and decode a JSON document.

    Args:
        - path: The file to read.

    Returns:
        - dict[str, Any]: The decoded document.

    Raises:
        - FileNotFoundError: If the file does not exist.
        - json.JSONDecodeError: If the file is not valid JSON.
        - ConfigurationError: If the document is not a JSON object.
    """
    try:
        with open(path, encoding="utf-8") as f:
            document = json.load(f)
    except FileNotFoundError:
        log.error("Configuration file '%s' not found.", str(path))
        raise
    except json.JSONDecodeError:
        log.error("Configuration file '%s' is not valid JSON.", str(path))
        raise

    if not isinstance(document, dict):
        raise ConfigurationError(f"Configuration file '{path}' must contain a JSON object.")
    log.debug("Read configuration file '%s'.", str(path))
    return document


def read_environment_file(path: Path, environment: str | None) -> dict[str, Any] | None:
    """
    Read the environment override of a file, if there is one.

    Args:
        - path: The base file.
        - environment: The environment name, or None when no environment is set.

    Returns:
        - dict[str, Any] | None: The decoded override, or None if no override exists.

    Raises:
        - json.JSONDecodeError: If the override exists but is not valid JSON.
    """
    if not environment:
        return None

    override = environment_file(path, environment)
    if not override.is_file():
        log.debug("No '%s' override for '%s'.", environment, str(path))
        return None
    return read_json_file(override)


def load_configurations(configurator: Configurator, files: Iterable[Path], environment: str | None) -> None:
    """
    Load configuration files, then their environment overrides, into the configurator.

    Args:
        - configurator: The store receiving the layers.
        - files: The base configuration files.
        - environment: The environment name, if any.
    """
    files = list(files)
    for file in files:
        configurator.add_configuration(read_json_file(file))

    for file in files:
        override = read_environment_file(file, environment)
        if override is not None:
            configurator.add_configuration(override)


def load_parameters(configurator: Configurator, files: Iterable[Path], environment: str | None) -> dict[str, Any]:
    """
    Merge parameter files and substitute them into the configuration.

    Unlike configuration layers, parameters are merged shallowly: a later file replaces the
    whole value of a top-level key.

    Args:
        - configurator: The store whose placeholders are replaced.
        - files: The base parameter files.
        - environment: The environment name, if any.

    Returns:
        - dict[str, Any]: The merged parameters.
    """
    files = list(files)
    parameters: dict[str, Any] = {}
    for file in files:
        parameters.update(read_json_file(file))

    for file in files:
        override = read_environment_file(file, environment)
        if override is not None:
            parameters.update(override)

    configurator.replace_with_parameters(parameters)
    return parameters
