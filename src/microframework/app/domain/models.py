# Copyright (C) 2025 Björn Gunnar Bryggman. Licensed under the MIT License.

"""
Provides the value objects describing how an application is bootstrapped.

This module includes:
- Directory and file name conventions used when no explicit path is given.
- `RunOptions`: Caller-supplied base directory and path overrides.
- `HTTPConfig`: Typed view of the HTTP section of the configuration.
- `ODMConfig`: Typed view of the database section of the configuration.
- `RunState`: The states of the bootstrap sequence.
- `Action`: A request handler discovered in a controller module.
"""

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from microframework.app.domain.errors import ConfigurationError

# ======================================== #
#               Conventions                #
# ======================================== #


DEFAULT_ODM_DOCUMENT_DIRECTORY = "document"
DEFAULT_ODM_SUBSCRIBER_DIRECTORY = "subscriber"
DEFAULT_CONTROLLER_DIRECTORY = "controller"
DEFAULT_CONFIG_DIRECTORY = "configuration"
DEFAULT_CONFIG_FILE = "config.json"
DEFAULT_PARAMETERS_FILE = "parameters.json"

HTTP_SECTION = "express"
ODM_SECTION = "typeodm"

DEFAULT_PORT = 3000
DEFAULT_HOST = "0.0.0.0"


# ======================================== #
#               Run Options                #
# ======================================== #


@dataclass(frozen=True)
class RunOptions:
    """
    Describes where an application keeps its configuration, controllers and documents.

    Every optional path list overrides the corresponding convention under `base_directory`.

    Attributes:
        - base_directory: The root directory of the application.
        - configuration_files: Explicit configuration files.
        - parameters_files: Explicit parameter files.
        - odm_documents_directories: Explicit directories holding document modules.
        - odm_subscribers_directories: Explicit directories holding subscriber modules.
        - controllers_directories: Explicit directories holding controller modules.
        - environment: Explicit environment name, takes precedence over `APP_ENV`.
    """

    base_directory: Path | str = "."
    configuration_files: list[Path | str] | None = None
    parameters_files: list[Path | str] | None = None
    odm_documents_directories: list[Path | str] | None = None
    odm_subscribers_directories: list[Path | str] | None = None
    controllers_directories: list[Path | str] | None = None
    environment: str | None = None

    @property
    def base_path(self) -> Path:
        return Path(self.base_directory)

    def config_files(self) -> list[Path]:
        if self.configuration_files is not None:
            return [Path(file) for file in self.configuration_files]
        return [self.base_path / DEFAULT_CONFIG_DIRECTORY / DEFAULT_CONFIG_FILE]

    def parameter_files(self) -> list[Path]:
        if self.parameters_files is not None:
            return [Path(file) for file in self.parameters_files]
        return [self.base_path / DEFAULT_CONFIG_DIRECTORY / DEFAULT_PARAMETERS_FILE]

    def document_directories(self) -> list[Path]:
        if self.odm_documents_directories is not None:
            return [Path(directory) for directory in self.odm_documents_directories]
        return [self.base_path / DEFAULT_ODM_DOCUMENT_DIRECTORY]

    def subscriber_directories(self) -> list[Path]:
        if self.odm_subscribers_directories is not None:
            return [Path(directory) for directory in self.odm_subscribers_directories]
        return [self.base_path / DEFAULT_ODM_SUBSCRIBER_DIRECTORY]

    def controller_directories(self) -> list[Path]:
        if self.controllers_directories is not None:
            return [Path(directory) for directory in self.controllers_directories]
        return [self.base_path / DEFAULT_CONTROLLER_DIRECTORY]


# ============================================ #
#               Section Views                  #
# ============================================ #


@dataclass(frozen=True)
class HTTPConfig:
    """
    Typed view of the HTTP section of the configuration.

    Attributes:
        - port: The port the listener binds to.
        - host: The interface the listener binds to.
        - body_parser: The kind of body parser to attach, if any.
        - body_parser_options: Keyword options passed to the body parser.
    """

    port: int = DEFAULT_PORT
    host: str = DEFAULT_HOST
    body_parser: str | None = None
    body_parser_options: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_configuration(cls, configuration: Mapping[str, Any]) -> "HTTPConfig":
        """
        Build the view from the whole configuration.

        A port of 0 is kept and binds an ephemeral port, where the Express bootstrap this
        configuration format comes from falls back to 3000. Only an absent or null port gets
        the default.

        Args:
            - configuration: The merged configuration.

        Returns:
            - HTTPConfig: Defaults for every key the section does not set.

        Raises:
            - ConfigurationError: If the section or its options are not mappings.
        """
        section = configuration.get(HTTP_SECTION) or {}
        if not isinstance(section, Mapping):
            raise ConfigurationError(f"The '{HTTP_SECTION}' configuration section must be an object.")

        options = section.get("bodyParserOptions") or {}
        if not isinstance(options, Mapping):
            raise ConfigurationError("The body parser options must be an object.")

        port = section.get("port")
        return cls(
            port=DEFAULT_PORT if port is None else int(port),
            host=section.get("host") or DEFAULT_HOST,
            body_parser=section.get("bodyParser") or None,
            body_parser_options=dict(options),
        )


@dataclass(frozen=True)
class ODMConfig:
    """
    Typed view of the database section of the configuration.

    Attributes:
        - driver: The name of the database driver to register.
        - connection: Options passed to the connection when connecting.
    """

    driver: str | None = None
    connection: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_configuration(cls, configuration: Mapping[str, Any]) -> "ODMConfig | None":
        "Build the view, or return None when the section is absent. An empty section still counts."
        section = configuration.get(ODM_SECTION)
        if section is None:
            return None
        if not isinstance(section, Mapping):
            raise ConfigurationError(f"The '{ODM_SECTION}' configuration section must be an object.")
        return cls(driver=section.get("driver"), connection=dict(section.get("connection") or {}))


# ======================================= #
#               Run State                 #
# ======================================= #


class RunState(Enum):
    NOT_STARTED = "not_started"
    HTTP_STARTING = "http_starting"
    ODM_CONNECTING = "odm_connecting"
    CONTROLLERS_REGISTERING = "controllers_registering"
    RUNNING = "running"
    FAILED = "failed"


# ==================================== #
#               Actions                #
# ==================================== #


@dataclass(frozen=True)
class Action:
    """
    A request handler discovered in a controller module.

    Attributes:
        - method: The HTTP method the action answers to.
        - route: The route path, relative to the controller prefix.
        - handler: The function handling the request.
        - controller: The class owning the handler, if it is a method.
        - prefix: The route prefix of the owning controller.
        - route_options: Extra keyword options for the route (status code, tags...).
    """

    method: str
    route: str
    handler: Callable[..., Any]
    controller: type | None = None
    prefix: str = ""
    route_options: dict[str, Any] = field(default_factory=dict)

    @property
    def path(self) -> str:
        path = self.prefix.rstrip("/") + "/" + self.route.lstrip("/")
        return path.rstrip("/") or "/"
