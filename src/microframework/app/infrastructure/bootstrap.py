# Copyright (C) 2025 Björn Gunnar Bryggman. Licensed under the MIT License.

"""
Provides the bootstrap sequence wiring an application together.

This module includes:
- `Bootstrap`: Loads the configuration, then starts the HTTP listener, the optional database
  connection and the controllers.
"""

import asyncio

from fastapi import FastAPI
from structlog import stdlib

from microframework.app.application import ports
from microframework.app.domain.models import HTTPConfig, ODM_SECTION, ODMConfig, RunOptions, RunState
from microframework.app.infrastructure import config
from microframework.app.infrastructure.adapters import loader
from microframework.app.infrastructure.adapters.http import attach_body_parser
from microframework.app.infrastructure.container import Container
from microframework.app.infrastructure.database.connection import SQLAlchemyDriver

log = stdlib.get_logger(__name__)

# ============================================ #
#               Bootstrap Script               #
# ============================================ #


class Bootstrap:
    """
    Wires the HTTP application, the database and the controllers into a running service.

    The configuration and parameters are loaded when the object is built, so a missing or
    malformed file fails before `run` can be called. `run` then starts the HTTP listener,
    connects the database when the configuration has a database section, and finally
    registers the controller actions. If anything fails after the listener is bound, the
    listener is closed and the error is raised again.

    Attributes:
        - options: The caller's run options.
        - container: The dependency injection container of this run.
        - configurator: The configuration store.
        - configuration: The loaded configuration, parameters substituted.
        - environment: The environment name used to find override files.
        - state: The current step of the bootstrap sequence.

    Methods:
        - load_dependencies: Builds the dependency injection container.
        - run: Starts every subsystem.
        - setup_http: Builds the application, attaches the body parser and binds the listener.
        - setup_odm: Registers the database driver, imports documents and connects.
        - setup_controllers: Loads the controller modules and installs their actions.
    """

    def __init__(self, options: RunOptions | None = None, container: Container | None = None) -> None:
        """
        Initialize the Bootstrap class and load the configuration.

        Args:
            - options: Where the application keeps its files (default: current directory).
            - container: A prepared container, mostly useful to override providers in tests.

        Raises:
            - FileNotFoundError: If a configuration or parameter file is missing.
            - json.JSONDecodeError: If a configuration or parameter file is malformed.
        """
        self.options = options or RunOptions()
        self.container = container or self.load_dependencies()
        self.state = RunState.NOT_STARTED

        self._http_app: FastAPI | None = None
        self._http_listener: ports.AbstractHTTPListener | None = None
        self._odm_connection_manager: ports.AbstractConnectionManager | None = None

        self.environment = self.options.environment or self.container.config().environment
        self.configurator = self.container.configurator()
        config.load_configurations(self.configurator, self.options.config_files(), self.environment)
        config.load_parameters(self.configurator, self.options.parameter_files(), self.environment)
        self.configuration = self.configurator.get_all()

    def load_dependencies(self) -> Container:
        """
        Build the dependency injection container.

        Returns:
            - Container: A container dedicated to this run.

        Raises:
            - Exception: If an error occurs while building the container.
        """
        try:
            container = Container()
        except Exception:
            log.exception("Error loading dependencies.")
            raise
        else:
            return container

    # ======================================= #
    #               Accessors                 #
    # ======================================= #

    @property
    def http_app(self) -> FastAPI | None:
        return self._http_app

    @property
    def http_listener(self) -> ports.AbstractHTTPListener | None:
        return self._http_listener

    @property
    def odm_connection_manager(self) -> ports.AbstractConnectionManager | None:
        return self._odm_connection_manager

    # =================================== #
    #               Run                   #
    # =================================== #

    async def run(self) -> None:
        """
        Start every subsystem.

        Raises:
            - RuntimeError: If this bootstrap has already been run.
            - ConfigurationError: If the HTTP configuration is invalid.
            - Exception: Any error raised while connecting the database or registering the
              controllers, after the listener has been closed.
        """
        if self.state is not RunState.NOT_STARTED:
            raise RuntimeError(f"Bootstrap has already been run (state: {self.state.value}).")

        try:
            self.setup_http()

            setups = []
            if self.configuration.get(ODM_SECTION) is not None:
                setups.append(self.setup_odm())
            await asyncio.gather(*setups)

            self.setup_controllers()
        except Exception:
            self._transition(RunState.FAILED)
            await log.aexception("Error bootstrapping application.")
            if self._http_listener is not None:
                await self._http_listener.close()
            raise

        self._transition(RunState.RUNNING)
        await log.ainfo("Application running.", port=self._http_listener.port)

    def setup_http(self) -> None:
        """
        Build the application, attach the configured body parser and bind the listener.

        Raises:
            - ConfigurationError: If the body parser kind or its options are invalid.
            - OSError: If the listener cannot bind its port.
        """
        self._transition(RunState.HTTP_STARTING)
        http_config = HTTPConfig.from_configuration(self.configuration)

        self._http_app = self.container.http_app()
        if http_config.body_parser:
            attach_body_parser(self._http_app, http_config.body_parser, http_config.body_parser_options)

        listener = self.container.http_listener(app=self._http_app, port=http_config.port, host=http_config.host)
        listener.listen()
        self._http_listener = listener

    async def setup_odm(self) -> None:
        """
        Register the database driver, import documents and subscribers, then connect.

        Only drivers known to `SQLAlchemyDriver` are registered. For any other name no
        connection exists, and requesting it fails.

        Raises:
            - ConnectionNotFoundError: If no driver was registered.
            - SQLAlchemyError: If the database cannot be reached.
        """
        self._transition(RunState.ODM_CONNECTING)
        odm_config = ODMConfig.from_configuration(self.configuration)

        self._odm_connection_manager = self.container.connection_manager()
        self._odm_connection_manager.container = self.container

        driver = SQLAlchemyDriver.from_name(odm_config.driver) if odm_config.driver else None
        if driver is not None:
            self._odm_connection_manager.add_connection(driver)
        else:
            await log.awarning("Unknown database driver, no connection registered.", driver=odm_config.driver)

        self._odm_connection_manager.import_documents_from_directories(self.options.document_directories())
        self._odm_connection_manager.import_subscribers_from_directories(self.options.subscriber_directories())
        await self._odm_connection_manager.get_connection().connect(odm_config.connection)

    def setup_controllers(self) -> None:
        "Load the controller modules and install their actions on the application."
        self._transition(RunState.CONTROLLERS_REGISTERING)
        action_registry = self.container.action_registry()
        loader.register_all(self.options.controller_directories(), action_registry)
        action_registry.container = self.container
        action_registry.register_actions(self._http_app)

    def _transition(self, state: RunState) -> None:
        log.debug("Bootstrap state changed.", previous=self.state.value, current=state.value)
        self.state = state
