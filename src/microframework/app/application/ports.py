# Copyright (C) 2025 Björn Gunnar Bryggman. Licensed under the MIT License.

"""
Provides abstract interfaces for the collaborators wired together during bootstrap.

This module includes:
- `AbstractHTTPListener`: Abstract interface for a bound HTTP listener.
- `AbstractConnection`: Abstract interface for a database connection.
- `AbstractDriver`: Abstract interface for a database driver.
- `AbstractConnectionManager`: Abstract interface for the database connection manager.
- `AbstractActionRegistry`: Abstract interface for the controller action registry.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from fastapi import FastAPI

# ========================================= #
#               HTTP Listener               #
# ========================================= #


class AbstractHTTPListener(ABC):
    """
    Abstract interface for a bound HTTP listener.

    Methods:
        - listen: Binds the listening socket and starts serving.
        - close: Stops serving and releases the socket.
        - wait_closed: Waits until the listener stops serving.
    """

    @property
    @abstractmethod
    def port(self) -> int:
        """The port the listener is bound to."""
        raise NotImplementedError

    @abstractmethod
    def listen(self) -> None:
        """
        Bind the listening socket and start serving.

        The socket must be bound before this method returns.

        Exceptions:
            - NotImplementedError: Raised when the method is not implemented by a subclass.
        """
        raise NotImplementedError

    @abstractmethod
    async def close(self) -> None:
        """
        Stop serving and release the socket.

        Exceptions:
            - NotImplementedError: Raised when the method is not implemented by a subclass.
        """
        raise NotImplementedError

    @abstractmethod
    async def wait_closed(self) -> None:
        """
        Wait until the listener stops serving.

        Exceptions:
            - NotImplementedError: Raised when the method is not implemented by a subclass.
        """
        raise NotImplementedError


# ====================================== #
#               Database                 #
# ====================================== #


class AbstractConnection(ABC):
    """
    Abstract interface for a database connection.

    Methods:
        - connect: Opens the connection with the given options.
        - close: Closes the connection.
    """

    @abstractmethod
    async def connect(self, options: dict[str, Any]) -> None:
        """
        Open the connection.

        Args:
            - options: Connection options taken from the configuration.

        Exceptions:
            - NotImplementedError: Raised when the method is not implemented by a subclass.
        """
        raise NotImplementedError

    @abstractmethod
    async def close(self) -> None:
        """
        Close the connection.

        Exceptions:
            - NotImplementedError: Raised when the method is not implemented by a subclass.
        """
        raise NotImplementedError


class AbstractDriver(ABC):
    """Abstract interface for a database driver."""

    name: str

    @abstractmethod
    def create_connection(self, connection_manager: "AbstractConnectionManager") -> AbstractConnection:
        """
        Create a connection served by this driver.

        Args:
            - connection_manager: The manager owning the connection.

        Exceptions:
            - NotImplementedError: Raised when the method is not implemented by a subclass.
        """
        raise NotImplementedError


class AbstractConnectionManager(ABC):
    """
    Abstract interface for the database connection manager.

    Attributes:
        - container: The dependency injection container of the current run.

    Methods:
        - add_connection: Registers a connection served by the given driver.
        - get_connection: Returns a registered connection.
        - import_documents_from_directories: Loads document modules from directories.
        - import_subscribers_from_directories: Loads subscriber modules from directories.
    """

    container: Any = None

    @abstractmethod
    def add_connection(self, driver: AbstractDriver, name: str = "default") -> AbstractConnection:
        raise NotImplementedError

    @abstractmethod
    def get_connection(self, name: str = "default") -> AbstractConnection:
        raise NotImplementedError

    @abstractmethod
    def import_documents_from_directories(self, directories: Iterable[Path]) -> None:
        raise NotImplementedError

    @abstractmethod
    def import_subscribers_from_directories(self, directories: Iterable[Path]) -> None:
        raise NotImplementedError


# ========================================= #
#               Action Registry             #
# ========================================= #


class AbstractActionRegistry(ABC):
    """
    Abstract interface for the controller action registry.

    Attributes:
        - container: The dependency injection container used to resolve controllers.

    Methods:
        - register_actions: Installs every registered action on the HTTP application.
    """

    container: Any = None

    @abstractmethod
    def register_actions(self, app: FastAPI) -> None:
        """
        Install every registered action on the HTTP application.

        Args:
            - app: The HTTP application receiving the routes.

        Exceptions:
            - NotImplementedError: Raised when the method is not implemented by a subclass.
        """
        raise NotImplementedError
