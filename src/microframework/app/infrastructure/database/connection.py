# Copyright (C) 2025 Björn Gunnar Bryggman. Licensed under the MIT License.

"""
Provides the database connection manager using SQLAlchemy.

This module includes:
- `DRIVERS`: Maps driver names from the configuration to SQLAlchemy async dialects.
- `SQLAlchemyDriver`: A database driver backed by an SQLAlchemy async dialect.
- `SQLAlchemyConnection`: An async engine opened from configuration options.
- `SQLAlchemyConnectionManager`: Holds connections and the registry documents are mapped on.
"""

from collections.abc import Iterable
from pathlib import Path
from typing import Any

from sqlalchemy import URL, make_url, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import registry
from structlog import stdlib

from microframework.app.application import ports
from microframework.app.domain.errors import ConnectionNotFoundError
from microframework.app.infrastructure.adapters import loader

log = stdlib.get_logger(__name__)

DRIVERS = {
    "sqlite": "sqlite+aiosqlite",
    "postgresql": "postgresql+asyncpg",
    "mysql": "mysql+aiomysql",
}

# =================================== #
#               Drivers               #
# =================================== #


class SQLAlchemyDriver(ports.AbstractDriver):
    """
    A database driver backed by an SQLAlchemy async dialect.

    Attributes:
        - name: The driver name used in the configuration.
        - drivername: The SQLAlchemy dialect and DBAPI, e.g. "sqlite+aiosqlite".
    """

    def __init__(self, name: str, drivername: str) -> None:
        self.name = name
        self.drivername = drivername

    @classmethod
    def from_name(cls, name: str) -> "SQLAlchemyDriver | None":
        "Return the driver registered under `name`, or None for unknown names."
        if name not in DRIVERS:
            return None
        return cls(name, DRIVERS[name])

    def create_connection(self, connection_manager: "SQLAlchemyConnectionManager") -> "SQLAlchemyConnection":
        return SQLAlchemyConnection(self, connection_manager.mapper_registry)


# ======================================= #
#               Connection                #
# ======================================= #


class SQLAlchemyConnection(ports.AbstractConnection):
    """
    An async engine opened from configuration options.

    Attributes:
        - driver: The driver serving this connection.
        - mapper_registry: The registry holding the mapped documents.
        - engine: The async engine, once connected.
        - session_factory: Factory for sessions bound to the engine, once connected.

    Methods:
        - build_url: Builds the database URL from connection options.
        - connect: Creates the engine and checks the database answers.
        - close: Disposes the engine.
    """

    def __init__(self, driver: SQLAlchemyDriver, mapper_registry: registry) -> None:
        self.driver = driver
        self.mapper_registry = mapper_registry
        self.engine: AsyncEngine | None = None
        self.session_factory: async_sessionmaker[AsyncSession] | None = None

    @property
    def is_connected(self) -> bool:
        return self.engine is not None

    def build_url(self, options: dict[str, Any]) -> URL:
        """
        Build the database URL from connection options.

        Args:
            - options: Either a full `url`, or `host`, `port`, `database`, `username`,
              `password` and `query` parts combined with the driver's dialect.

        Returns:
            - URL: The database URL.
        """
        if options.get("url"):
            return make_url(options["url"])
        return URL.create(
            drivername=self.driver.drivername,
            username=options.get("username"),
            password=options.get("password"),
            host=options.get("host"),
            port=options.get("port"),
            database=options.get("database"),
            query=options.get("query") or {},
        )

    async def connect(self, options: dict[str, Any]) -> None:
        """
        Create the engine and check the database answers.

        Args:
            - options: Connection options. `engine_options` is passed to the engine, and
              `sync_schema` creates the tables of every mapped document.

        Raises:
            - SQLAlchemyError: If the database cannot be reached.
        """
        try:
            self.engine = create_async_engine(self.build_url(options), **(options.get("engine_options") or {}))
            async with self.engine.begin() as conn:
                await conn.execute(text("SELECT 1"))
                if options.get("sync_schema"):
                    await conn.run_sync(self.mapper_registry.metadata.create_all)
            self.session_factory = async_sessionmaker(self.engine, expire_on_commit=False, class_=AsyncSession)
            await log.ainfo("Database connection opened.", driver=self.driver.name)
        except SQLAlchemyError:
            await log.aexception("Error opening database connection.", driver=self.driver.name)
            raise

    async def close(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()
            self.engine = None
            self.session_factory = None
            await log.adebug("Database connection closed.", driver=self.driver.name)


# ============================================== #
#               Connection Manager               #
# ============================================== #


class SQLAlchemyConnectionManager(ports.AbstractConnectionManager):
    """
    Holds the database connections and the registry documents are mapped on.

    Document and subscriber modules are loaded from directories; each one receives the
    `mapper_registry` in its `register` hook, where documents map their tables and subscribers
    attach their SQLAlchemy event listeners.

    Attributes:
        - container: The dependency injection container of the current run.
        - mapper_registry: The registry documents are mapped on.
        - documents: The loaded document modules.
        - subscribers: The loaded subscriber modules.
    """

    def __init__(self) -> None:
        self.container = None
        self.mapper_registry = registry()
        self.documents = []
        self.subscribers = []
        self._connections: dict[str, SQLAlchemyConnection] = {}

    def add_connection(self, driver: SQLAlchemyDriver, name: str = "default") -> SQLAlchemyConnection:
        connection = driver.create_connection(self)
        self._connections[name] = connection
        log.debug("Registered '%s' driver for connection '%s'.", driver.name, name)
        return connection

    def has_connection(self, name: str = "default") -> bool:
        return name in self._connections

    def get_connection(self, name: str = "default") -> SQLAlchemyConnection:
        try:
            return self._connections[name]
        except KeyError:
            raise ConnectionNotFoundError(name) from None

    def import_documents_from_directories(self, directories: Iterable[Path]) -> None:
        self.documents.extend(loader.register_all(directories, self.mapper_registry))
        log.debug("Imported %d document modules.", len(self.documents))

    def import_subscribers_from_directories(self, directories: Iterable[Path]) -> None:
        self.subscribers.extend(loader.register_all(directories, self.mapper_registry))
        log.debug("Imported %d subscriber modules.", len(self.subscribers))

    async def close(self) -> None:
        for connection in self._connections.values():
            await connection.close()
