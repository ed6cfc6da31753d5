# Copyright (C) 2025 Björn Gunnar Bryggman. Licensed under the MIT License.

"""
Provides tests for the SQLAlchemy drivers, connections and connection manager.

This module includes:
- `TestSQLAlchemyDriver`: Tests for looking up drivers by name.
- `TestSQLAlchemyConnection`: Tests for building URLs and opening engines.
- `TestSQLAlchemyConnectionManager`: Tests for holding connections and loading documents.
"""

import pytest
from sqlalchemy import inspect, select
from sqlalchemy.exc import OperationalError

from conftest import NOTE_DOCUMENT, SLUG_SUBSCRIBER, write_module
from microframework.app.domain.errors import ConnectionNotFoundError
from microframework.app.infrastructure.database.connection import (
    DRIVERS,
    SQLAlchemyConnection,
    SQLAlchemyConnectionManager,
    SQLAlchemyDriver,
)


class TestSQLAlchemyDriver:
    """
    Tests for looking up drivers by name.

    Methods:
        - test_known_names: Tests that every configured name maps to its async dialect.
        - test_unknown_name: Tests that unknown names give no driver.
    """

    # ====================================== #
    #               Unit Tests               #
    # ====================================== #

    @pytest.mark.parametrize("name", sorted(DRIVERS))
    def test_known_names(self, name) -> None:
        driver = SQLAlchemyDriver.from_name(name)

        assert driver.name == name
        assert driver.drivername == DRIVERS[name]

    def test_unknown_name(self) -> None:
        assert SQLAlchemyDriver.from_name("mongodb") is None


class TestSQLAlchemyConnection:
    """
    Tests for building URLs and opening engines.

    Methods:
        - test_url_from_parts: Tests that connection parts are combined with the driver's dialect.
        - test_url_given: Tests that a full URL is used as is.
        - test_connect_and_close: Tests that an engine is opened and disposed.
        - test_connect_failure: Tests that an unreachable database raises.
    """

    # ====================================== #
    #               Unit Tests               #
    # ====================================== #

    def test_url_from_parts(self) -> None:
        connection = SQLAlchemyConnectionManager().add_connection(SQLAlchemyDriver.from_name("postgresql"))

        url = connection.build_url(
            {"host": "db", "port": 5432, "database": "app", "username": "app", "password": "secret"}
        )

        assert url.drivername == "postgresql+asyncpg"
        assert (url.host, url.port, url.database, url.username, url.password) == ("db", 5432, "app", "app", "secret")

    def test_url_given(self) -> None:
        connection = SQLAlchemyConnectionManager().add_connection(SQLAlchemyDriver.from_name("postgresql"))

        url = connection.build_url({"url": "sqlite+aiosqlite:///:memory:", "host": "ignored"})

        assert url.drivername == "sqlite+aiosqlite"
        assert url.host is None

    # ============================================= #
    #               Integration Tests               #
    # ============================================= #

    @pytest.mark.integration
    async def test_connect_and_close(self) -> None:
        connection = SQLAlchemyConnectionManager().add_connection(SQLAlchemyDriver.from_name("sqlite"))

        await connection.connect({"database": ":memory:"})
        try:
            assert connection.is_connected
            assert connection.session_factory is not None
        finally:
            await connection.close()

        assert not connection.is_connected
        assert connection.session_factory is None

    @pytest.mark.integration
    async def test_connect_failure(self, tmp_path) -> None:
        connection = SQLAlchemyConnectionManager().add_connection(SQLAlchemyDriver.from_name("sqlite"))

        with pytest.raises(OperationalError):
            await connection.connect({"database": str(tmp_path / "missing" / "app.sqlite3")})


class TestSQLAlchemyConnectionManager:
    """
    Tests for holding connections and loading documents.

    Methods:
        - test_default_connection: Tests that connections are registered under "default".
        - test_named_connection: Tests that connections can be registered under other names.
        - test_connection_not_found: Tests that an unregistered name raises.
        - test_documents_and_subscribers: Tests that documents are mapped and subscribers attached.
    """

    # ====================================== #
    #               Unit Tests               #
    # ====================================== #

    def test_default_connection(self) -> None:
        manager = SQLAlchemyConnectionManager()

        connection = manager.add_connection(SQLAlchemyDriver.from_name("sqlite"))

        assert isinstance(connection, SQLAlchemyConnection)
        assert manager.has_connection()
        assert manager.get_connection() is connection
        assert connection.mapper_registry is manager.mapper_registry

    def test_named_connection(self) -> None:
        manager = SQLAlchemyConnectionManager()

        reporting = manager.add_connection(SQLAlchemyDriver.from_name("sqlite"), name="reporting")

        assert manager.get_connection("reporting") is reporting
        assert not manager.has_connection()

    def test_connection_not_found(self) -> None:
        with pytest.raises(ConnectionNotFoundError, match="'default'"):
            SQLAlchemyConnectionManager().get_connection()

    # ============================================= #
    #               Integration Tests               #
    # ============================================= #

    @pytest.mark.integration
    async def test_documents_and_subscribers(self, tmp_path, clean_mappers) -> None:
        write_module(tmp_path / "document" / "note.py", NOTE_DOCUMENT)
        write_module(tmp_path / "subscriber" / "slug.py", SLUG_SUBSCRIBER)
        manager = SQLAlchemyConnectionManager()
        connection = manager.add_connection(SQLAlchemyDriver.from_name("sqlite"))

        manager.import_documents_from_directories([tmp_path / "document"])
        manager.import_subscribers_from_directories([tmp_path / "subscriber"])
        await connection.connect({"database": str(tmp_path / "app.sqlite3"), "sync_schema": True})
        try:
            async with connection.engine.connect() as conn:
                tables = await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())
            assert tables == ["notes"]

            Note = manager.documents[0].Note
            async with connection.session_factory() as session:
                session.add(Note("Mapped By Registry"))
                await session.commit()
                note = (await session.execute(select(Note))).scalar_one()
            assert note.slug == "mapped-by-registry"
        finally:
            await manager.close()

        assert len(manager.subscribers) == 1
