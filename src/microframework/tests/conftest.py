import json
from pathlib import Path
from textwrap import dedent

import pytest
from dependency_injector import providers
from sqlalchemy.orm import clear_mappers

from microframework.app.application.ports import AbstractHTTPListener
from microframework.app.infrastructure.container import Container

# ============================================== #
#               Application Files                #
# ============================================== #


PING_CONTROLLER = dedent(
    """
    def register(registry):
        @registry.controller()
        class PingController:
            @registry.get("/ping")
            async def ping(self) -> dict:
                return {"pong": True}
    """
)

NOTE_DOCUMENT = dedent(
    """
    from sqlalchemy import Column, Integer, String, Table


    class Note:
        def __init__(self, text):
            self.text = text
            self.slug = None


    def register(mapper_registry):
        notes = Table(
            "notes",
            mapper_registry.metadata,
            Column("id", Integer, primary_key=True),
            Column("text", String, nullable=False),
            Column("slug", String),
        )
        mapper_registry.map_imperatively(Note, notes)
    """
)

SLUG_SUBSCRIBER = dedent(
    """
    from sqlalchemy import event


    def slugify(mapper, connection, target):
        target.slug = target.text.lower().replace(" ", "-")


    def register(mapper_registry):
        for mapper in mapper_registry.mappers:
            if mapper.class_.__name__ == "Note":
                event.listen(mapper.class_, "before_insert", slugify)
    """
)


def write_json(path: Path, document: dict) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(document), encoding="utf-8")
    return path


def write_module(path: Path, source: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(source, encoding="utf-8")
    return path


@pytest.fixture
def app_directory(tmp_path) -> Path:
    "An application listening on port 4000 with a JSON body parser and a `/ping` controller."
    base = tmp_path / "app"
    write_json(base / "configuration" / "config.json", {"express": {"port": 4000, "bodyParser": "json"}})
    write_json(base / "configuration" / "parameters.json", {})
    write_module(base / "controller" / "ping.py", PING_CONTROLLER)
    return base


@pytest.fixture
def clean_mappers():
    try:
        yield
    finally:
        clear_mappers()


# ======================================== #
#               Dependencies               #
# ======================================== #


class FakeHTTPListener(AbstractHTTPListener):
    "Records what the bootstrap does with its listener without binding a socket."

    def __init__(self, app, port: int, host: str, created: list) -> None:
        self.app = app
        self.host = host
        self._port = port
        self.listening = False
        self.closed = False
        created.append(self)

    @property
    def port(self) -> int:
        return self._port

    def listen(self) -> None:
        self.listening = True

    async def close(self) -> None:
        self.listening = False
        self.closed = True

    async def wait_closed(self) -> None:
        pass


@pytest.fixture
def listeners() -> list[FakeHTTPListener]:
    return []


@pytest.fixture
def container(listeners):
    container = Container()
    container.http_listener.override(providers.Factory(FakeHTTPListener, created=listeners))
    try:
        yield container
    finally:
        container.reset_override()
