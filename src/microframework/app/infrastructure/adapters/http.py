# Copyright (C) 2025 Björn Gunnar Bryggman. Licensed under the MIT License.

"""
Provides the HTTP side of the bootstrap: body parsers and the listener.

This module includes:
- `parse_bytes`: Converts a size such as "100kb" into a number of bytes.
- `BodyParserMiddleware`: Base ASGI middleware parsing request bodies of matching media types.
- `JSONBodyParser`, `TextBodyParser`, `RawBodyParser`, `URLEncodedBodyParser`: The parser kinds.
- `BODY_PARSERS`: Maps configuration names to parser classes.
- `normalize_options`: Translates Express body-parser option names.
- `attach_body_parser`: Validates options and attaches a parser to an application.
- `UvicornHTTPListener`: Binds a socket and serves an application on it with uvicorn.
"""

import asyncio
import contextlib
import fnmatch
import json
import re
import socket
from abc import ABC, abstractmethod
from typing import Any, ClassVar
from urllib.parse import parse_qs

import uvicorn
from fastapi import FastAPI
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send
from structlog import stdlib

from microframework.app.application.ports import AbstractHTTPListener
from microframework.app.domain.errors import ConfigurationError
from microframework.app.domain.models import DEFAULT_HOST

log = stdlib.get_logger(__name__)

# ===================================== #
#               Helpers                 #
# ===================================== #


SIZE_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(b|kb|mb|gb)?\s*$", re.IGNORECASE)
SIZE_UNITS = {"b": 1, "kb": 1024, "mb": 1024**2, "gb": 1024**3}


def parse_bytes(size: int | str) -> int:
    """
    Convert a size into a number of bytes.

    Args:
        - size: A number of bytes, or a string such as "512", "100kb" or "1.5mb".

    Returns:
        - int: The size in bytes.

    Raises:
        - ValueError: If the size cannot be parsed.
    """
    if isinstance(size, bool):
        raise ValueError(f"Invalid size: {size!r}")
    if isinstance(size, int):
        return size

    match = SIZE_PATTERN.match(str(size))
    if not match:
        raise ValueError(f"Invalid size: {size!r}")
    return int(float(match.group(1)) * SIZE_UNITS[(match.group(2) or "b").lower()])


def split_content_type(header: str) -> tuple[str, str | None]:
    "Split a Content-Type header into its media type and charset."
    media_type, _, parameters = header.partition(";")
    charset = None
    for parameter in parameters.split(";"):
        key, _, value = parameter.partition("=")
        if key.strip().lower() == "charset":
            charset = value.strip().strip('"') or None
    return media_type.strip().lower(), charset


class BodyParseError(Exception):
    "Raised by a parser when the body cannot be parsed."

    def __init__(self, status_code: int, detail: str) -> None:
        super().__init__(detail)
        self.status_code = status_code
        self.detail = detail


# ============================================ #
#               Body Parsers                   #
# ============================================ #


class BodyParserMiddleware(ABC):
    """
    Base ASGI middleware parsing request bodies of matching media types.

    The parsed body is stored in `request.state.body`. The raw bytes are replayed to the
    application, so handlers can still read the body themselves.

    Attributes:
        - app: The wrapped ASGI application.
        - limit: The maximum body size, in bytes.
        - types: The media type patterns this parser handles.

    Methods:
        - matches: Tells whether a media type is handled by this parser.
        - parse: Parses the raw body, implemented by each kind.
    """

    default_types: ClassVar[tuple[str, ...]] = ()

    def __init__(self, app: ASGIApp, limit: int | str = "100kb", type: str | list[str] | None = None) -> None:
        self.app = app
        self.limit = parse_bytes(limit)
        if type is None:
            self.types = self.default_types
        elif isinstance(type, str):
            self.types = (type.lower(),)
        else:
            self.types = tuple(t.lower() for t in type)

    def matches(self, media_type: str) -> bool:
        return bool(media_type) and any(fnmatch.fnmatchcase(media_type, pattern) for pattern in self.types)

    @abstractmethod
    def parse(self, body: bytes, charset: str | None) -> Any:
        """
        Parse the raw body.

        Raises:
            - BodyParseError: If the body cannot be parsed.
        """
        raise NotImplementedError

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope, receive)
        media_type, charset = split_content_type(request.headers.get("content-type", ""))
        if not self.matches(media_type):
            await self.app(scope, receive, send)
            return

        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > self.limit:
            await self.reject(scope, receive, send, 413, "Request entity too large.")
            return

        chunks = []
        size = 0
        async for chunk in request.stream():
            size += len(chunk)
            if size > self.limit:
                await self.reject(scope, receive, send, 413, "Request entity too large.")
                return
            chunks.append(chunk)
        body = b"".join(chunks)

        try:
            parsed = self.parse(body, charset)
        except BodyParseError as error:
            await self.reject(scope, receive, send, error.status_code, error.detail)
            return

        scope.setdefault("state", {})["body"] = parsed

        replayed = False

        async def replay() -> Message:
            nonlocal replayed
            if not replayed:
                replayed = True
                return {"type": "http.request", "body": body, "more_body": False}
            return await receive()

        await self.app(scope, replay, send)

    async def reject(self, scope: Scope, receive: Receive, send: Send, status_code: int, detail: str) -> None:
        await log.adebug("Rejected request body.", status_code=status_code, detail=detail)
        response = JSONResponse({"detail": detail}, status_code=status_code)
        await response(scope, receive, send)


def decode(body: bytes, charset: str | None, default: str = "utf-8") -> str:
    try:
        return body.decode(charset or default)
    except LookupError as error:
        raise BodyParseError(415, f"Unsupported charset '{charset}'.") from error
    except UnicodeDecodeError as error:
        raise BodyParseError(400, "Request body could not be decoded.") from error


class JSONBodyParser(BodyParserMiddleware):
    "Parses JSON bodies. In strict mode only objects and arrays are accepted."

    default_types = ("application/json", "application/*+json")

    def __init__(
        self, app: ASGIApp, limit: int | str = "100kb", type: str | list[str] | None = None, strict: bool = True
    ) -> None:
        super().__init__(app, limit=limit, type=type)
        self.strict = strict

    def parse(self, body: bytes, charset: str | None) -> Any:
        text = decode(body, charset)
        if not text.strip():
            return {}
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as error:
            raise BodyParseError(400, f"Invalid JSON: {error.msg}.") from error
        if self.strict and not isinstance(parsed, (dict, list)):
            raise BodyParseError(400, "Strict JSON bodies must be an object or an array.")
        return parsed


class TextBodyParser(BodyParserMiddleware):
    "Decodes bodies to text, with `default_charset` when the request names none."

    default_types = ("text/plain",)

    def __init__(
        self,
        app: ASGIApp,
        limit: int | str = "100kb",
        type: str | list[str] | None = None,
        default_charset: str = "utf-8",
    ) -> None:
        super().__init__(app, limit=limit, type=type)
        self.default_charset = default_charset

    def parse(self, body: bytes, charset: str | None) -> str:
        return decode(body, charset, self.default_charset)


class RawBodyParser(BodyParserMiddleware):
    default_types = ("application/octet-stream",)

    def parse(self, body: bytes, charset: str | None) -> bytes:
        return body


class URLEncodedBodyParser(BodyParserMiddleware):
    "Parses form bodies. Repeated keys become lists."

    default_types = ("application/x-www-form-urlencoded",)

    def __init__(
        self,
        app: ASGIApp,
        limit: int | str = "100kb",
        type: str | list[str] | None = None,
        parameter_limit: int = 1000,
    ) -> None:
        super().__init__(app, limit=limit, type=type)
        if parameter_limit < 1:
            raise ValueError("The parameter limit must be at least 1.")
        self.parameter_limit = parameter_limit

    def parse(self, body: bytes, charset: str | None) -> dict[str, Any]:
        text = decode(body, charset)
        if not text:
            return {}
        if text.count("&") + 1 > self.parameter_limit:
            raise BodyParseError(413, "Too many parameters.")

        parsed = parse_qs(text, keep_blank_values=True)
        return {key: values[0] if len(values) == 1 else values for key, values in parsed.items()}


BODY_PARSERS: dict[str, type[BodyParserMiddleware]] = {
    "json": JSONBodyParser,
    "text": TextBodyParser,
    "raw": RawBodyParser,
    "urlencoded": URLEncodedBodyParser,
}

# Option names used by Express body-parser configurations.
OPTION_ALIASES = {
    "parameterLimit": "parameter_limit",
    "defaultCharset": "default_charset",
}
IGNORED_OPTIONS = frozenset({"extended", "inflate", "verify", "reviver"})


def normalize_options(kind: str, options: dict[str, Any]) -> dict[str, Any]:
    """
    Translate Express body-parser option names into parser keyword options.

    Aliases are renamed. Options with no counterpart are dropped with a warning: bodies are
    never decompressed, and form bodies are always parsed flat.

    Args:
        - kind: The parser kind, used in the warning.
        - options: The configured options.

    Returns:
        - dict[str, Any]: The keyword options for the parser.
    """
    normalized = {}
    for name, value in options.items():
        if name in IGNORED_OPTIONS:
            log.warning("Ignoring unsupported '%s' option of the '%s' body parser.", name, kind)
            continue
        normalized[OPTION_ALIASES.get(name, name)] = value
    return normalized


def attach_body_parser(app: FastAPI, kind: str, options: dict[str, Any] | None = None) -> type[BodyParserMiddleware]:
    """
    Attach the body parser of the given kind to an application.

    The options are checked by building a parser once, so mistakes surface here instead of on
    the first request.

    Args:
        - app: The application receiving the middleware.
        - kind: One of the names in `BODY_PARSERS`.
        - options: Keyword options for the parser, Express body-parser names accepted.

    Returns:
        - type[BodyParserMiddleware]: The attached parser class.

    Raises:
        - ConfigurationError: If the kind is unknown or the options are invalid.
    """
    parser = BODY_PARSERS.get(kind)
    if parser is None:
        raise ConfigurationError(f"Incorrect body parser type ({kind}) is specified in the microframework configuration")

    options = normalize_options(kind, options or {})
    try:
        parser(None, **options)
    except (TypeError, ValueError) as error:
        raise ConfigurationError(f"Invalid options for the '{kind}' body parser: {error}") from error

    app.add_middleware(parser, **options)
    log.debug("Attached '%s' body parser.", kind)
    return parser


# ===================================== #
#               Listener                #
# ===================================== #


class UvicornHTTPListener(AbstractHTTPListener):
    """
    Serves an application with uvicorn on a socket bound up front.

    Binding happens synchronously in `listen`, so a port conflict fails the caller before
    anything else starts. Serving runs as a background task on the current event loop.

    Attributes:
        - app: The application to serve.
        - host: The interface to bind.
        - socket: The bound socket, once listening.
        - server: The uvicorn server, once listening.
    """

    def __init__(self, app: FastAPI, port: int, host: str = DEFAULT_HOST) -> None:
        self.app = app
        self.host = host
        self._port = port
        self.socket: socket.socket | None = None
        self.server: uvicorn.Server | None = None
        self._task: asyncio.Task | None = None

    @property
    def port(self) -> int:
        if self.socket is not None:
            return self.socket.getsockname()[1]
        return self._port

    def listen(self) -> None:
        """
        Bind the socket and start serving.

        Raises:
            - OSError: If the socket cannot be bound.
        """
        try:
            self.socket = socket.create_server((self.host, self._port))
        except OSError:
            log.exception("Error binding %s:%s.", self.host, self._port)
            raise
        self.socket.set_inheritable(True)

        self.server = uvicorn.Server(uvicorn.Config(self.app, log_config=None))
        self._task = asyncio.create_task(self.server.serve(sockets=[self.socket]))
        log.info("HTTP listener bound.", host=self.host, port=self.port)

    async def close(self) -> None:
        "Stop serving and release the socket. A failure of the serve task is logged, not raised."
        if self.server is not None:
            self.server.should_exit = True
        if self._task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                try:
                    await self._task
                except Exception:
                    await log.aexception("HTTP server stopped with an error.", port=self._port)
        if self.server is not None:
            for server in getattr(self.server, "servers", []):
                server.close()
        if self.socket is not None:
            self.socket.close()
        await log.ainfo("HTTP listener closed.", port=self._port)

    async def wait_closed(self) -> None:
        if self._task is not None:
            await self._task
