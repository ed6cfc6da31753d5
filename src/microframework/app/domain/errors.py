# Copyright (C) 2025 Björn Gunnar Bryggman. Licensed under the MIT License.

"""
Provides the exceptions raised while bootstrapping an application.

This module includes:
- `MicroFrameworkError`: Base class for every error raised by the framework.
- `ConfigurationError`: Raised when the loaded configuration cannot be applied.
- `RegistrationError`: Raised when a discovered module cannot register itself.
- `ConnectionNotFoundError`: Raised when a database connection was never registered.
"""


class MicroFrameworkError(Exception):
    """Base class for every error raised by the framework."""


class ConfigurationError(MicroFrameworkError, ValueError):
    """Raised when the loaded configuration cannot be applied."""


class RegistrationError(MicroFrameworkError):
    """Raised when a discovered module does not expose a `register` hook."""


class ConnectionNotFoundError(MicroFrameworkError):
    """Raised when a database connection was requested but never registered."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"No database connection named '{name}' has been registered.")
