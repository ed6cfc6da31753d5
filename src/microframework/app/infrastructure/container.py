# Copyright 2025 Björn Gunnar Bryggman. Licensed under the MIT License.

"""
Provides the dependency injection container of a bootstrapped application.

This module includes:
- `Container`: A dependency injection container holding the configuration store, the HTTP
  application and listener, the database connection manager and the action registry.
"""

from dependency_injector import containers, providers
from fastapi import FastAPI

from microframework.app.infrastructure.adapters.actions import ActionRegistry
from microframework.app.infrastructure.adapters.http import UvicornHTTPListener
from microframework.app.infrastructure.config import AppConfig, Configurator
from microframework.app.infrastructure.database.connection import SQLAlchemyConnectionManager

# ========================================================== #
#               Dependency Injection Container               #
# ========================================================== #


class Container(containers.DeclarativeContainer):
    """
    Dependency injection container of a bootstrapped application.

    Each run builds its own container, so every singleton below exists once per run.

    Attributes:
        - config: Singleton provider for the framework's own settings.
        - configurator: Singleton provider for the application configuration store.
        - http_app: Singleton provider for the FastAPI application.
        - http_listener: Factory provider for the listener serving the application.
        - connection_manager: Singleton provider for the database connection manager.
        - action_registry: Singleton provider for the controller action registry.
    """

    # ========================================= #
    #               Configuration               #
    # ========================================= #

    config = providers.Singleton(AppConfig)
    configurator = providers.Singleton(Configurator)

    # ================================ #
    #               HTTP               #
    # ================================ #

    http_app = providers.Singleton(FastAPI)
    http_listener = providers.Factory(UvicornHTTPListener)

    # =============================================== #
    #               Database Management               #
    # =============================================== #

    connection_manager = providers.Singleton(SQLAlchemyConnectionManager)

    # ======================================= #
    #               Controllers               #
    # ======================================= #

    action_registry = providers.Singleton(ActionRegistry)
