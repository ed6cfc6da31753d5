# Copyright (C) 2025 Björn Gunnar Bryggman. Licensed under the MIT License.

"""
Provides the registry of controller actions and their installation on FastAPI.

This module includes:
- `resolve_controller`: Returns the container's singleton instance of a controller class.
- `ActionRegistry`: Collects actions from controller modules and installs them as routes.
"""

import re
from collections.abc import Callable
from dataclasses import replace
from typing import Any

from dependency_injector import containers, providers
from fastapi import FastAPI
from structlog import stdlib

from microframework.app.application import ports
from microframework.app.domain.models import Action

log = stdlib.get_logger(__name__)

# ========================================== #
#               Controllers                  #
# ========================================== #


def resolve_controller(container: containers.Container, controller: type) -> Any:
    """
    Return the container's singleton instance of a controller class.

    A provider declared on the container for the class is used when there is one. Otherwise a
    `Singleton` provider is added to the container on first use, so every action of a controller
    shares one instance per run.

    Args:
        - container: The dependency injection container of the current run.
        - controller: The controller class.

    Returns:
        - Any: The controller instance.
    """
    for provider in container.providers.values():
        if isinstance(provider, providers.Singleton) and provider.provides is controller:
            return provider()

    name = "controller__" + re.sub(r"\W", "_", f"{controller.__module__}.{controller.__qualname__}")
    provider = providers.Singleton(controller)
    container.set_provider(name, provider)
    return provider()


# ============================================= #
#               Action Registry                 #
# ============================================= #


class ActionRegistry(ports.AbstractActionRegistry):
    """
    Collects actions from controller modules and installs them as FastAPI routes.

    Controller modules receive the registry in their `register` hook:

        def register(registry):
            @registry.controller("/users")
            class UserController:
                @registry.get("/{user_id}")
                async def get_one(self, user_id: int) -> dict:
                    ...

    Methods decorated inside a class become actions of that class once the class decorator
    runs. Functions decorated at module level are installed as they are.

    Attributes:
        - container: The dependency injection container used to resolve controllers.
        - actions: The registered actions, in registration order.
    """

    def __init__(self) -> None:
        self.container = None
        self.actions: list[Action] = []

    def add_action(
        self,
        method: str,
        route: str,
        handler: Callable[..., Any],
        controller: type | None = None,
        prefix: str = "",
        **route_options: Any,
    ) -> Action:
        action = Action(
            method=method.upper(),
            route=route,
            handler=handler,
            controller=controller,
            prefix=prefix,
            route_options=route_options,
        )
        self.actions.append(action)
        return action

    def route(self, method: str, route: str, **route_options: Any) -> Callable[[Callable], Callable]:
        def decorate(handler: Callable) -> Callable:
            self.add_action(method, route, handler, **route_options)
            return handler

        return decorate

    def get(self, route: str, **route_options: Any) -> Callable[[Callable], Callable]:
        return self.route("GET", route, **route_options)

    def post(self, route: str, **route_options: Any) -> Callable[[Callable], Callable]:
        return self.route("POST", route, **route_options)

    def put(self, route: str, **route_options: Any) -> Callable[[Callable], Callable]:
        return self.route("PUT", route, **route_options)

    def patch(self, route: str, **route_options: Any) -> Callable[[Callable], Callable]:
        return self.route("PATCH", route, **route_options)

    def delete(self, route: str, **route_options: Any) -> Callable[[Callable], Callable]:
        return self.route("DELETE", route, **route_options)

    def controller(self, prefix: str = "") -> Callable[[type], type]:
        """
        Class decorator claiming the actions declared in the class body.

        Args:
            - prefix: The route prefix shared by the class's actions.
        """

        def decorate(cls: type) -> type:
            members = [member for member in vars(cls).values() if callable(member)]
            self.actions = [
                replace(action, controller=cls, prefix=prefix)
                if action.controller is None and any(action.handler is member for member in members)
                else action
                for action in self.actions
            ]
            return cls

        return decorate

    def endpoint(self, action: Action) -> Callable[..., Any]:
        "Return the callable FastAPI should invoke for an action."
        if action.controller is None:
            return action.handler

        if self.container is not None:
            instance = resolve_controller(self.container, action.controller)
        else:
            instance = action.controller()
        return getattr(instance, action.handler.__name__)

    def register_actions(self, app: FastAPI) -> None:
        """
        Install every registered action as a route of the application.

        Args:
            - app: The HTTP application receiving the routes.

        Raises:
            - Exception: If a controller cannot be resolved or a route is invalid.
        """
        try:
            for action in self.actions:
                app.add_api_route(action.path, self.endpoint(action), methods=[action.method], **action.route_options)
                log.debug("Registered action.", method=action.method, path=action.path)
        except Exception:
            log.exception("Error registering actions.")
            raise
        log.info("Registered %d actions.", len(self.actions))
