"""Application factory for the autodeploy Falcon ASGI application.

This module provides ``create_app()`` which builds and configures the
Falcon ASGI application with health endpoints and, when an orchestrator is
available, the webhook endpoints that feed it.

Usage
-----
Create a health-only app::

    app = create_app()

Create a full app with webhook endpoints::

    from autodeploy.api.app import AppDependencies, create_app

    deps = AppDependencies(orchestrator=orchestrator, reaper=reaper)
    app = create_app(deps)

"""

from __future__ import annotations

import dataclasses as dc
import typing as typ

import falcon.asgi

from autodeploy.api.errors import (
    InvalidInputError,
    handle_invalid_input,
    handle_normalization_error,
)
from autodeploy.api.health.resources import HealthResource, ReadyResource
from autodeploy.errors import NormalizationError

if typ.TYPE_CHECKING:
    from autodeploy.api.middleware import StartupHook
    from autodeploy.orchestrator import AutodeployOrchestrator
    from autodeploy.runners import IdleReaper

__all__ = ["AppDependencies", "create_app"]


@dc.dataclass(frozen=True, slots=True)
class AppDependencies:
    """Dependencies for the Falcon ASGI application.

    Attributes
    ----------
    orchestrator
        Pipeline behind ``POST /events`` and ``POST /events/github``. When
        ``None`` only health endpoints are registered.
    reaper
        Idle runner reaper run for the lifetime of the server.
    startup
        Coroutine functions awaited once when the server starts.

    """

    orchestrator: AutodeployOrchestrator | None = None
    reaper: IdleReaper | None = None
    startup: tuple[StartupHook, ...] = ()


def create_app(
    dependencies: AppDependencies | None = None,
) -> falcon.asgi.App:
    """Create and configure the Falcon ASGI application.

    Parameters
    ----------
    dependencies
        Optional application dependencies.  When ``None``, only health
        endpoints are available.

    Returns
    -------
    falcon.asgi.App
        Configured Falcon ASGI application.

    """
    deps = dependencies or AppDependencies()
    middleware: list[object] = []

    if deps.orchestrator is not None or deps.reaper is not None or deps.startup:
        from autodeploy.api.middleware import AutodeployLifespan

        middleware.append(
            AutodeployLifespan(
                orchestrator=deps.orchestrator,
                reaper=deps.reaper,
                startup=deps.startup,
            )
        )

    app = falcon.asgi.App(middleware=middleware)  # type: ignore[no-matching-overload]  # Falcon stubs

    # Health endpoints are always available
    app.add_route("/health", HealthResource())
    app.add_route("/ready", ReadyResource(deps.orchestrator))

    if deps.orchestrator is not None:
        from autodeploy.api.events.resources import EventResource, GitHubEventResource

        app.add_route("/events", EventResource(deps.orchestrator))
        app.add_route("/events/github", GitHubEventResource(deps.orchestrator))

    app.add_error_handler(NormalizationError, handle_normalization_error)
    app.add_error_handler(InvalidInputError, handle_invalid_input)

    return app
