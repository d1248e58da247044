"""Health probe resources for Kubernetes liveness and readiness checks.

Liveness never depends on the pipeline. Readiness reports how many
deliveries are still being deployed when an orchestrator is wired in.

Usage
-----
Register health endpoints on the Falcon app::

    from autodeploy.api.health.resources import HealthResource, ReadyResource

    app.add_route("/health", HealthResource())
    app.add_route("/ready", ReadyResource(orchestrator))

"""

from __future__ import annotations

import typing as typ
from http import HTTPStatus

if typ.TYPE_CHECKING:
    from falcon.asgi import Request, Response

    from autodeploy.orchestrator import AutodeployOrchestrator

__all__ = ["HealthResource", "ReadyResource"]


class HealthResource:
    """Liveness probe resource returning ``{"status": "ok"}``."""

    async def on_get(self, _req: Request, resp: Response) -> None:
        """Handle GET /health requests."""
        resp.media = {"status": "ok"}
        resp.status = HTTPStatus.OK


class ReadyResource:
    """Readiness probe resource returning ``{"status": "ready"}``.

    When an orchestrator is attached the body also carries ``in_flight``,
    the number of background deployments not yet finished.

    """

    def __init__(self, orchestrator: AutodeployOrchestrator | None = None) -> None:
        """Optionally attach the orchestrator whose backlog is reported."""
        self._orchestrator = orchestrator

    async def on_get(self, _req: Request, resp: Response) -> None:
        """Handle GET /ready requests.

        Parameters
        ----------
        _req
            Falcon request (unused).
        resp
            Falcon response populated with readiness status.

        """
        media: dict[str, object] = {"status": "ready"}
        if self._orchestrator is not None:
            media["in_flight"] = self._orchestrator.in_flight
        resp.media = media
        resp.status = HTTPStatus.OK
