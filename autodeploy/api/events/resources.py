"""Webhook delivery resources.

Both endpoints normalize the payload before answering, so a broken
delivery is rejected with 400 while an accepted one is deployed in the
background and answered with 202 straight away.

Usage
-----
Register the resources on the Falcon app::

    app.add_route("/events", EventResource(orchestrator))
    app.add_route("/events/github", GitHubEventResource(orchestrator))

"""

from __future__ import annotations

import typing as typ
from http import HTTPStatus

from autodeploy.api.errors import InvalidInputError
from autodeploy.errors import NormalizationError, NormalizationErrorKind

if typ.TYPE_CHECKING:
    from falcon.asgi import Request, Response

    from autodeploy.events import GitEvent
    from autodeploy.orchestrator import AutodeployOrchestrator

__all__ = [
    "EVENT_TYPE_HEADER",
    "GITHUB_EVENT_HEADER",
    "EventResource",
    "GitHubEventResource",
]

EVENT_TYPE_HEADER = "X-Autodeploy-Event"
GITHUB_EVENT_HEADER = "X-GitHub-Event"


def _accepted(resp: Response, event: GitEvent) -> None:
    resp.status = HTTPStatus.ACCEPTED
    resp.media = {
        "status": "accepted",
        "type": event.type,
        "repo": event.repo.slug,
        "commit": event.commit.id,
    }


class EventResource:
    """Accept provider-neutral git events on ``POST /events``.

    The optional ``X-Autodeploy-Event`` header supplies the event type when
    the body omits ``type``; when both are present they must agree.

    """

    def __init__(self, orchestrator: AutodeployOrchestrator) -> None:
        """Bind the orchestrator that deploys accepted events."""
        self._orchestrator = orchestrator

    async def on_post(self, req: Request, resp: Response) -> None:
        """Handle POST /events requests.

        Parameters
        ----------
        req
            Falcon request carrying the JSON event.
        resp
            Falcon response set to 202 with a summary of the event.

        """
        payload = await req.get_media()
        hint = req.get_header(EVENT_TYPE_HEADER)
        event = self._orchestrator.submit(payload, hint)
        _accepted(resp, event)


class GitHubEventResource:
    """Accept native GitHub webhook deliveries on ``POST /events/github``.

    GitHub sends every subscribed event type to the same URL, so event
    types the service does not deploy are acknowledged with 200 and
    ``"status": "ignored"`` instead of being rejected.

    """

    def __init__(self, orchestrator: AutodeployOrchestrator) -> None:
        """Bind the orchestrator that deploys accepted events."""
        self._orchestrator = orchestrator

    async def on_post(self, req: Request, resp: Response) -> None:
        """Handle POST /events/github requests."""
        github_event = req.get_header(GITHUB_EVENT_HEADER)
        if not github_event:
            raise InvalidInputError("header is required", field=GITHUB_EVENT_HEADER)
        payload = await req.get_media()
        try:
            event = self._orchestrator.submit_github(payload, github_event)
        except NormalizationError as exc:
            if exc.kind is not NormalizationErrorKind.UNSUPPORTED_EVENT:
                raise
            resp.status = HTTPStatus.OK
            resp.media = {"status": "ignored", "reason": str(exc)}
            return
        _accepted(resp, event)
