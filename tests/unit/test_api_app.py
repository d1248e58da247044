"""Unit tests for the Falcon application factory and webhook endpoints."""

from __future__ import annotations

import dataclasses
import typing as typ
from http import HTTPStatus

import falcon.testing
import pytest

from autodeploy.api.app import AppDependencies, create_app
from autodeploy.builds import BuildDispatcher, LocalBuildEngine
from autodeploy.hooks import AutodeployHooks
from autodeploy.orchestrator import AutodeployOrchestrator
from autodeploy.runners import IdleReaper, LocalProvisioner, RunnerPool
from tests.helpers.event_builders import (
    GitHubPullRequestSpec,
    GitHubPushSpec,
    PushPayloadSpec,
)

if typ.TYPE_CHECKING:
    from autodeploy.events import GitEvent


def _target(event: GitEvent) -> dict[str, str] | None:
    if event.type == "push" and event.branch == "main":
        return {"stage": "production"}
    return None


@dataclasses.dataclass
class Stack:
    """Orchestrator plus the fakes behind it."""

    engine: LocalBuildEngine
    pool: RunnerPool
    orchestrator: AutodeployOrchestrator


@pytest.fixture
def stack() -> Stack:
    """Return an orchestrator backed by in-process infrastructure."""
    engine = LocalBuildEngine()
    pool = RunnerPool(LocalProvisioner())
    orchestrator = AutodeployOrchestrator(
        AutodeployHooks(target=_target), pool, BuildDispatcher(pool, engine)
    )
    return Stack(engine, pool, orchestrator)


class TestHealthOnlyApp:
    """create_app() without dependencies."""

    @pytest.fixture
    def client(self) -> falcon.testing.TestClient:
        """Return a client for the health-only app."""
        return falcon.testing.TestClient(create_app())

    def test_health(self, client: falcon.testing.TestClient) -> None:
        """GET /health returns ok."""
        result = client.simulate_get("/health")

        assert result.status_code == HTTPStatus.OK
        assert result.json == {"status": "ok"}

    def test_ready(self, client: falcon.testing.TestClient) -> None:
        """GET /ready returns ready without a backlog count."""
        result = client.simulate_get("/ready")

        assert result.status_code == HTTPStatus.OK
        assert result.json == {"status": "ready"}

    def test_events_route_absent(self, client: falcon.testing.TestClient) -> None:
        """Webhook routes need an orchestrator."""
        result = client.simulate_post("/events", json=PushPayloadSpec().build())

        assert result.status_code == HTTPStatus.NOT_FOUND


class TestEventsEndpoint:
    """POST /events."""

    @pytest.mark.asyncio
    async def test_push_is_accepted_and_deployed(self, stack: Stack) -> None:
        """Valid deliveries are answered with 202 and built in the background."""
        app = create_app(AppDependencies(orchestrator=stack.orchestrator))

        async with falcon.testing.ASGIConductor(app) as conductor:
            result = await conductor.simulate_post(
                "/events", json=PushPayloadSpec().build()
            )
            await stack.orchestrator.drain()

        assert result.status_code == HTTPStatus.ACCEPTED
        assert result.json == {
            "status": "accepted",
            "type": "push",
            "repo": "octo/reef",
            "commit": "abc123def456",
        }
        assert len(stack.engine.builds) == 1

    @pytest.mark.asyncio
    async def test_event_type_header_fills_missing_type(self, stack: Stack) -> None:
        """The X-Autodeploy-Event header supplies the event type."""
        payload = PushPayloadSpec(branch="develop").build()
        del payload["type"]
        app = create_app(AppDependencies(orchestrator=stack.orchestrator))

        async with falcon.testing.ASGIConductor(app) as conductor:
            result = await conductor.simulate_post(
                "/events", json=payload, headers={"X-Autodeploy-Event": "push"}
            )
            await stack.orchestrator.drain()

        assert result.status_code == HTTPStatus.ACCEPTED
        assert stack.engine.builds == {}, "develop is not a deploy branch"

    @pytest.mark.asyncio
    async def test_malformed_payload_is_rejected(self, stack: Stack) -> None:
        """Missing fields produce 400 with kind and field."""
        payload = PushPayloadSpec().build()
        del payload["branch"]
        app = create_app(AppDependencies(orchestrator=stack.orchestrator))

        async with falcon.testing.ASGIConductor(app) as conductor:
            result = await conductor.simulate_post("/events", json=payload)

        assert result.status_code == HTTPStatus.BAD_REQUEST
        assert result.json["kind"] == "malformed_payload"
        assert result.json["field"] == "branch"
        assert stack.orchestrator.in_flight == 0

    @pytest.mark.asyncio
    async def test_unsupported_event_is_rejected(self, stack: Stack) -> None:
        """Unknown event types produce 400 with kind unsupported_event."""
        payload = {**PushPayloadSpec().build(), "type": "release"}
        app = create_app(AppDependencies(orchestrator=stack.orchestrator))

        async with falcon.testing.ASGIConductor(app) as conductor:
            result = await conductor.simulate_post("/events", json=payload)

        assert result.status_code == HTTPStatus.BAD_REQUEST
        assert result.json["kind"] == "unsupported_event"
        assert "field" not in result.json

    @pytest.mark.asyncio
    async def test_invalid_json_is_rejected(self, stack: Stack) -> None:
        """Bodies that are not JSON never reach the pipeline."""
        app = create_app(AppDependencies(orchestrator=stack.orchestrator))

        async with falcon.testing.ASGIConductor(app) as conductor:
            result = await conductor.simulate_post(
                "/events",
                body="{not json",
                headers={"Content-Type": "application/json"},
            )

        assert result.status_code == HTTPStatus.BAD_REQUEST
        assert stack.orchestrator.in_flight == 0


class TestGitHubEndpoint:
    """POST /events/github."""

    @pytest.mark.asyncio
    async def test_push_delivery_is_accepted(self, stack: Stack) -> None:
        """A branch push is translated and accepted."""
        app = create_app(AppDependencies(orchestrator=stack.orchestrator))

        async with falcon.testing.ASGIConductor(app) as conductor:
            result = await conductor.simulate_post(
                "/events/github",
                json=GitHubPushSpec().build(),
                headers={"X-GitHub-Event": "push"},
            )
            await stack.orchestrator.drain()

        assert result.status_code == HTTPStatus.ACCEPTED
        assert result.json["type"] == "push"
        assert len(stack.engine.builds) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("github_event", "payload"),
        [
            ("ping", {"zen": "Design for failure."}),
            ("pull_request", GitHubPullRequestSpec(action="labeled").build()),
        ],
    )
    async def test_non_deploying_delivery_is_ignored(
        self, stack: Stack, github_event: str, payload: dict[str, object]
    ) -> None:
        """Event types that never deploy are acknowledged, not rejected."""
        app = create_app(AppDependencies(orchestrator=stack.orchestrator))

        async with falcon.testing.ASGIConductor(app) as conductor:
            result = await conductor.simulate_post(
                "/events/github",
                json=payload,
                headers={"X-GitHub-Event": github_event},
            )

        assert result.status_code == HTTPStatus.OK
        assert result.json["status"] == "ignored"
        assert stack.orchestrator.in_flight == 0

    @pytest.mark.asyncio
    async def test_missing_header_is_rejected(self, stack: Stack) -> None:
        """Deliveries without X-GitHub-Event are a client error."""
        app = create_app(AppDependencies(orchestrator=stack.orchestrator))

        async with falcon.testing.ASGIConductor(app) as conductor:
            result = await conductor.simulate_post(
                "/events/github", json=GitHubPushSpec().build()
            )

        assert result.status_code == HTTPStatus.BAD_REQUEST
        assert result.json["field"] == "X-GitHub-Event"


class TestLifespan:
    """Startup and shutdown hooks."""

    @pytest.mark.asyncio
    async def test_startup_runs_hooks_and_shutdown_stops_background_work(
        self, stack: Stack
    ) -> None:
        """Startup hooks run before serving; shutdown stops the reaper."""
        started: list[str] = []

        async def prepare() -> None:
            started.append("prepare")

        reaper = IdleReaper(stack.pool, interval=3600)
        app = create_app(
            AppDependencies(
                orchestrator=stack.orchestrator,
                reaper=reaper,
                startup=(prepare,),
            )
        )

        async with falcon.testing.ASGIConductor(app) as conductor:
            assert started == ["prepare"], "startup hooks should have run"
            ready = await conductor.simulate_get("/ready")

        assert ready.json == {"status": "ready", "in_flight": 0}
        assert stack.orchestrator.in_flight == 0
