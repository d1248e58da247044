"""Autodeploy pipeline: webhook event to build job.

Each delivery runs independently::

    normalize -> target hook -> runner hook -> pool.acquire -> dispatcher.run

An event whose target hook returns ``None`` stops after resolution. Errors
abort only the pipeline that raised them and are never retried here.

Usage
-----
>>> orchestrator = AutodeployOrchestrator(hooks, pool, dispatcher)
>>> outcome = await orchestrator.handle(payload)
>>> outcome.job.status
<BuildStatus.SUCCEEDED: 'succeeded'>

"""

from __future__ import annotations

import asyncio
import dataclasses
import typing as typ

from autodeploy.common.time import utcnow
from autodeploy.config import AutodeployConfig
from autodeploy.events import normalize, translate_github_webhook
from autodeploy.observability import AutodeployEventLogger
from autodeploy.runners.spec import RunnerSpecResolver
from autodeploy.targets import TargetResolver

if typ.TYPE_CHECKING:
    import datetime as dt

    from autodeploy.builds import BuildDispatcher, BuildJob
    from autodeploy.common.time import Clock
    from autodeploy.events import GitEvent
    from autodeploy.hooks import AutodeployHooks
    from autodeploy.runners import RunnerPool, RunnerSpec
    from autodeploy.targets import Target


@dataclasses.dataclass(frozen=True, slots=True)
class DeploymentOutcome:
    """What happened to one event."""

    event: GitEvent
    target: Target | None = None
    runner: RunnerSpec | None = None
    job: BuildJob | None = None

    @property
    def skipped(self) -> bool:
        """Return True when the target hook chose not to deploy."""
        return self.target is None


def _describe(event: GitEvent) -> str:
    if event.type == "push":
        return f"push:{event.repo.slug}@{event.branch}"
    return f"pull_request:{event.repo.slug}#{event.number}"


class AutodeployOrchestrator:
    """Drive events through resolution, runner checkout, and dispatch."""

    def __init__(
        self,
        hooks: AutodeployHooks,
        pool: RunnerPool,
        dispatcher: BuildDispatcher,
        *,
        config: AutodeployConfig | None = None,
        clock: Clock = utcnow,
        event_logger: AutodeployEventLogger | None = None,
    ) -> None:
        """Wire the hooks, pool, and dispatcher together."""
        settings = config or AutodeployConfig()
        self._targets = TargetResolver(
            hooks.target, timeout=settings.resolution_timeout_s
        )
        self._runners = RunnerSpecResolver(
            hooks.runner, timeout=settings.resolution_timeout_s
        )
        self._pool = pool
        self._dispatcher = dispatcher
        self._clock = clock
        self._events = event_logger or AutodeployEventLogger()
        self._tasks: set[asyncio.Task[DeploymentOutcome]] = set()

    @property
    def in_flight(self) -> int:
        """Return the number of background pipelines still running."""
        return len(self._tasks)

    async def handle(
        self, payload: object, event_type_hint: str | None = None
    ) -> DeploymentOutcome:
        """Normalize ``payload`` and run its whole pipeline.

        Raises
        ------
        NormalizationError
            For unsupported or malformed payloads.
        ResolutionError
            When a hook fails, times out, or returns an invalid result.
        ValidationError
            When the runner hook asks for an impossible machine.
        ProvisioningError
            When the runner cannot be created.

        """
        started = self._clock()
        try:
            event = normalize(payload, event_type_hint)
        except Exception as exc:
            self._log_failure(event_type_hint or "unknown", exc, started)
            raise
        return await self.deploy(event)

    async def deploy(self, event: GitEvent) -> DeploymentOutcome:
        """Run the pipeline for an already normalized event."""
        started = self._clock()
        self._events.log_event_received(event)
        try:
            target = await self._targets.resolve(event)
            if target is None:
                self._events.log_event_skipped(event)
                return DeploymentOutcome(event=event)
            spec = await self._runners.resolve(target.stage)
            runner = await self._pool.acquire(spec)
            job = await self._dispatcher.run(target, runner)
        except Exception as exc:
            self._log_failure(_describe(event), exc, started)
            raise
        return DeploymentOutcome(event=event, target=target, runner=spec, job=job)

    def submit(self, payload: object, event_type_hint: str | None = None) -> GitEvent:
        """Normalize now and deploy in the background.

        Malformed payloads raise ``NormalizationError`` immediately so the
        caller can reject the delivery. Must be called from a running loop.
        """
        event = normalize(payload, event_type_hint)
        self._spawn(event)
        return event

    def submit_github(self, payload: object, github_event: str) -> GitEvent:
        """Like ``submit`` for a native GitHub delivery."""
        event = translate_github_webhook(payload, github_event)
        self._spawn(event)
        return event

    async def drain(self, *, cancel: bool = False) -> None:
        """Wait for background pipelines, optionally cancelling them first."""
        while self._tasks:
            pending = list(self._tasks)
            if cancel:
                for task in pending:
                    task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

    def _spawn(self, event: GitEvent) -> None:
        task = asyncio.get_running_loop().create_task(
            self.deploy(event), name=f"autodeploy:{_describe(event)}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task[DeploymentOutcome]) -> None:
        self._tasks.discard(task)
        if not task.cancelled():
            # deploy() has already logged any failure.
            task.exception()

    def _log_failure(
        self, description: str, error: BaseException, started: dt.datetime
    ) -> None:
        self._events.log_event_failed(
            description=description,
            error=error,
            duration=self._clock() - started,
        )
