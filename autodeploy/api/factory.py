"""Factory for building ``AppDependencies`` from configuration.

This module provides ``build_dependencies()`` which wires the runner pool,
build dispatcher, orchestrator and idle reaper around the user's hooks.
When ``database_url`` is configured the pool mirrors its records to a SQL
table that is created and reloaded when the server starts.

Usage
-----
Build dependencies for the API layer::

    from autodeploy.api.factory import build_dependencies

    deps = build_dependencies(AutodeployConfig.from_env(), hooks)

"""

from __future__ import annotations

import typing as typ

from autodeploy.api.app import AppDependencies
from autodeploy.builds import BuildDispatcher, LocalBuildEngine
from autodeploy.observability import AutodeployEventLogger
from autodeploy.orchestrator import AutodeployOrchestrator
from autodeploy.runners import IdleReaper, LocalProvisioner, RunnerPool

if typ.TYPE_CHECKING:
    from autodeploy.api.middleware import StartupHook
    from autodeploy.builds import BuildEngine
    from autodeploy.config import AutodeployConfig
    from autodeploy.hooks import AutodeployHooks
    from autodeploy.runners import Provisioner, RunnerRecordStore

__all__ = ["build_dependencies"]


def build_dependencies(
    config: AutodeployConfig,
    hooks: AutodeployHooks,
    *,
    provisioner: Provisioner | None = None,
    build_engine: BuildEngine | None = None,
) -> AppDependencies:
    """Assemble a fully wired ``AppDependencies``.

    Parameters
    ----------
    config
        Runtime configuration.
    hooks
        Target and runner hooks supplied by the project.
    provisioner
        Machine provider. Defaults to the in-process ``LocalProvisioner``.
    build_engine
        Build backend. Defaults to the in-process ``LocalBuildEngine``.

    Returns
    -------
    AppDependencies
        Dependencies including the startup hooks that prepare the pool.

    """
    event_logger = AutodeployEventLogger()
    startup: list[StartupHook] = []

    store: RunnerRecordStore | None = None
    if config.database_url is not None:
        from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

        from autodeploy.runners import SqlRunnerRecordStore, init_runner_storage

        engine = create_async_engine(config.database_url)
        session_factory = async_sessionmaker(engine, expire_on_commit=False)
        store = SqlRunnerRecordStore(session_factory)

        async def _init_storage() -> None:
            await init_runner_storage(engine)

        startup.append(_init_storage)

    pool = RunnerPool(
        provisioner or LocalProvisioner(),
        store=store,
        event_logger=event_logger,
    )
    if store is not None:
        startup.append(pool.restore)

    dispatcher = BuildDispatcher(
        pool, build_engine or LocalBuildEngine(), event_logger=event_logger
    )
    orchestrator = AutodeployOrchestrator(
        hooks,
        pool,
        dispatcher,
        config=config,
        event_logger=event_logger,
    )
    reaper = IdleReaper(
        pool,
        interval=config.reap_interval_s,
        idle_threshold=config.idle_threshold,
    )
    return AppDependencies(
        orchestrator=orchestrator,
        reaper=reaper,
        startup=tuple(startup),
    )
