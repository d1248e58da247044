"""User-supplied resolution hooks and their bounded invocation.

A project configures autodeploy with two callables: ``target`` decides
whether a git event deploys and to which stage, ``runner`` picks the build
machine for a stage. Either may be synchronous or a coroutine function.

Examples
--------
>>> def target(event):
...     if event.type == "push" and event.branch == "main":
...         return {"stage": "production"}
...     if event.type == "pull_request":
...         return {"stage": f"pr-{event.number}"}
...     return None
>>> hooks = AutodeployHooks(target=target)

"""

from __future__ import annotations

import asyncio
import dataclasses
import inspect
import typing as typ

from autodeploy.errors import ResolutionError

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from autodeploy.errors import ResolutionStage
    from autodeploy.events import GitEvent

type TargetHook = typ.Callable[[GitEvent], object]
type RunnerHook = typ.Callable[[str], object]


@dataclasses.dataclass(frozen=True, slots=True)
class AutodeployHooks:
    """Strategy object the orchestrator calls into."""

    target: TargetHook
    runner: RunnerHook | None = None


async def _call(fn: typ.Callable[[typ.Any], object], argument: object) -> object:
    if inspect.iscoroutinefunction(fn):
        return await fn(argument)
    # Plain callables may still block on I/O; keep them off the event loop.
    result = await asyncio.to_thread(fn, argument)
    if inspect.isawaitable(result):
        return await typ.cast("cabc.Awaitable[object]", result)
    return result


async def invoke_hook(
    fn: typ.Callable[[typ.Any], object],
    argument: object,
    *,
    stage: ResolutionStage,
    timeout: float,
) -> object:
    """Call ``fn(argument)`` exactly once within ``timeout`` seconds.

    Parameters
    ----------
    fn
        User hook.
    argument
        The event (target stage) or stage name (runner stage).
    stage
        Which hook is being called, used to tag errors.
    timeout
        Resolution timeout in seconds.

    Returns
    -------
    object
        Whatever the hook returned; callers validate the shape.

    Raises
    ------
    ResolutionError
        ``TIMEOUT`` when the deadline passes, ``USER_FUNCTION_THREW`` when the
        hook raises.

    """
    deadline = asyncio.timeout(timeout)
    try:
        async with deadline:
            return await _call(fn, argument)
    except TimeoutError as exc:
        if deadline.expired():
            raise ResolutionError.timed_out(stage, timeout) from exc
        raise ResolutionError.hook_raised(stage, exc) from exc
    except Exception as exc:
        raise ResolutionError.hook_raised(stage, exc) from exc
