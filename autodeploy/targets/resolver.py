"""Resolve a git event to a deployment target via the user's hook."""

from __future__ import annotations

import collections.abc as cabc
import typing as typ

import msgspec

from autodeploy.errors import ResolutionError, ResolutionStage
from autodeploy.hooks import invoke_hook

from .models import Target

if typ.TYPE_CHECKING:
    from autodeploy.events import GitEvent
    from autodeploy.hooks import TargetHook


def coerce_target(result: object) -> Target | None:
    """Convert a hook result into a ``Target``.

    ``None`` means the event should not deploy. Mappings are validated
    against the ``{stage, env?}`` shape.

    Raises
    ------
    ResolutionError
        ``INVALID_RESULT`` for anything else.

    """
    if result is None or isinstance(result, Target):
        return result
    if not isinstance(result, cabc.Mapping):
        raise ResolutionError.invalid_result(
            ResolutionStage.TARGET,
            f"expected a mapping or None, got {type(result).__name__}",
        )
    try:
        target = msgspec.convert(dict(result), type=Target)
    except msgspec.ValidationError as exc:
        raise ResolutionError.invalid_result(ResolutionStage.TARGET, str(exc)) from exc
    if not target.stage.strip():
        raise ResolutionError.invalid_result(
            ResolutionStage.TARGET, "stage must not be blank"
        )
    return target


class TargetResolver:
    """Invoke the target hook once per event under a resolution timeout."""

    def __init__(self, target_fn: TargetHook, *, timeout: float) -> None:
        """Bind the hook and the per-event resolution timeout (seconds)."""
        self._target_fn = target_fn
        self._timeout = timeout

    async def resolve(self, event: GitEvent) -> Target | None:
        """Return the target for ``event``, or ``None`` to skip it."""
        result = await invoke_hook(
            self._target_fn,
            event,
            stage=ResolutionStage.TARGET,
            timeout=self._timeout,
        )
        return coerce_target(result)
