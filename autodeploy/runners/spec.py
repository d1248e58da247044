"""Resolve and canonicalize runner specifications.

The runner hook returns a partial description such as
``{"engine": "codebuild", "architecture": "arm64", "compute": "large",
"timeout": "20 minutes"}``. Canonicalization fills defaults and enforces the
engine's constraints so equivalent requests land on the same pooled runner.

Policy decisions:

- ``arm64`` only offers ``small`` and ``large``; other sizes are rejected,
  never coerced.
- Timeouts above the CodeBuild ceiling of 8 hours are rejected, never
  clamped.
"""

from __future__ import annotations

import collections.abc as cabc
import datetime as dt
import enum
import re
import typing as typ

from autodeploy.errors import ResolutionError, ResolutionStage, ValidationError
from autodeploy.hooks import invoke_hook

from .models import MACHINE_PROFILES, Architecture, Compute, Engine, RunnerSpec

if typ.TYPE_CHECKING:
    from autodeploy.hooks import RunnerHook

TIMEOUT_CEILINGS: dict[Engine, dt.timedelta] = {
    Engine.CODEBUILD: dt.timedelta(hours=8),
}
DEFAULT_RUNNER_SPEC = RunnerSpec()

_TIMEOUT_RE = re.compile(r"^(?P<amount>[0-9]+)\s+(?P<unit>minutes?|hours?)$")


def parse_timeout(raw: str | dt.timedelta) -> dt.timedelta:
    """Parse ``"<n> minute(s)"`` or ``"<n> hour(s)"`` into a timedelta.

    Raises
    ------
    ValidationError
        ``INVALID_TIMEOUT`` for malformed or non-positive values and
        ``TIMEOUT_EXCEEDS_CEILING`` for amounts too large to represent.

    """
    if isinstance(raw, dt.timedelta):
        timeout = raw
    elif isinstance(raw, str):
        match = _TIMEOUT_RE.match(raw.strip())
        if match is None:
            raise ValidationError.invalid_timeout(raw)
        amount = int(match.group("amount"))
        unit = "hours" if match.group("unit").startswith("hour") else "minutes"
        try:
            timeout = dt.timedelta(**{unit: amount})
        except OverflowError as exc:
            raise ValidationError.timeout_exceeds_ceiling(
                raw.strip(), max(TIMEOUT_CEILINGS.values())
            ) from exc
    else:
        raise ValidationError.invalid_timeout(raw)

    if timeout <= dt.timedelta(0):
        raise ValidationError.invalid_timeout(raw)
    return timeout


def _enum_value[E: enum.StrEnum](field: str, raw: object, choices: type[E]) -> E:
    try:
        return choices(raw)
    except ValueError as exc:
        allowed = [member.value for member in choices]
        raise ValidationError.invalid_value(field, raw, allowed) from exc


def canonicalize_runner(
    raw: cabc.Mapping[str, typ.Any] | RunnerSpec | None,
) -> RunnerSpec:
    """Apply defaults and validate a runner description.

    Parameters
    ----------
    raw
        Mapping with optional ``engine``, ``architecture``, ``compute`` and
        ``timeout`` keys, an existing ``RunnerSpec``, or ``None`` for the
        default runner. ``None`` values count as unset.

    Returns
    -------
    RunnerSpec
        Fully populated, validated specification.

    Raises
    ------
    ValidationError
        For unknown enum values, incompatible architecture/compute pairs,
        malformed timeouts, or timeouts over the engine ceiling.

    Examples
    --------
    >>> spec = canonicalize_runner({"architecture": "arm64", "compute": "large"})
    >>> spec.to_dict()["timeout"]
    '1 hour'

    """
    if raw is None:
        fields: cabc.Mapping[str, typ.Any] = {}
    elif isinstance(raw, RunnerSpec):
        fields = {
            "engine": raw.engine,
            "architecture": raw.architecture,
            "compute": raw.compute,
            "timeout": raw.timeout,
        }
    else:
        fields = raw

    def _get(name: str) -> typ.Any:  # noqa: ANN401
        value = fields.get(name)
        return getattr(DEFAULT_RUNNER_SPEC, name) if value is None else value

    engine = _enum_value("engine", _get("engine"), Engine)
    architecture = _enum_value("architecture", _get("architecture"), Architecture)
    compute = _enum_value("compute", _get("compute"), Compute)
    if (architecture, compute) not in MACHINE_PROFILES:
        raise ValidationError.incompatible(architecture.value, compute.value)

    timeout = parse_timeout(_get("timeout"))
    ceiling = TIMEOUT_CEILINGS[engine]
    if timeout > ceiling:
        raise ValidationError.timeout_exceeds_ceiling(timeout, ceiling)

    return RunnerSpec(
        engine=engine,
        architecture=architecture,
        compute=compute,
        timeout=timeout,
    )


class RunnerSpecResolver:
    """Ask the runner hook which machine a stage needs.

    Without a hook every stage builds on ``DEFAULT_RUNNER_SPEC``.
    """

    def __init__(self, runner_fn: RunnerHook | None = None, *, timeout: float) -> None:
        """Bind the optional runner hook and the resolution timeout (seconds)."""
        self._runner_fn = runner_fn
        self._timeout = timeout

    async def resolve(self, stage: str) -> RunnerSpec:
        """Return the canonical runner spec for ``stage``."""
        if self._runner_fn is None:
            return DEFAULT_RUNNER_SPEC

        result = await invoke_hook(
            self._runner_fn,
            stage,
            stage=ResolutionStage.RUNNER,
            timeout=self._timeout,
        )
        if result is not None and not isinstance(
            result, (cabc.Mapping, RunnerSpec)
        ):
            raise ResolutionError.invalid_result(
                ResolutionStage.RUNNER,
                f"expected a mapping, got {type(result).__name__}",
            )
        return canonicalize_runner(result)
