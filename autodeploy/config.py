"""Environment-driven configuration for the autodeploy service.

Usage
-----
Create a configuration with defaults:

>>> config = AutodeployConfig()
>>> config.idle_threshold.days
7

Or load from environment variables:

>>> import os
>>> os.environ["AUTODEPLOY_RUNNER_IDLE_DAYS"] = "3"
>>> AutodeployConfig.from_env().idle_threshold.days
3

"""

from __future__ import annotations

import dataclasses as dc
import datetime as dt
import importlib
import os

from autodeploy.errors import ConfigError
from autodeploy.hooks import AutodeployHooks

_DEFAULT_RESOLUTION_TIMEOUT_S = 30.0
_DEFAULT_IDLE_DAYS = 7
_DEFAULT_REAP_INTERVAL_S = 3600.0


@dc.dataclass(frozen=True, slots=True)
class AutodeployConfig:
    """Runtime knobs for the orchestrator.

    Attributes
    ----------
    resolution_timeout_s
        Upper bound for each call into a user hook.
    idle_threshold
        Ready runners unused for longer than this are torn down.
    reap_interval_s
        Seconds between idle sweeps.
    database_url
        SQLAlchemy URL for the runner record store. ``None`` keeps runner
        records in memory only.
    hooks_path
        ``module:attribute`` naming the ``AutodeployHooks`` object.

    """

    resolution_timeout_s: float = _DEFAULT_RESOLUTION_TIMEOUT_S
    idle_threshold: dt.timedelta = dt.timedelta(days=_DEFAULT_IDLE_DAYS)
    reap_interval_s: float = _DEFAULT_REAP_INTERVAL_S
    database_url: str | None = None
    hooks_path: str | None = None

    @staticmethod
    def _parse_positive_float(env_var: str, default: float) -> float:
        raw = os.environ.get(env_var, "")
        if not raw.strip():
            return default
        try:
            value = float(raw)
        except ValueError as exc:
            raise ConfigError.invalid_number(env_var, raw) from exc
        if not value > 0:
            raise ConfigError.invalid_number(env_var, raw)
        return value

    @staticmethod
    def _parse_positive_int(env_var: str, default: int) -> int:
        raw = os.environ.get(env_var, "")
        if not raw.strip():
            return default
        try:
            value = int(raw)
        except ValueError as exc:
            raise ConfigError.invalid_number(env_var, raw) from exc
        if value < 1:
            raise ConfigError.invalid_number(env_var, raw)
        return value

    @staticmethod
    def _optional(env_var: str) -> str | None:
        raw = os.environ.get(env_var, "").strip()
        return raw or None

    @classmethod
    def from_env(cls) -> AutodeployConfig:
        """Build configuration from environment variables.

        Reads the following environment variables:

        - ``AUTODEPLOY_RESOLUTION_TIMEOUT_S``: hook timeout in seconds
        - ``AUTODEPLOY_RUNNER_IDLE_DAYS``: idle threshold in days
        - ``AUTODEPLOY_REAP_INTERVAL_S``: sweep interval in seconds
        - ``AUTODEPLOY_DATABASE_URL``: optional runner record store URL
        - ``AUTODEPLOY_HOOKS``: optional ``module:attribute`` hooks path

        Raises
        ------
        ConfigError
            If a numeric setting is not a positive number.

        """
        return cls(
            resolution_timeout_s=cls._parse_positive_float(
                "AUTODEPLOY_RESOLUTION_TIMEOUT_S", _DEFAULT_RESOLUTION_TIMEOUT_S
            ),
            idle_threshold=dt.timedelta(
                days=cls._parse_positive_int(
                    "AUTODEPLOY_RUNNER_IDLE_DAYS", _DEFAULT_IDLE_DAYS
                )
            ),
            reap_interval_s=cls._parse_positive_float(
                "AUTODEPLOY_REAP_INTERVAL_S", _DEFAULT_REAP_INTERVAL_S
            ),
            database_url=cls._optional("AUTODEPLOY_DATABASE_URL"),
            hooks_path=cls._optional("AUTODEPLOY_HOOKS"),
        )


def load_hooks(path: str) -> AutodeployHooks:
    """Import the ``AutodeployHooks`` named by ``module:attribute``.

    Raises
    ------
    ConfigError
        If the path is malformed, cannot be imported, or names something
        other than an ``AutodeployHooks``.

    """
    module_name, sep, attribute = path.partition(":")
    if not sep or not module_name or not attribute:
        raise ConfigError.invalid_hooks_path(path)
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise ConfigError.hooks_not_found(path, str(exc)) from exc
    hooks = getattr(module, attribute, None)
    if not isinstance(hooks, AutodeployHooks):
        raise ConfigError.hooks_not_found(
            path, f"expected AutodeployHooks, got {type(hooks).__name__}"
        )
    return hooks
