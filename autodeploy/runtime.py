"""Autodeploy runtime entrypoint for container deployments.

This module provides the ASGI application factory used by Granian. It
delegates to :func:`autodeploy.api.app.create_app` for application
construction while keeping the ``autodeploy.runtime:create_app`` entrypoint
stable.

When ``AUTODEPLOY_HOOKS`` names an ``AutodeployHooks`` object the runtime
wires the full pipeline so the app accepts webhook deliveries. Otherwise it
starts in health-only mode.

Configuration is driven by environment variables:

- ``AUTODEPLOY_HOST``: Bind address (default ``0.0.0.0``)
- ``AUTODEPLOY_PORT``: Listen port (default ``8080``)
- ``AUTODEPLOY_LOG_LEVEL``: Log level (default ``INFO``)
- ``AUTODEPLOY_HOOKS``: ``module:attribute`` of the hooks (optional)
- ``AUTODEPLOY_DATABASE_URL``: Runner record store URL (optional)

See :class:`autodeploy.config.AutodeployConfig` for the pipeline settings.

Run the service directly with ``python -m autodeploy.runtime``.
"""

from __future__ import annotations

import os
import typing as typ

from autodeploy.logging import (
    configure_logging,
    get_logger,
    log_error,
    log_info,
    log_warning,
)

if typ.TYPE_CHECKING:
    import falcon.asgi

__all__ = ["create_app", "main"]

logger = get_logger(__name__)

# TCP port number range limits
_MIN_PORT = 1
_MAX_PORT = 65535


def _parse_port(port_str: str) -> int:
    """Parse and validate a port number string.

    Raises
    ------
    SystemExit
        If port_str is not a valid integer in range 1-65535.

    """
    try:
        port = int(port_str)
        if not (_MIN_PORT <= port <= _MAX_PORT):
            msg = f"port {port} outside valid range {_MIN_PORT}-{_MAX_PORT}"
            raise ValueError(msg)  # noqa: TRY301 - unify conversion and range errors
    except ValueError as exc:
        # Use error() not exception() - validation failures need no traceback
        log_error(
            logger,
            "Invalid AUTODEPLOY_PORT value: %r (must be %d-%d): %s",
            port_str,
            _MIN_PORT,
            _MAX_PORT,
            exc,
        )
        raise SystemExit(1) from exc
    return port


def create_app() -> falcon.asgi.App:
    """Create and configure the Falcon ASGI application.

    Raises
    ------
    ConfigError
        If a pipeline setting is invalid or the hooks cannot be loaded.

    """
    from autodeploy.api.app import create_app as _create_api_app
    from autodeploy.config import AutodeployConfig, load_hooks

    config = AutodeployConfig.from_env()
    if config.hooks_path is None:
        log_info(logger, "AUTODEPLOY_HOOKS not set; serving health endpoints only")
        return _create_api_app()

    from autodeploy.api.factory import build_dependencies

    hooks = load_hooks(config.hooks_path)
    log_info(
        logger,
        "Loaded hooks from %s (runner_store=%s)",
        config.hooks_path,
        "sql" if config.database_url is not None else "memory",
    )
    return _create_api_app(build_dependencies(config, hooks))


def main() -> None:
    """Start the autodeploy server using Granian.

    Reads ``AUTODEPLOY_HOST``, ``AUTODEPLOY_PORT``, and
    ``AUTODEPLOY_LOG_LEVEL`` from the environment and starts the ASGI server.
    """
    from granian import Granian
    from granian.constants import Interfaces

    host = os.environ.get("AUTODEPLOY_HOST", "0.0.0.0")  # noqa: S104 - bind all interfaces for container
    port = _parse_port(os.environ.get("AUTODEPLOY_PORT", "8080"))
    log_level_str = os.environ.get("AUTODEPLOY_LOG_LEVEL", "INFO")

    normalized_level, invalid_level = configure_logging(log_level_str)
    if invalid_level:
        log_warning(
            logger,
            "Invalid AUTODEPLOY_LOG_LEVEL %r, falling back to %s",
            log_level_str,
            normalized_level,
        )

    log_info(
        logger,
        "Starting autodeploy runtime on %s:%d (log_level=%s)",
        host,
        port,
        normalized_level,
    )

    server = Granian(
        "autodeploy.runtime:create_app",
        address=host,
        port=port,
        interface=Interfaces.ASGI,
        factory=True,
    )
    server.serve()


if __name__ == "__main__":
    main()
