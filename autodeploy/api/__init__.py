"""Falcon ASGI API layer for the autodeploy service.

Usage
-----
Create the app with webhook endpoints::

    from autodeploy.api import AppDependencies, create_app

    app = create_app(AppDependencies(orchestrator=orchestrator, reaper=reaper))

"""

from __future__ import annotations

from autodeploy.api.app import AppDependencies, create_app

__all__ = ["AppDependencies", "create_app"]
