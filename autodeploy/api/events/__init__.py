"""Webhook delivery resources.

Usage
-----
Import the resources for route registration::

    from autodeploy.api.events.resources import (
        EventResource,
        GitHubEventResource,
    )
"""
