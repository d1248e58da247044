"""Deployment target produced by the target hook."""

from __future__ import annotations

import typing as typ

import msgspec


class Target(msgspec.Struct, kw_only=True, frozen=True):
    """Stage to deploy and environment for the build.

    Attributes
    ----------
    stage
        Deployment stage name, for example ``production`` or ``pr-42``.
    env
        Environment variables exposed to the build.

    """

    stage: typ.Annotated[str, msgspec.Meta(min_length=1)]
    env: dict[str, str] = msgspec.field(default_factory=dict)

    def to_dict(self) -> dict[str, typ.Any]:
        """Render the target in its wire shape, omitting an empty env."""
        rendered: dict[str, typ.Any] = {"stage": self.stage}
        if self.env:
            rendered["env"] = dict(self.env)
        return rendered
