"""Typed git event variants delivered to the target hook."""

from __future__ import annotations

import typing as typ

import msgspec

NonEmptyStr = typ.Annotated[str, msgspec.Meta(min_length=1)]


class GitRepo(msgspec.Struct, kw_only=True, frozen=True):
    """Repository the event came from.

    ``name`` travels as ``repo`` on the wire.
    """

    id: int
    owner: NonEmptyStr
    name: NonEmptyStr = msgspec.field(name="repo")

    @property
    def slug(self) -> str:
        """Return ``owner/name``."""
        return f"{self.owner}/{self.name}"


class GitCommit(msgspec.Struct, kw_only=True, frozen=True):
    """Commit that triggered the event."""

    id: NonEmptyStr
    message: str


class GitSender(msgspec.Struct, kw_only=True, frozen=True):
    """User whose action produced the event."""

    id: int
    username: NonEmptyStr


class PushEvent(msgspec.Struct, kw_only=True, frozen=True):
    """Code pushed to a branch."""

    type: typ.Literal["push"] = "push"
    repo: GitRepo
    branch: NonEmptyStr
    commit: GitCommit
    sender: GitSender


class PullRequestEvent(msgspec.Struct, kw_only=True, frozen=True):
    """Pull request opened, reopened, or updated with new commits."""

    type: typ.Literal["pull_request"] = "pull_request"
    repo: GitRepo
    number: int
    base: NonEmptyStr
    head: NonEmptyStr
    commit: GitCommit
    sender: GitSender


type GitEvent = PushEvent | PullRequestEvent

EVENT_TYPES: dict[str, type[PushEvent] | type[PullRequestEvent]] = {
    "push": PushEvent,
    "pull_request": PullRequestEvent,
}


def event_to_dict(event: GitEvent) -> dict[str, typ.Any]:
    """Render an event in its JSON wire shape."""
    return msgspec.to_builtins(event)
