"""Translate native GitHub webhook deliveries into autodeploy events.

GitHub identifies each delivery with the ``X-GitHub-Event`` header. Only
branch pushes and pull requests that were opened or received new commits
trigger deployments; everything else is reported as unsupported so the
caller can acknowledge and drop it.
"""

from __future__ import annotations

import collections.abc as cabc
import typing as typ

from autodeploy.errors import NormalizationError

from .normalizer import normalize

if typ.TYPE_CHECKING:
    from .models import GitEvent

_BRANCH_PREFIX = "refs/heads/"
_PULL_REQUEST_ACTIONS = frozenset({"opened", "reopened", "synchronize"})


def _lookup(payload: cabc.Mapping[str, typ.Any], path: str) -> typ.Any:  # noqa: ANN401
    current: typ.Any = payload
    for part in path.split("."):
        if not isinstance(current, cabc.Mapping) or part not in current:
            raise NormalizationError.malformed(path, "missing from GitHub payload")
        current = current[part]
    return current


def _repo_and_sender(payload: cabc.Mapping[str, typ.Any]) -> dict[str, typ.Any]:
    return {
        "repo": {
            "id": _lookup(payload, "repository.id"),
            "owner": _lookup(payload, "repository.owner.login"),
            "repo": _lookup(payload, "repository.name"),
        },
        "sender": {
            "id": _lookup(payload, "sender.id"),
            "username": _lookup(payload, "sender.login"),
        },
    }


def _translate_push(payload: cabc.Mapping[str, typ.Any]) -> dict[str, typ.Any]:
    ref = _lookup(payload, "ref")
    if not isinstance(ref, str) or not ref.startswith(_BRANCH_PREFIX):
        raise NormalizationError.unsupported_event(f"push:{ref}")
    if payload.get("deleted"):
        raise NormalizationError.unsupported_event("push:branch_deleted")
    return {
        "type": "push",
        "branch": ref.removeprefix(_BRANCH_PREFIX),
        "commit": {
            "id": _lookup(payload, "head_commit.id"),
            "message": _lookup(payload, "head_commit.message"),
        },
        **_repo_and_sender(payload),
    }


def _translate_pull_request(
    payload: cabc.Mapping[str, typ.Any],
) -> dict[str, typ.Any]:
    action = payload.get("action")
    if action not in _PULL_REQUEST_ACTIONS:
        raise NormalizationError.unsupported_event(f"pull_request:{action}")
    return {
        "type": "pull_request",
        "number": _lookup(payload, "pull_request.number"),
        "base": _lookup(payload, "pull_request.base.ref"),
        "head": _lookup(payload, "pull_request.head.ref"),
        "commit": {
            "id": _lookup(payload, "pull_request.head.sha"),
            "message": _lookup(payload, "pull_request.title"),
        },
        **_repo_and_sender(payload),
    }


_TRANSLATORS: dict[
    str,
    cabc.Callable[[cabc.Mapping[str, typ.Any]], dict[str, typ.Any]],
] = {
    "push": _translate_push,
    "pull_request": _translate_pull_request,
}


def translate_github_webhook(payload: object, github_event: str) -> GitEvent:
    """Normalize a GitHub delivery given its ``X-GitHub-Event`` value.

    Raises
    ------
    NormalizationError
        ``UNSUPPORTED_EVENT`` for events, refs, or actions that never deploy;
        ``MALFORMED_PAYLOAD`` when GitHub fields are missing or ill-typed.

    """
    translator = _TRANSLATORS.get(github_event)
    if translator is None:
        raise NormalizationError.unsupported_event(github_event)
    if not isinstance(payload, cabc.Mapping):
        raise NormalizationError.malformed("$", "payload must be a JSON object")
    return normalize(translator(payload), github_event)
