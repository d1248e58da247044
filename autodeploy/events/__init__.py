"""Git event models and normalization."""

from __future__ import annotations

from .github import translate_github_webhook
from .models import (
    GitCommit,
    GitEvent,
    GitRepo,
    GitSender,
    PullRequestEvent,
    PushEvent,
    event_to_dict,
)
from .normalizer import normalize

__all__ = [
    "GitCommit",
    "GitEvent",
    "GitRepo",
    "GitSender",
    "PullRequestEvent",
    "PushEvent",
    "event_to_dict",
    "normalize",
    "translate_github_webhook",
]
