"""Deployment target resolution."""

from __future__ import annotations

from .models import Target
from .resolver import TargetResolver, coerce_target

__all__ = ["Target", "TargetResolver", "coerce_target"]
