"""Turn inbound webhook payloads into typed ``GitEvent`` values.

``normalize`` is pure: it either returns a frozen event or raises
``NormalizationError``. Unknown keys are ignored so richer upstream payloads
still normalize.
"""

from __future__ import annotations

import collections.abc as cabc
import re
import typing as typ

import msgspec

from autodeploy.errors import NormalizationError

from .models import EVENT_TYPES

if typ.TYPE_CHECKING:
    from .models import GitEvent

_MISSING_FIELD_RE = re.compile(r"missing required field `(?P<name>[^`]+)`")
_AT_PATH_RE = re.compile(r"- at `\$(?P<path>[^`]*)`")


def _field_from_error(message: str) -> str:
    """Extract a dotted field path from a msgspec validation message."""
    path_match = _AT_PATH_RE.search(message)
    path = path_match.group("path").lstrip(".") if path_match else ""
    missing_match = _MISSING_FIELD_RE.search(message)
    if missing_match:
        name = missing_match.group("name")
        return f"{path}.{name}" if path else name
    return path or "$"


def _detail_from_error(message: str) -> str:
    return _AT_PATH_RE.sub("", message).strip()


def _event_type(payload: cabc.Mapping[str, typ.Any], hint: str | None) -> str:
    declared = payload.get("type")
    if declared is None:
        if hint is None:
            raise NormalizationError.malformed("type", "event type is missing")
        return hint
    if not isinstance(declared, str):
        raise NormalizationError.malformed("type", "event type must be a string")
    if hint is not None and hint != declared:
        raise NormalizationError.malformed(
            "type", f"payload declares {declared!r} but delivery says {hint!r}"
        )
    return declared


def normalize(payload: object, event_type_hint: str | None = None) -> GitEvent:
    """Validate ``payload`` and return the matching event variant.

    Parameters
    ----------
    payload
        Decoded JSON body of the delivery.
    event_type_hint
        Event type reported out of band (for example a request header). Used
        when the payload carries no ``type`` of its own.

    Returns
    -------
    GitEvent
        ``PushEvent`` or ``PullRequestEvent``.

    Raises
    ------
    NormalizationError
        ``UNSUPPORTED_EVENT`` for unknown event types, ``MALFORMED_PAYLOAD``
        (with ``field``) for missing or ill-typed fields.

    """
    if not isinstance(payload, cabc.Mapping):
        raise NormalizationError.malformed("$", "payload must be a JSON object")

    event_type = _event_type(payload, event_type_hint)
    model = EVENT_TYPES.get(event_type)
    if model is None:
        raise NormalizationError.unsupported_event(event_type)

    body = {**payload, "type": event_type}
    try:
        return msgspec.convert(body, type=model)
    except msgspec.ValidationError as exc:
        message = str(exc)
        raise NormalizationError.malformed(
            _field_from_error(message), _detail_from_error(message)
        ) from exc
