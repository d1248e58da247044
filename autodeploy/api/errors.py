"""Client errors and Falcon error handlers for the API layer.

Usage
-----
Register error handlers on the Falcon app::

    from autodeploy.api.errors import (
        InvalidInputError,
        handle_invalid_input,
        handle_normalization_error,
    )

    app.add_error_handler(NormalizationError, handle_normalization_error)
    app.add_error_handler(InvalidInputError, handle_invalid_input)

"""

from __future__ import annotations

import typing as typ

import falcon

if typ.TYPE_CHECKING:
    from falcon.asgi import Request, Response

    from autodeploy.errors import NormalizationError

__all__ = [
    "InvalidInputError",
    "handle_invalid_input",
    "handle_normalization_error",
]


class InvalidInputError(Exception):
    """Raised for request problems outside the payload itself.

    Attributes
    ----------
    reason
        Human-readable description of the validation failure.
    field
        Optional name of the header or field that failed validation.

    """

    def __init__(self, reason: str, *, field: str | None = None) -> None:
        """Initialize with a validation reason and optional field name."""
        self.reason = reason
        self.field = field
        message = f"{field}: {reason}" if field is not None else reason
        super().__init__(message)


async def handle_normalization_error(
    _req: Request,
    resp: Response,
    ex: NormalizationError,
    _params: dict[str, typ.Any],
) -> None:
    """Map ``NormalizationError`` to an HTTP 400 JSON response.

    The body carries the error ``kind`` so senders can tell an event type
    the service does not deploy from a payload that is broken.

    """
    resp.status = falcon.HTTP_400
    media: dict[str, str] = {
        "title": "Unprocessable event",
        "description": str(ex),
        "kind": str(ex.kind),
    }
    if ex.field is not None:
        media["field"] = ex.field
    resp.media = media


async def handle_invalid_input(
    _req: Request,
    resp: Response,
    ex: InvalidInputError,
    _params: dict[str, typ.Any],
) -> None:
    """Map ``InvalidInputError`` to an HTTP 400 JSON response."""
    resp.status = falcon.HTTP_400
    media: dict[str, str] = {
        "title": "Invalid input",
        "description": ex.reason,
    }
    if ex.field is not None:
        media["field"] = ex.field
    resp.media = media
