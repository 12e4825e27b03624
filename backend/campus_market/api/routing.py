"""
Route class for endpoints that answer malformed requests with 400.

FastAPI reports request-schema errors as 422. Booking clients get 400 with
a detail naming the offending field, the same shape as the booking
service's own ValidationError.
"""

from typing import Any, Callable, Sequence

from fastapi import Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.routing import APIRoute

from campus_market.core.exceptions import ValidationError

# Location prefixes FastAPI puts before the field path
_SOURCES = {"body", "query", "path", "header", "cookie"}


def field_path(loc: Sequence[Any]) -> str:
    """("body", "line_items", 0, "product_id") -> "line_items[0].product_id"."""
    path = ""
    for part in loc:
        if not path and part in _SOURCES:
            continue
        if isinstance(part, int):
            path += f"[{part}]"
        else:
            path += f".{part}" if path else str(part)
    return path or "body"


def describe_errors(errors: Sequence[dict]) -> str:
    if not errors:
        return "Malformed request"
    first = errors[0]
    return f"{field_path(first.get('loc', ()))}: {first.get('msg', 'invalid value')}"


class BadRequestRoute(APIRoute):
    def get_route_handler(self) -> Callable:
        original_route_handler = super().get_route_handler()

        async def route_handler(request: Request) -> Response:
            try:
                return await original_route_handler(request)
            except RequestValidationError as exc:
                raise ValidationError(describe_errors(exc.errors())) from None

        return route_handler
