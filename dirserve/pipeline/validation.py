"""Request validation that runs before the stage chain."""

from typing import Optional

from dirserve.domain.http_types import HttpRequest, HttpResponse
from dirserve.domain.response_builders import bad_request_response, forbidden_response


class RequestEntityTooLarge(Exception):
    """Raised when a request body exceeds configured limits."""


def enforce_safe_path(request: HttpRequest) -> Optional[HttpResponse]:
    """Reject paths that are malformed or climb out of the served root."""
    if not request.path.startswith("/") or "\x00" in request.path:
        return bad_request_response()
    if ".." in request.path.split("/"):
        return forbidden_response()
    return None


def validate_request(request: HttpRequest) -> Optional[HttpResponse]:
    """Return an error response when the request fails validation checks."""
    return enforce_safe_path(request)
