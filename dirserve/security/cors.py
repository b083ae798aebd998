"""Permissive CORS gate."""

from http import HTTPStatus
from typing import Optional

from dirserve.domain.http_types import HttpRequest, HttpResponse
from dirserve.pipeline.stages import RequestContext, Stage

ALLOWED_METHODS = "GET,HEAD,PUT,PATCH,POST,DELETE"


def is_preflight_request(request: HttpRequest) -> bool:
    """Return True for an OPTIONS request carrying Access-Control-Request-Method."""
    return (
        request.method == "OPTIONS"
        and "access-control-request-method" in request.headers
    )


def preflight_response(request: HttpRequest) -> HttpResponse:
    """Answer a preflight, reflecting the headers the browser asked for."""
    headers = {"Access-Control-Allow-Methods": ALLOWED_METHODS}
    requested_headers = request.headers.get("access-control-request-headers")
    if requested_headers:
        headers["Access-Control-Allow-Headers"] = requested_headers
        headers["Vary"] = "Access-Control-Request-Headers"
    return HttpResponse(HTTPStatus.NO_CONTENT, headers)


class CorsStage(Stage):
    """Adds ``Access-Control-Allow-Origin: *`` to every response passing through."""

    name = "cors"

    def attempt(self, context: RequestContext) -> Optional[HttpResponse]:
        if is_preflight_request(context.request):
            return preflight_response(context.request)
        return None

    def finalize(self, context: RequestContext, response: HttpResponse) -> None:
        response.headers["Access-Control-Allow-Origin"] = "*"
