"""Pure HTTP response builders."""

from http import HTTPStatus
from string import Template
from typing import Union

from dirserve.domain.http_types import HttpRequest, HttpResponse

HTML_CONTENT_TYPE = "text/html; charset=utf-8"
TEXT_CONTENT_TYPE = "text/plain; charset=utf-8"

ERROR_PAGE = Template(
    """<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<title>Error</title>
</head>
<body>
<pre>$message</pre>
</body>
</html>
"""
)


def escape_html(text: str) -> str:
    """Escape ``&``, ``<`` and ``>`` so text can be embedded in HTML."""
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def error_page(message: str) -> bytes:
    """Render the HTML error page wrapping ``message``."""
    return ERROR_PAGE.substitute(message=escape_html(message)).encode("utf-8")


def html_response(status: HTTPStatus, body: Union[str, bytes]) -> HttpResponse:
    """Return an HTML response with the given status."""
    payload = body.encode("utf-8") if isinstance(body, str) else body
    return HttpResponse(status, {"Content-Type": HTML_CONTENT_TYPE}, payload)


def text_response(status: HTTPStatus, body: str) -> HttpResponse:
    """Return a plain-text response with the given status."""
    return HttpResponse(
        status, {"Content-Type": TEXT_CONTENT_TYPE}, body.encode("utf-8")
    )


def not_found_response(request: HttpRequest) -> HttpResponse:
    """Produce the 404 page naming the missing path."""
    return html_response(
        HTTPStatus.NOT_FOUND, error_page(f"ERROR 404: No such path {request.path}")
    )


def server_error_response(error: BaseException) -> HttpResponse:
    """Produce a 500 page carrying the error text."""
    message = str(error) or type(error).__name__
    return html_response(HTTPStatus.INTERNAL_SERVER_ERROR, error_page(message))


def unauthorized_response() -> HttpResponse:
    """Produce the 401 challenge for Basic authentication."""
    response = text_response(HTTPStatus.UNAUTHORIZED, "Access denied")
    response.headers["WWW-Authenticate"] = 'Basic realm=""'
    return response


def redirect_response(location: str) -> HttpResponse:
    """Produce a permanent redirect to ``location``."""
    body = error_page(f"Redirecting to {location}")
    response = html_response(HTTPStatus.MOVED_PERMANENTLY, body)
    response.headers["Location"] = location
    return response


def forbidden_response() -> HttpResponse:
    """Produce a 403 response that ends the connection."""
    response = html_response(HTTPStatus.FORBIDDEN, error_page("ERROR 403: Forbidden"))
    response.close_connection = True
    return response


def bad_request_response() -> HttpResponse:
    """Produce a 400 response that ends the connection."""
    response = html_response(
        HTTPStatus.BAD_REQUEST, error_page("ERROR 400: Bad Request")
    )
    response.close_connection = True
    return response


def entity_too_large_response() -> HttpResponse:
    """Produce a 413 response that always closes the connection."""
    response = html_response(
        HTTPStatus.REQUEST_ENTITY_TOO_LARGE, error_page("ERROR 413: Payload Too Large")
    )
    response.close_connection = True
    return response
