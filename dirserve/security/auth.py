"""HTTP Basic authentication gate."""

import base64
import binascii
import hmac
import re
from typing import Optional

from dirserve.domain.correlation_id import get_logger
from dirserve.domain.http_types import HttpResponse
from dirserve.domain.response_builders import unauthorized_response
from dirserve.pipeline.stages import RequestContext, Stage

AUTH_LOGGER = get_logger("security.auth")

BASIC_SCHEME = re.compile(r"^ *[Bb][Aa][Ss][Ii][Cc] +([A-Za-z0-9._~+/-]+=*) *$")


def parse_basic_credentials(header_value: Optional[str]) -> Optional[tuple[str, str]]:
    """Return ``(username, password)`` from a Basic Authorization header."""
    if not header_value:
        return None
    match = BASIC_SCHEME.match(header_value)
    if match is None:
        return None
    try:
        decoded = base64.b64decode(match.group(1), validate=True)
    except (binascii.Error, ValueError):
        return None
    username, separator, password = decoded.decode("utf-8", "replace").partition(":")
    if not separator:
        return None
    return username, password


class BasicAuthStage(Stage):
    """Rejects requests whose credentials do not match the configured pair."""

    name = "auth"

    def __init__(self, username: Optional[str], password: Optional[str]) -> None:
        self._username = (username or "").encode("utf-8")
        self._password = (password or "").encode("utf-8")

    def check(self, header_value: Optional[str]) -> bool:
        credentials = parse_basic_credentials(header_value)
        supplied_name, supplied_password = credentials or ("", "")
        # Both comparisons always run.
        name_ok = hmac.compare_digest(self._username, supplied_name.encode("utf-8"))
        password_ok = hmac.compare_digest(
            self._password, supplied_password.encode("utf-8")
        )
        return credentials is not None and name_ok and password_ok

    def attempt(self, context: RequestContext) -> Optional[HttpResponse]:
        if self.check(context.request.headers.get("authorization")):
            return None
        AUTH_LOGGER.info(
            "Access denied",
            extra={
                "event": "auth_rejected",
                "method": context.method,
                "url": context.url,
            },
        )
        return unauthorized_response()
