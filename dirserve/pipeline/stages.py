"""Stage protocol for the request pipeline, plus the small built-in stages."""

from dataclasses import dataclass
from http import HTTPStatus
from pathlib import Path
from typing import Optional

from dirserve.bootstrap.config import ROBOTS_BODY, ROBOTS_PATH
from dirserve.domain.correlation_id import get_logger
from dirserve.domain.http_types import HttpRequest, HttpResponse
from dirserve.domain.response_builders import text_response
from dirserve.domain.sandbox import PathKind, lookup_path
from dirserve.domain.variants import accepted_encodings

ACCESS_LOGGER = get_logger("access")


@dataclass(frozen=True)
class RequestContext:
    """Per-request view handed to every stage."""

    request: HttpRequest
    encodings: frozenset[str]

    @classmethod
    def from_request(cls, request: HttpRequest) -> "RequestContext":
        return cls(request, accepted_encodings(request.headers))

    @property
    def method(self) -> str:
        return self.request.method

    @property
    def path(self) -> str:
        return self.request.path

    @property
    def url(self) -> str:
        return self.request.target

    @property
    def is_read(self) -> bool:
        return self.request.method in ("GET", "HEAD")


class Stage:
    """One step of the pipeline.

    ``attempt`` returns a response to stop the chain or ``None`` to pass the
    request on. ``finalize`` runs on the final response for every stage whose
    ``attempt`` was called.
    """

    name = "stage"

    def attempt(self, context: RequestContext) -> Optional[HttpResponse]:
        return None

    def finalize(self, context: RequestContext, response: HttpResponse) -> None:
        return None

    def __repr__(self) -> str:
        return f"<{type(self).__name__}>"


class RobotsStage(Stage):
    """Answers ``/robots.txt`` with a disallow-all file."""

    name = "robots"

    def attempt(self, context: RequestContext) -> Optional[HttpResponse]:
        if context.url != ROBOTS_PATH:
            return None
        return text_response(HTTPStatus.OK, ROBOTS_BODY)


def robots_stage_for(root: str) -> Optional[RobotsStage]:
    """Return a robots stage unless the root already ships a robots.txt."""
    if lookup_path(Path(root) / ROBOTS_PATH.lstrip("/")) is PathKind.FILE:
        return None
    return RobotsStage()


class AccessLogStage(Stage):
    """Logs every request that reaches it, and its outcome."""

    name = "access_log"

    def attempt(self, context: RequestContext) -> Optional[HttpResponse]:
        ACCESS_LOGGER.info(
            "%s %s",
            context.method,
            context.url,
            extra={"event": "request", "method": context.method, "url": context.url},
        )
        return None

    def finalize(self, context: RequestContext, response: HttpResponse) -> None:
        ACCESS_LOGGER.debug(
            "%s %s -> %d",
            context.method,
            context.url,
            response.status.value,
            extra={
                "event": "response",
                "method": context.method,
                "url": context.url,
                "status_code": response.status.value,
            },
        )
