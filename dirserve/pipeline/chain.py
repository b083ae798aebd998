"""The ordered stage chain that turns a request into a response."""

from typing import Optional, Sequence

from dirserve.bootstrap.config import ServerConfig
from dirserve.domain.correlation_id import get_logger
from dirserve.domain.http_types import HttpRequest, HttpResponse
from dirserve.domain.response_builders import (
    forbidden_response,
    not_found_response,
    server_error_response,
)
from dirserve.domain.sandbox import ForbiddenPath
from dirserve.handlers.file_handler import CompressedVariantStage, StaticFileStage
from dirserve.handlers.listing import DirectoryListingStage
from dirserve.pipeline.stages import (
    AccessLogStage,
    RequestContext,
    Stage,
    robots_stage_for,
)
from dirserve.security.auth import BasicAuthStage
from dirserve.security.cors import CorsStage

PIPELINE_LOGGER = get_logger("pipeline")


def build_stages(config: ServerConfig) -> list[Stage]:
    """Return the enabled stages for ``config`` in the order they run."""
    stages: list[Stage] = []
    if config.requires_auth:
        stages.append(BasicAuthStage(config.username, config.password))
    if config.cors:
        stages.append(CorsStage())
    if config.robots:
        robots = robots_stage_for(config.root)
        if robots is not None:
            stages.append(robots)
    stages.append(AccessLogStage())
    if config.negotiates_compression:
        stages.append(CompressedVariantStage(config))
    stages.append(StaticFileStage(config))
    if config.show_listing:
        stages.append(DirectoryListingStage(config))
    return stages


class RequestPipeline:
    """Runs stages in order until one answers; unanswered requests get a 404."""

    def __init__(self, stages: Sequence[Stage]) -> None:
        self._stages = tuple(stages)

    @classmethod
    def from_config(cls, config: ServerConfig) -> "RequestPipeline":
        return cls(build_stages(config))

    @property
    def stages(self) -> tuple[Stage, ...]:
        return self._stages

    def handle(self, request: HttpRequest) -> HttpResponse:
        """Return the response for ``request``; stage errors become a 500 page."""
        context = RequestContext.from_request(request)
        visited: list[Stage] = []
        response: Optional[HttpResponse] = None
        try:
            for stage in self._stages:
                visited.append(stage)
                response = stage.attempt(context)
                if response is not None:
                    break
        except ForbiddenPath:
            PIPELINE_LOGGER.warning(
                "Forbidden path access blocked",
                extra={"event": "forbidden_path", "path": request.path},
            )
            response = forbidden_response()
        except Exception as error:  # pylint: disable=broad-except
            PIPELINE_LOGGER.error(
                "Request handler failed",
                extra={
                    "event": "handler_error",
                    "method": request.method,
                    "url": request.target,
                    "error_type": type(error).__name__,
                },
                exc_info=True,
            )
            response = server_error_response(error)

        if response is None:
            PIPELINE_LOGGER.info(
                "No such path",
                extra={"event": "not_found", "path": request.path},
            )
            response = not_found_response(request)

        for stage in visited:
            stage.finalize(context, response)
        return response
