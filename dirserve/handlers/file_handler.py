"""Static file serving stages: compressed sidecars and plain files."""

import os
import urllib.parse
from http import HTTPStatus
from pathlib import Path, PurePosixPath
from typing import BinaryIO, Iterator, Optional

from dirserve.bootstrap.config import (
    CACHE_BUSTING_HEADERS,
    CROSS_ORIGIN_ISOLATION_HEADERS,
    ServerConfig,
)
from dirserve.domain.content_types import content_type_for, split_encoding_suffix
from dirserve.domain.correlation_id import get_logger
from dirserve.domain.http_types import HttpResponse
from dirserve.domain.response_builders import redirect_response
from dirserve.domain.sandbox import (
    PathKind,
    has_hidden_segment,
    lookup_path,
    resolve_sandbox_path,
)
from dirserve.domain.variants import VariantResolver
from dirserve.pipeline.stages import RequestContext, Stage

FILE_LOGGER = get_logger("handlers.file")

CHUNK_SIZE = 65536


class FileStream:
    """An open file yielded in fixed-size chunks; iterating to the end closes it."""

    def __init__(self, file_handle: BinaryIO, chunk_size: int = CHUNK_SIZE) -> None:
        self._file_handle = file_handle
        self._chunk_size = chunk_size

    def __iter__(self) -> Iterator[bytes]:
        try:
            while True:
                chunk = self._file_handle.read(self._chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            self.close()

    def close(self) -> None:
        self._file_handle.close()


def served_file_headers(
    config: ServerConfig, file_headers: dict[str, str]
) -> dict[str, str]:
    """Layer cache, isolation, per-file and configured headers; later ones win."""
    headers = dict(CACHE_BUSTING_HEADERS)
    if config.shared_array_buffers:
        headers.update(CROSS_ORIGIN_ISOLATION_HEADERS)
    headers.update(file_headers)
    headers.update(config.extra_headers)
    return headers


def file_response(
    config: ServerConfig, filepath: Path, headers: dict[str, str]
) -> HttpResponse:
    """Open ``filepath`` and stream it; open errors surface to the pipeline."""
    file_handle = open(filepath, "rb")  # pylint: disable=consider-using-with
    try:
        size = os.fstat(file_handle.fileno()).st_size
    except OSError:
        file_handle.close()
        raise
    merged = served_file_headers(config, headers)
    FILE_LOGGER.debug(
        "Serving file",
        extra={"event": "file_served", "path": filepath.as_posix(), "bytes_out": size},
    )
    return HttpResponse(
        HTTPStatus.OK,
        merged,
        body_iter=FileStream(file_handle),
        content_length=size,
    )


class CompressedVariantStage(Stage):
    """Serves a ``.br``/``.gz`` sidecar when the client accepts its encoding."""

    name = "compression"

    def __init__(self, config: ServerConfig) -> None:
        self._config = config
        self._resolver = VariantResolver(
            config.root,
            brotli=config.brotli,
            gzip=config.gzip,
            index_name=config.index_name if config.serve_index else None,
            show_hidden=config.show_hidden,
        )

    def attempt(self, context: RequestContext) -> Optional[HttpResponse]:
        if not context.is_read:
            return None
        decision = self._resolver.resolve(context.path, context.encodings)
        if decision is None:
            return None
        return file_response(self._config, decision.file_path, decision.headers())


class StaticFileStage(Stage):
    """Serves the literal path under root, an index file, or a fallback extension."""

    name = "static"

    def __init__(self, config: ServerConfig) -> None:
        self._config = config

    def _headers_for(self, filepath: Path) -> dict[str, str]:
        headers = {"Content-Type": content_type_for(filepath.name)}
        if self._config.unity_hack:
            logical_name, encoding = split_encoding_suffix(filepath.name)
            if encoding is not None:
                headers["Content-Type"] = content_type_for(logical_name)
                headers["Content-Encoding"] = encoding
                headers["Vary"] = "Accept-Encoding"
        return headers

    def _serve(self, filepath: Path) -> HttpResponse:
        return file_response(self._config, filepath, self._headers_for(filepath))

    def _directory_redirect(self, context: RequestContext) -> HttpResponse:
        location = urllib.parse.quote(context.path + "/")
        if context.request.query:
            location = f"{location}?{context.request.query}"
        return redirect_response(location)

    def _with_extension(self, context: RequestContext) -> Optional[HttpResponse]:
        if context.path.endswith("/") or PurePosixPath(context.path).suffix:
            return None
        for extension in self._config.extensions:
            candidate = resolve_sandbox_path(
                self._config.root, f"{context.path}.{extension}"
            )
            if lookup_path(candidate) is PathKind.FILE:
                return self._serve(candidate)
        return None

    def attempt(self, context: RequestContext) -> Optional[HttpResponse]:
        if not context.is_read:
            return None
        if not self._config.show_hidden and has_hidden_segment(context.path):
            return None

        target = resolve_sandbox_path(self._config.root, context.path)
        kind = lookup_path(target)
        if kind is PathKind.FILE:
            if context.path.endswith("/"):
                return None
            return self._serve(target)
        if kind is PathKind.DIRECTORY:
            if not context.path.endswith("/"):
                return self._directory_redirect(context)
            if not self._config.serve_index:
                return None
            index_path = target / self._config.index_name
            if lookup_path(index_path) is PathKind.FILE:
                return self._serve(index_path)
            return None
        return self._with_extension(context)
