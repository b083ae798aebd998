"""Pre-compressed sidecar selection (``foo.js`` -> ``foo.js.br`` / ``foo.js.gz``)."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dirserve.domain.content_types import content_type_for
from dirserve.domain.correlation_id import get_logger
from dirserve.domain.sandbox import (
    ForbiddenPath,
    PathKind,
    has_hidden_segment,
    lookup_path,
    resolve_sandbox_path,
)

VARIANT_LOGGER = get_logger("domain.variants")


@dataclass(frozen=True)
class VariantDecision:
    """The sidecar picked for a request and the headers that describe it."""

    file_path: Path
    encoding: str
    content_type: str

    def headers(self) -> dict[str, str]:
        return {
            "Content-Type": self.content_type,
            "Content-Encoding": self.encoding,
            "Vary": "Accept-Encoding",
        }


def _quality(params: str) -> float:
    for param in params.split(";"):
        key, _, raw_value = param.strip().partition("=")
        if key.strip().lower() == "q" and raw_value:
            try:
                return float(raw_value)
            except ValueError:
                return 0.0
    return 1.0


def accepted_encodings(headers: Mapping[str, str]) -> frozenset[str]:
    """Return the encodings the Accept-Encoding header allows with q>0."""
    accepted = set()
    for token in headers.get("accept-encoding", "").split(","):
        value = token.strip()
        if not value:
            continue
        coding, _, params = value.partition(";")
        if params and _quality(params) <= 0:
            continue
        accepted.add(coding.strip().lower())
    return frozenset(accepted)


class VariantResolver:
    """Chooses which compressed sidecar, if any, answers a request path.

    Brotli is tried before gzip. ``index_name`` is the document a path ending
    in ``/`` maps to; ``None`` disables directory paths entirely.
    """

    def __init__(
        self,
        root: str,
        brotli: bool,
        gzip: bool,
        index_name: Optional[str] = None,
        show_hidden: bool = False,
    ) -> None:
        # pylint: disable=too-many-arguments
        self._root = root
        self._index_name = index_name
        self._show_hidden = show_hidden
        self._candidates: list[tuple[str, str]] = []
        if brotli:
            self._candidates.append((".br", "br"))
        if gzip:
            self._candidates.append((".gz", "gzip"))

    @property
    def candidates(self) -> tuple[tuple[str, str], ...]:
        return tuple(self._candidates)

    def logical_path(self, request_path: str) -> Optional[str]:
        if request_path.endswith("/"):
            if self._index_name is None:
                return None
            return request_path + self._index_name
        return request_path

    def resolve(
        self, request_path: str, encodings: frozenset[str]
    ) -> Optional[VariantDecision]:
        """Return the first sidecar the client accepts and that exists as a file."""
        logical = self.logical_path(request_path)
        if logical is None:
            return None
        if not self._show_hidden and has_hidden_segment(logical):
            return None

        for suffix, encoding in self._candidates:
            if encoding not in encodings:
                continue
            try:
                sidecar = resolve_sandbox_path(self._root, logical + suffix)
            except ForbiddenPath:
                return None
            if lookup_path(sidecar) is not PathKind.FILE:
                continue
            if VARIANT_LOGGER.logger.isEnabledFor(logging.DEBUG):
                VARIANT_LOGGER.debug(
                    "Compressed variant selected",
                    extra={
                        "event": "variant_selected",
                        "path": logical,
                        "encoding": encoding,
                    },
                )
            return VariantDecision(sidecar, encoding, content_type_for(logical))
        return None
