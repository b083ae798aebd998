"""Content-type lookup by file name."""

import mimetypes
from typing import Optional

DEFAULT_CONTENT_TYPE = "application/octet-stream"

ENCODING_SUFFIXES = {".gz": "gzip", ".br": "br"}

ARCHIVE_CONTENT_TYPES = {
    "gzip": "application/gzip",
    "br": "application/x-brotli",
}

TEXTUAL_TYPES = {
    "application/javascript",
    "application/json",
    "application/xml",
    "image/svg+xml",
}


def _with_charset(mime_type: str) -> str:
    if mime_type.startswith("text/") or mime_type in TEXTUAL_TYPES:
        return f"{mime_type}; charset=utf-8"
    return mime_type


def content_type_for(name: str) -> str:
    """Return the Content-Type for a file name as stored on disk.

    A compressed file (``.gz``, ``.br``) is an archive here; the logical type
    of its contents is only used by the negotiation and Unity code paths.
    """
    mime_type, encoding = mimetypes.guess_type(name, strict=False)
    if encoding is not None:
        return ARCHIVE_CONTENT_TYPES.get(encoding, DEFAULT_CONTENT_TYPE)
    if mime_type is None:
        return DEFAULT_CONTENT_TYPE
    return _with_charset(mime_type)


def split_encoding_suffix(name: str) -> tuple[str, Optional[str]]:
    """Split ``app.js.gz`` into ``("app.js", "gzip")``; other names are unchanged."""
    for suffix, encoding in ENCODING_SUFFIXES.items():
        if name.endswith(suffix) and len(name) > len(suffix):
            return name[: -len(suffix)], encoding
    return name, None
