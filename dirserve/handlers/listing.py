"""Directory listing stage and its HTML renderer.

Rows are laid out one per line in the format media-center clients such as
Kodi scrape: an anchor with the entry URL and name, the modification time
and the size with a one-letter unit.
"""

import datetime
import math
import os
import urllib.parse
from dataclasses import dataclass
from http import HTTPStatus
from pathlib import Path
from string import Template
from typing import Iterable, Optional

from dirserve.bootstrap.config import ServerConfig
from dirserve.domain.correlation_id import get_logger
from dirserve.domain.http_types import HttpResponse
from dirserve.domain.response_builders import escape_html, html_response
from dirserve.domain.sandbox import (
    PathKind,
    has_hidden_segment,
    lookup_path,
    resolve_sandbox_path,
)
from dirserve.pipeline.stages import RequestContext, Stage

LISTING_LOGGER = get_logger("handlers.listing")

SIZE_UNITS = ("B", "K", "M", "G")

LISTING_PAGE = Template(
    """<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>listing directory $directory</title>
<style>
body { font-family: sans-serif; margin: 1em 2em; }
table { border-collapse: collapse; }
td { padding: 0.1em 1em; }
td.s { text-align: right; }
</style>
</head>
<body>
<h1>$breadcrumb</h1>
<table id="files">
$rows
</table>
</body>
</html>
"""
)

ROW = Template(
    '<tr><td class="i"></td><td class="n"><a href="$url">$name</a></td>'
    '<td align="right">$modified </td><td class="s">$size</td></tr>'
)


def format_bytes(num_bytes: int, decimals: int = 1) -> str:
    """Format a byte count as ``10.0B``, ``1.5K``, ``3.2M``... capped at G."""
    if num_bytes <= 0:
        index = 0
    else:
        index = min(int(math.log(num_bytes) / math.log(1024)), len(SIZE_UNITS) - 1)
    return f"{num_bytes / 1024 ** index:.{decimals}f}{SIZE_UNITS[index]}"


@dataclass(frozen=True)
class DirectoryEntry:
    """One child of a listed directory."""

    name: str
    is_directory: bool
    modified: datetime.datetime
    size: int

    @property
    def display_name(self) -> str:
        return f"{self.name}/" if self.is_directory else self.name

    @property
    def url(self) -> str:
        quoted = urllib.parse.quote(self.name, safe="")
        return f"{quoted}/" if self.is_directory else quoted

    @property
    def size_label(self) -> str:
        return "-" if self.is_directory else format_bytes(self.size)


def _entry_from_scan(item: os.DirEntry) -> DirectoryEntry:
    try:
        info = item.stat()
        is_directory = item.is_dir()
    except FileNotFoundError:
        # dangling symlink
        return DirectoryEntry(
            item.name, False, datetime.datetime.fromtimestamp(0), 0
        )
    return DirectoryEntry(
        item.name,
        is_directory,
        datetime.datetime.fromtimestamp(info.st_mtime),
        info.st_size,
    )


def scan_directory(directory: Path, show_hidden: bool = False) -> list[DirectoryEntry]:
    """Return the direct children of ``directory``, directories first then by name."""
    with os.scandir(directory) as items:
        entries = [
            _entry_from_scan(item)
            for item in items
            if show_hidden or not item.name.startswith(".")
        ]
    entries.sort(key=lambda entry: (not entry.is_directory, entry.name.lower()))
    return entries


def render_breadcrumb(directory_path: str) -> str:
    segments = directory_path.split("/")
    crumbs = []
    for position, segment in enumerate(segments):
        if not segment:
            continue
        href = "/".join(
            urllib.parse.quote(part, safe="") for part in segments[: position + 1]
        )
        crumbs.append(f'<a href="{escape_html(href)}/">{escape_html(segment)}</a>')
    return '<a href="/">~</a> / ' + " / ".join(crumbs)


def render_row(entry: DirectoryEntry) -> str:
    return ROW.substitute(
        url=escape_html(entry.url),
        name=escape_html(entry.display_name),
        modified=entry.modified.strftime("%Y-%m-%d %H:%M"),
        size=entry.size_label,
    )


def render_listing(directory_path: str, entries: Iterable[DirectoryEntry]) -> str:
    """Render the listing page for ``directory_path`` (a URL path ending in ``/``)."""
    return LISTING_PAGE.substitute(
        directory=escape_html(directory_path),
        breadcrumb=render_breadcrumb(directory_path),
        rows="\n".join(render_row(entry) for entry in entries),
    )


class DirectoryListingStage(Stage):
    """Renders an HTML listing for directory paths ending in ``/``."""

    name = "listing"

    def __init__(self, config: ServerConfig) -> None:
        self._config = config

    def attempt(self, context: RequestContext) -> Optional[HttpResponse]:
        if not context.is_read or not context.path.endswith("/"):
            return None
        if not self._config.show_hidden and has_hidden_segment(context.path):
            return None
        directory = resolve_sandbox_path(self._config.root, context.path)
        if lookup_path(directory) is not PathKind.DIRECTORY:
            return None

        entries = scan_directory(directory, self._config.show_hidden)
        LISTING_LOGGER.debug(
            "Rendered directory listing",
            extra={
                "event": "directory_listed",
                "directory": context.path,
                "entries": len(entries),
            },
        )
        return html_response(HTTPStatus.OK, render_listing(context.path, entries))
