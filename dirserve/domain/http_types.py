"""Request and response value types shared by every layer."""

from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Iterable, Optional


@dataclass
class HttpRequest:
    """A parsed HTTP request.

    ``target`` is the request target exactly as the client sent it (path and
    query); ``path`` is its percent-decoded path component.
    """

    method: str
    target: str
    path: str
    headers: dict[str, str]
    body: bytes = b""
    version: str = "HTTP/1.1"

    @property
    def query(self) -> str:
        _, _, query = self.target.partition("?")
        return query


@dataclass
class HttpResponse:
    """An HTTP response waiting to be written to a client.

    File responses carry ``body_iter`` and ``content_length`` instead of an
    in-memory ``body``.
    """

    status: HTTPStatus
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    body_iter: Optional[Iterable[bytes]] = None
    content_length: Optional[int] = None
    close_connection: bool = False

    @property
    def status_line(self) -> str:
        return f"HTTP/1.1 {self.status.value} {self.status.phrase}"

    @property
    def declared_length(self) -> int:
        if self.body_iter is not None and self.content_length is not None:
            return self.content_length
        return len(self.body)


def should_close(request: HttpRequest) -> bool:
    """Return True when the client asked for the connection to end."""
    connection = request.headers.get("connection", "").lower()
    if request.version == "HTTP/1.0":
        return connection != "keep-alive"
    return connection == "close"
