"""HTTP/1.1 wire input and output."""

import logging
import socket
import urllib.parse
from typing import Optional, Tuple

from dirserve.bootstrap.config import HEADER_DELIMITER, MAX_BODY_BYTES
from dirserve.domain.correlation_id import (
    get_correlation_id,
    get_logger,
    set_correlation_id,
)
from dirserve.domain.http_types import HttpRequest, HttpResponse
from dirserve.pipeline.validation import RequestEntityTooLarge

IO_LOGGER = get_logger("transport.io")

MAX_HEADER_BYTES = 64 * 1024
SUPPORTED_VERSIONS = ("HTTP/1.0", "HTTP/1.1")


def parse_headers(lines: list[str]) -> dict[str, str]:
    """Convert raw header lines into a lowercase-keyed dictionary."""
    parsed = {}
    for line in lines:
        name, separator, value = line.partition(":")
        if not separator or not name.strip():
            raise ValueError(f"Malformed header line: {line!r}")
        parsed[name.strip().lower()] = value.strip()
    return parsed


def parse_request_line(request_line: str) -> Tuple[str, str, str, str]:
    """Return method, raw target, decoded path and HTTP version."""
    try:
        method, target, version = request_line.split(" ", 2)
    except ValueError as exc:
        raise ValueError("Invalid request line") from exc
    if version not in SUPPORTED_VERSIONS or not method.isalpha():
        raise ValueError("Invalid request line")

    path = urllib.parse.unquote(urllib.parse.urlsplit(target).path)
    return method.upper(), target, path, version


def determine_content_length(headers: dict[str, str]) -> int:
    """Validate and return the declared Content-Length for the request."""
    header_value = headers.get("content-length")
    if header_value is None:
        return 0
    try:
        content_length = int(header_value)
    except ValueError as exc:
        raise ValueError("Invalid Content-Length") from exc
    if content_length < 0:
        raise ValueError("Negative Content-Length")
    if content_length > MAX_BODY_BYTES:
        raise RequestEntityTooLarge
    return content_length


def receive_request(
    client_socket: socket.socket, buffer: bytes
) -> Tuple[Optional[HttpRequest], bytes]:
    """Read bytes from the socket until a complete request is available."""
    while HEADER_DELIMITER not in buffer:
        if len(buffer) > MAX_HEADER_BYTES:
            raise ValueError("Header block too large")
        chunk = client_socket.recv(4096)
        if not chunk:
            return None, b""
        buffer += chunk

    header_block, remainder = buffer.split(HEADER_DELIMITER, 1)
    header_lines = header_block.decode("latin-1").split("\r\n")
    method, target, path, version = parse_request_line(header_lines[0])
    headers = parse_headers(header_lines[1:])

    incoming_correlation_id = headers.get("x-request-id")
    if incoming_correlation_id:
        set_correlation_id(incoming_correlation_id)

    content_length = determine_content_length(headers)

    while len(remainder) < content_length:
        chunk = client_socket.recv(4096)
        if not chunk:
            return None, b""
        remainder += chunk

    body = remainder[:content_length]
    leftover = remainder[content_length:]
    if IO_LOGGER.logger.isEnabledFor(logging.DEBUG):
        IO_LOGGER.debug(
            "Parsed request",
            extra={"event": "request_parsed", "method": method, "path": path},
        )
    return HttpRequest(method, target, path, headers, body, version), leftover


def send_response(
    client_socket: socket.socket, response: HttpResponse, head_only: bool = False
) -> None:
    """Serialize and send the response; ``head_only`` skips the body."""
    headers = dict(response.headers)

    correlation_id = get_correlation_id()
    if correlation_id:
        headers["X-Request-ID"] = correlation_id

    headers["Content-Length"] = str(response.declared_length)
    if response.close_connection:
        headers["Connection"] = "close"
    header_lines = [response.status_line]
    header_lines.extend(f"{name}: {value}" for name, value in headers.items())
    header_block = "\r\n".join(header_lines).encode("latin-1") + HEADER_DELIMITER

    try:
        if head_only:
            client_socket.sendall(header_block)
        elif response.body_iter is not None:
            client_socket.sendall(header_block)
            for chunk in response.body_iter:
                client_socket.sendall(chunk)
        else:
            client_socket.sendall(header_block + response.body)
    finally:
        close_body = getattr(response.body_iter, "close", None)
        if close_body is not None:
            close_body()
    if IO_LOGGER.logger.isEnabledFor(logging.DEBUG):
        IO_LOGGER.debug(
            "Sent response",
            extra={
                "event": "response_sent",
                "status_code": response.status.value,
                "bytes_out": 0 if head_only else response.declared_length,
            },
        )
