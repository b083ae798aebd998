"""Worker thread logic for handling individual client connections."""

import logging
import socket
import ssl
from typing import Optional

from dirserve.domain.correlation_id import (
    clear_correlation_id,
    generate_correlation_id,
    get_logger,
    set_correlation_id,
)
from dirserve.domain.http_types import HttpRequest, should_close
from dirserve.domain.response_builders import (
    bad_request_response,
    entity_too_large_response,
)
from dirserve.pipeline.io import receive_request, send_response
from dirserve.pipeline.validation import RequestEntityTooLarge, validate_request
from dirserve.transport.context import WorkerContext

WORKER_LOGGER = get_logger("transport.worker")


def _read_request(
    client_socket: socket.socket, buffer: bytes, client_addr_str: str
) -> tuple[Optional[HttpRequest], bytes]:
    """Read one request; malformed or oversized input is answered here."""
    try:
        return receive_request(client_socket, buffer)
    except RequestEntityTooLarge:
        WORKER_LOGGER.warning(
            "Request body size exceeded limit",
            extra={"event": "body_size_exceeded", "client": client_addr_str},
        )
        send_response(client_socket, entity_too_large_response())
    except ValueError:
        WORKER_LOGGER.warning(
            "Malformed request received",
            extra={"event": "malformed_request", "client": client_addr_str},
        )
        send_response(client_socket, bad_request_response())
    return None, b""


def _process_request(
    request: HttpRequest, context: WorkerContext, client_socket: socket.socket
) -> bool:
    """Answer one request; returns True when the connection must close."""
    response = validate_request(request)
    if response is None:
        response = context.pipeline.handle(request)
    if should_close(request):
        response.close_connection = True
    send_response(client_socket, response, head_only=request.method == "HEAD")
    return response.close_connection


def _wrap_tls(
    client_socket: socket.socket, context: WorkerContext, client_addr_str: str
) -> Optional[socket.socket]:
    """Run the TLS handshake, swapping the tracked socket for the wrapped one."""
    if context.tls_context is None:
        return client_socket
    try:
        tls_socket = context.tls_context.wrap_socket(client_socket, server_side=True)
    except (ssl.SSLError, OSError) as error:
        WORKER_LOGGER.warning(
            "TLS handshake failed",
            extra={
                "event": "tls_handshake_failed",
                "client": client_addr_str,
                "error_type": type(error).__name__,
            },
        )
        context.connections.unregister(client_socket)
        client_socket.close()
        return None
    context.connections.unregister(client_socket)
    if not context.connections.register(tls_socket):
        tls_socket.close()
        return None
    return tls_socket


def _cleanup(
    context: WorkerContext, client_socket: socket.socket, client_addr_str: str
) -> None:
    context.connections.unregister(client_socket)
    try:
        client_socket.shutdown(socket.SHUT_WR)
    except OSError:
        pass
    client_socket.close()
    if WORKER_LOGGER.logger.isEnabledFor(logging.DEBUG):
        WORKER_LOGGER.debug(
            "Socket closed",
            extra={"event": "socket_closed", "client": client_addr_str},
        )
    clear_correlation_id()


def handle_client(
    client_socket: socket.socket,
    client_address: tuple[str, int],
    context: WorkerContext,
) -> None:
    """Process requests on a client socket until the connection is closed."""
    client_addr_str = f"{client_address[0]}:{client_address[1]}"
    if not context.connections.register(client_socket):
        client_socket.close()
        return
    if context.socket_timeout:
        client_socket.settimeout(context.socket_timeout)

    active_socket = _wrap_tls(client_socket, context, client_addr_str)
    if active_socket is None:
        return

    buffer = b""
    try:
        while not context.connections.should_stop():
            set_correlation_id(generate_correlation_id())
            WORKER_LOGGER.debug(
                "Request processing started",
                extra={"event": "request_started", "client": client_addr_str},
            )
            request, buffer = _read_request(active_socket, buffer, client_addr_str)
            if request is None:
                break
            must_close = _process_request(request, context, active_socket)
            WORKER_LOGGER.debug(
                "Request processing complete",
                extra={
                    "event": "request_complete",
                    "client": client_addr_str,
                    "method": request.method,
                    "url": request.target,
                },
            )
            if must_close:
                break
            clear_correlation_id()
    except (ConnectionError, TimeoutError, OSError, UnicodeError) as error:
        if context.connections.should_stop():
            WORKER_LOGGER.debug(
                "Connection severed by shutdown",
                extra={"event": "connection_severed", "client": client_addr_str},
            )
        else:
            WORKER_LOGGER.error(
                "Error handling client connection",
                extra={
                    "event": "connection_error",
                    "client": client_addr_str,
                    "error_type": type(error).__name__,
                },
            )
    except Exception as error:  # pylint: disable=broad-except
        WORKER_LOGGER.error(
            "Unexpected error in worker",
            extra={
                "event": "worker_error",
                "client": client_addr_str,
                "error_type": type(error).__name__,
            },
            exc_info=True,
        )
    finally:
        _cleanup(context, active_socket, client_addr_str)
