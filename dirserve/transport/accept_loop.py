"""Main connection acceptance loop."""

import logging
import socket
import threading

from dirserve.domain.correlation_id import get_logger
from dirserve.transport.context import WorkerContext
from dirserve.transport.worker import handle_client

ACCEPT_LOGGER = get_logger("transport.accept")


def _spawn_worker(
    client_socket: socket.socket,
    client_address: tuple[str, int],
    context: WorkerContext,
) -> None:
    if ACCEPT_LOGGER.logger.isEnabledFor(logging.DEBUG):
        ACCEPT_LOGGER.debug(
            "Client connection accepted",
            extra={
                "event": "client_accepted",
                "client": f"{client_address[0]}:{client_address[1]}",
            },
        )
    thread = threading.Thread(
        target=handle_client,
        args=(client_socket, client_address, context),
        name=f"dirserve-worker-{client_address[1]}",
        daemon=True,
    )
    thread.start()


def serve_forever(listener: socket.socket, context: WorkerContext) -> None:
    """Accept connections until the registry's stop flag is set."""
    connections = context.connections
    while not connections.should_stop():
        try:
            client_socket, client_address = listener.accept()
        except socket.timeout:
            continue
        except OSError as error:
            if connections.should_stop():
                break
            ACCEPT_LOGGER.error(
                "Socket accept failed",
                extra={"event": "accept_error", "error_type": type(error).__name__},
            )
            continue
        # Accepted sockets inherit the listener's poll timeout.
        client_socket.settimeout(None)
        _spawn_worker(client_socket, client_address[:2], context)
