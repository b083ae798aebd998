"""Shared state of a running server: the stop flag and the open sockets."""

import socket
import threading

from dirserve.domain.correlation_id import get_logger

LIFECYCLE_LOGGER = get_logger("lifecycle")


class ConnectionRegistry:
    """Tracks open client sockets so they can be severed on close."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._sockets: set[socket.socket] = set()

    def should_stop(self) -> bool:
        """Check if the server should stop accepting new connections."""
        return self._stop_event.is_set()

    def register(self, client_socket: socket.socket) -> bool:
        """Track ``client_socket``; returns False once the server is closing."""
        with self._lock:
            if self._stop_event.is_set():
                return False
            self._sockets.add(client_socket)
            return True

    def unregister(self, client_socket: socket.socket) -> None:
        with self._lock:
            self._sockets.discard(client_socket)

    def active_count(self) -> int:
        with self._lock:
            return len(self._sockets)

    def close_all(self) -> int:
        """Set the stop flag and sever every tracked socket; returns how many."""
        with self._lock:
            self._stop_event.set()
            sockets = list(self._sockets)
            self._sockets.clear()
        for client_socket in sockets:
            try:
                client_socket.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            client_socket.close()
        if sockets:
            LIFECYCLE_LOGGER.info(
                "Closed open connections",
                extra={"event": "connections_closed", "connections": len(sockets)},
            )
        return len(sockets)
