"""Server handle: port selection, listener, lifecycle events and shutdown."""

import socket
import threading
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any, Callable, Optional

from dirserve.bootstrap.config import ConfigurationError, ServerConfig
from dirserve.bootstrap.socket_factory import build_tls_context, create_listener
from dirserve.domain.correlation_id import get_logger
from dirserve.lifecycle.state import ConnectionRegistry
from dirserve.pipeline.chain import RequestPipeline
from dirserve.transport.accept_loop import serve_forever
from dirserve.transport.context import WorkerContext
from dirserve.transport.interfaces import non_loopback_ipv4_addresses
from dirserve.transport.port_finder import resolve_listen_port

LIFECYCLE_LOGGER = get_logger("lifecycle")

EVENTS = ("start", "host", "error", "close")
JOIN_TIMEOUT_SECONDS = 5.0

Listener = Callable[[Any], None]


class ServerClosedError(RuntimeError):
    """Raised through ``started`` when close() wins the race against startup."""


@dataclass(frozen=True)
class StartInfo:
    """Payload of the ``start`` event."""

    port: int
    protocol: str
    base_url: str


@dataclass(frozen=True)
class HostInfo:
    """Payload of a ``host`` event: a URL the server is reachable on."""

    root: str


class ServerHandle:
    """One server instance.

    ``start()`` returns immediately; the outcome arrives through the
    ``started`` future and the ``start``/``error`` events. ``close()`` severs
    the listener and every open connection, then the ``close`` event fires.
    """

    def __init__(self, config: ServerConfig) -> None:
        self.config = config
        self.started: "Future[StartInfo]" = Future()
        self._listeners: dict[str, list[Listener]] = {event: [] for event in EVENTS}
        self._connections = ConnectionRegistry()
        self._lock = threading.Lock()
        self._listener_socket: Optional[socket.socket] = None
        self._thread: Optional[threading.Thread] = None
        self._finished = threading.Event()

    def on(self, event: str, callback: Listener) -> "ServerHandle":
        """Subscribe ``callback`` to ``event``."""
        if event not in self._listeners:
            raise ValueError(f"unknown event {event!r}; expected one of {EVENTS}")
        self._listeners[event].append(callback)
        return self

    def start(self) -> "ServerHandle":
        with self._lock:
            if self._thread is not None:
                raise RuntimeError("server already started")
            self._thread = threading.Thread(
                target=self._run, name="dirserve-accept", daemon=True
            )
        self._thread.start()
        return self

    def wait_started(self, timeout: Optional[float] = None) -> StartInfo:
        """Block until listening; startup errors are re-raised here."""
        return self.started.result(timeout)

    def wait_closed(self, timeout: Optional[float] = None) -> bool:
        """Block until the server thread has finished."""
        return self._finished.wait(timeout)

    @property
    def port(self) -> Optional[int]:
        if self.started.done() and self.started.exception() is None:
            return self.started.result().port
        return None

    @property
    def active_connections(self) -> int:
        return self._connections.active_count()

    def close(self) -> None:
        """Stop accepting, sever open connections and wait for the accept thread."""
        self._connections.close_all()
        with self._lock:
            listener = self._listener_socket
            thread = self._thread
        if listener is not None:
            listener.close()
        if thread is not None and thread is not threading.current_thread():
            thread.join(JOIN_TIMEOUT_SECONDS)

    def __enter__(self) -> "ServerHandle":
        return self.start()

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _emit(self, event: str, payload: Any = None) -> None:
        for callback in list(self._listeners[event]):
            try:
                callback(payload)
            except Exception:  # pylint: disable=broad-except
                LIFECYCLE_LOGGER.exception(
                    "Lifecycle listener failed", extra={"event": "listener_error"}
                )

    def _fail(self, error: BaseException) -> None:
        LIFECYCLE_LOGGER.error(
            "Server failed to start: %s",
            error,
            extra={"event": "startup_failed", "error_type": type(error).__name__},
        )
        if not self.started.done():
            self.started.set_exception(error)
        self._emit("error", error)
        self._finished.set()

    def _open_listener(self) -> Optional[tuple[socket.socket, WorkerContext]]:
        config = self.config
        try:
            port = resolve_listen_port(config)
            tls_context = build_tls_context(config)
            pipeline = RequestPipeline.from_config(config)
            listener = create_listener(config.bind_host, port)
        except (ConfigurationError, OSError) as error:
            self._fail(error)
            return None
        except Exception as error:  # pylint: disable=broad-except
            LIFECYCLE_LOGGER.exception(
                "Unexpected startup failure", extra={"event": "startup_crashed"}
            )
            self._fail(error)
            return None

        with self._lock:
            if self._connections.should_stop():
                listener.close()
                self._fail(ServerClosedError("server closed before it started"))
                return None
            self._listener_socket = listener
        context = WorkerContext(
            pipeline=pipeline,
            connections=self._connections,
            tls_context=tls_context,
            socket_timeout=config.socket_timeout,
        )
        return listener, context

    def _announce(self, port: int) -> None:
        protocol = self.config.protocol
        info = StartInfo(port, protocol, f"{protocol}://localhost:{port}")
        LIFECYCLE_LOGGER.info(
            "Serving %s at %s",
            self.config.root,
            info.base_url,
            extra={
                "event": "server_listening",
                "root": self.config.root,
                "host": self.config.bind_host,
                "port": port,
                "base_url": info.base_url,
                "tls": self.config.ssl,
            },
        )
        self.started.set_result(info)
        self._emit("start", info)
        if self.config.local:
            return
        for address in non_loopback_ipv4_addresses():
            self._emit("host", HostInfo(f"{protocol}://{address}:{port}/"))

    def _run(self) -> None:
        opened = self._open_listener()
        if opened is None:
            return
        listener, context = opened
        try:
            self._announce(listener.getsockname()[1])
            serve_forever(listener, context)
        finally:
            self._connections.close_all()
            listener.close()
            LIFECYCLE_LOGGER.info("Server closed", extra={"event": "server_stopped"})
            self._emit("close")
            self._finished.set()


def start_server(config: ServerConfig, **listeners: Listener) -> ServerHandle:
    """Create a handle, subscribe ``listeners`` by event name and start it.

    ``start_server(config, start=print, error=print)``
    """
    handle = ServerHandle(config)
    for event, callback in listeners.items():
        handle.on(event, callback)
    return handle.start()
