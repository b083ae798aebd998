"""Free-port discovery by bind probing."""

import errno
import socket

from dirserve.bootstrap.config import (
    MAX_PORT,
    ConfigurationError,
    PortUnavailableError,
    ServerConfig,
)
from dirserve.domain.correlation_id import get_logger

PORT_LOGGER = get_logger("transport.ports")

LOCAL_HOST = "127.0.0.1"
PUBLIC_HOST = "0.0.0.0"
RETRY_ERRNOS = frozenset({errno.EADDRINUSE, errno.EACCES})


class PortExhaustedError(ConfigurationError):
    """Raised when no port up to 65535 can be bound."""


def probe_port(port: int, bind_host: str) -> bool:
    """Return True when ``port`` can be bound on ``bind_host`` right now.

    The probe socket is released immediately. Errors other than "in use" and
    "permission denied" propagate.
    """
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as probe:
        try:
            probe.bind((bind_host, port))
        except OSError as error:
            if error.errno in RETRY_ERRNOS:
                PORT_LOGGER.debug(
                    "Port unavailable",
                    extra={
                        "event": "port_busy",
                        "host": bind_host,
                        "port": port,
                        "errno": error.errno,
                    },
                )
                return False
            raise
    return True


def find_free_port(start_port: int, bind_host: str) -> int:
    """Return the first port at or above ``start_port`` bindable on ``bind_host``."""
    if start_port == 0:
        return 0
    port = start_port
    while port <= MAX_PORT:
        if probe_port(port, bind_host):
            return port
        port += 1
    raise PortExhaustedError(f"no free port between {start_port} and {MAX_PORT}")


def find_free_port_for_local_and_public(start_port: int) -> int:
    """Return a port free on both 0.0.0.0 and 127.0.0.1."""
    return find_free_port(find_free_port(start_port, PUBLIC_HOST), LOCAL_HOST)


def resolve_listen_port(config: ServerConfig) -> int:
    """Pick the port to listen on, honouring ``config.scan``."""
    if config.local:
        port = find_free_port(config.port, LOCAL_HOST)
    else:
        port = find_free_port_for_local_and_public(config.port)
    if not config.scan and port != config.port:
        raise PortUnavailableError(config.port, port)
    if port != config.port:
        PORT_LOGGER.info(
            "Requested port in use, using next free port",
            extra={"event": "port_scanned", "port": port},
        )
    return port
