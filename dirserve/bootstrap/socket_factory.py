"""Listener socket creation and TLS configuration."""

import socket
import ssl
from typing import Optional

from dirserve.bootstrap.certificates import TlsMaterialError, load_tls_material
from dirserve.bootstrap.config import ServerConfig
from dirserve.domain.correlation_id import get_logger

SOCKET_LOGGER = get_logger("transport.socket")

ACCEPT_POLL_SECONDS = 0.5


def create_listener(host: str, port: int) -> socket.socket:
    """Bind and listen on ``(host, port)``; accept() polls so close() is noticed."""
    listener = socket.create_server((host, port))
    listener.settimeout(ACCEPT_POLL_SECONDS)
    return listener


def build_tls_context(config: ServerConfig) -> Optional[ssl.SSLContext]:
    """Return a server TLS context, or None when HTTPS is off."""
    if not config.ssl:
        return None
    certfile, keyfile = load_tls_material(config)
    tls_context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    try:
        tls_context.load_cert_chain(certfile, keyfile)
    except ssl.SSLError as error:
        SOCKET_LOGGER.critical(
            "Failed to load TLS certificates",
            extra={"event": "tls_load_failed", "error_type": type(error).__name__},
        )
        raise TlsMaterialError(f"cannot load TLS material: {error}") from error
    return tls_context
