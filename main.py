"""Command-line entry point: serve a directory over HTTP or HTTPS."""

import signal
import sys
from typing import Optional

from dirserve.bootstrap.config import (
    ConfigurationError,
    build_server_config,
    parse_cli_args,
)
from dirserve.bootstrap.logging_setup import configure_logging
from dirserve.domain.correlation_id import get_logger
from dirserve.lifecycle.server import (
    HostInfo,
    ServerClosedError,
    ServerHandle,
    StartInfo,
)

SERVER_LOGGER = get_logger("cli")

POLL_SECONDS = 0.5


def _announce_start(info: StartInfo) -> None:
    SERVER_LOGGER.info(
        "Server started at %s",
        info.base_url,
        extra={"event": "server_started", "port": info.port, "base_url": info.base_url},
    )


def _announce_host(info: HostInfo) -> None:
    SERVER_LOGGER.info(
        "Also reachable at %s",
        info.root,
        extra={"event": "server_host", "url": info.root},
    )


def main(argv: Optional[list[str]] = None) -> int:
    """Start the server and block until it is closed; returns the exit status."""
    args = parse_cli_args(sys.argv[1:] if argv is None else argv)
    configure_logging(args.log_level, args.log_destination, args.log_json)
    try:
        config = build_server_config(args)
    except ConfigurationError as error:
        SERVER_LOGGER.critical(
            "Invalid configuration: %s",
            error,
            extra={"event": "startup_aborted", "error_type": type(error).__name__},
        )
        return 1

    handle = ServerHandle(config)
    handle.on("start", _announce_start)
    handle.on("host", _announce_host)

    def shutdown_handler(signum: int, _frame) -> None:
        SERVER_LOGGER.info("Received shutdown signal", extra={"signal": signum})
        handle.close()

    signal.signal(signal.SIGTERM, shutdown_handler)
    signal.signal(signal.SIGINT, shutdown_handler)

    SERVER_LOGGER.info(
        "Starting dirserve",
        extra={
            "event": "server_starting",
            "root": config.root,
            "port": config.port,
            "host": config.bind_host,
            "tls": config.ssl,
            "socket_timeout": config.socket_timeout,
            "log_destination": args.log_destination,
            "log_level": args.log_level,
        },
    )
    handle.start()
    while not handle.started.done():
        handle.wait_closed(POLL_SECONDS)
    try:
        handle.wait_started()
    except ServerClosedError:
        return 0
    except (ConfigurationError, OSError) as error:
        SERVER_LOGGER.critical(
            "Could not start server: %s",
            error,
            extra={"event": "startup_aborted", "error_type": type(error).__name__},
        )
        return 1

    while not handle.wait_closed(POLL_SECONDS):
        pass
    return 0


if __name__ == "__main__":
    sys.exit(main())
