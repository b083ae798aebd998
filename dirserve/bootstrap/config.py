"""Server configuration and CLI argument parsing."""

import argparse
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional, Sequence

APP_NAME = "dirserve"


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value is not None else default


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "yes", "on"}


def _env_list(name: str, default: list[str]) -> list[str]:
    value = os.getenv(name)
    if value is None:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]


def _env_str(name: str, default: Optional[str]) -> Optional[str]:
    return os.getenv(name, default)


MAX_BODY_BYTES = _env_int("DIRSERVE_MAX_BODY_BYTES", 1024 * 1024)
DEFAULT_PORT = _env_int("DIRSERVE_PORT", 8080)
DEFAULT_SOCKET_TIMEOUT = _env_int("DIRSERVE_SOCKET_TIMEOUT", 60)
DEFAULT_SCAN = _env_bool("DIRSERVE_SCAN", True)
DEFAULT_EXTENSIONS = _env_list("DIRSERVE_EXTENSIONS", ["html"])

MAX_PORT = 65535

HEADER_DELIMITER = b"\r\n\r\n"
INDEX_DOCUMENT = "index.html"
ROBOTS_PATH = "/robots.txt"
ROBOTS_BODY = "User-agent: *\nDisallow: /"

CACHE_BUSTING_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}

CROSS_ORIGIN_ISOLATION_HEADERS = {
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Embedder-Policy": "require-corp",
}


class ConfigurationError(Exception):
    """Raised when the server cannot start with the given configuration."""


class PortUnavailableError(ConfigurationError):
    """Raised when scanning is off and the requested port is taken."""

    def __init__(self, requested: int, available: int) -> None:
        super().__init__(
            f"port {requested} is not available (next free port is {available})"
        )
        self.requested = requested
        self.available = available


def default_data_dir(platform: str = sys.platform) -> Path:
    """Return the per-user application data directory."""
    home = Path.home()
    if platform == "darwin":
        return home / "Library" / "Application Support" / APP_NAME
    if platform.startswith("win"):
        appdata = os.getenv("APPDATA")
        base = Path(appdata) if appdata else home / "AppData" / "Roaming"
        return base / APP_NAME
    return home / f".{APP_NAME}"


@dataclass(frozen=True)
class ServerConfig:
    """Everything a server instance needs, fixed for its lifetime."""

    # pylint: disable=too-many-instance-attributes
    root: str
    port: int = DEFAULT_PORT
    local: bool = False
    serve_index: bool = False
    show_listing: bool = False
    gzip: bool = False
    brotli: bool = False
    unity_hack: bool = False
    shared_array_buffers: bool = False
    robots: bool = False
    show_hidden: bool = False
    username: Optional[str] = None
    password: Optional[str] = None
    extra_headers: Mapping[str, str] = field(default_factory=dict)
    extensions: tuple[str, ...] = ()
    cors: bool = False
    ssl: bool = False
    cert: Optional[str] = None
    key: Optional[str] = None
    data_dir: Optional[str] = None
    scan: bool = True
    index_name: str = INDEX_DOCUMENT
    socket_timeout: int = DEFAULT_SOCKET_TIMEOUT

    def __post_init__(self) -> None:
        if not 0 <= self.port <= MAX_PORT:
            raise ConfigurationError(
                f"port must be between 0 and {MAX_PORT}, got {self.port}"
            )

    @property
    def bind_host(self) -> str:
        return "127.0.0.1" if self.local else "0.0.0.0"

    @property
    def protocol(self) -> str:
        return "https" if self.ssl else "http"

    @property
    def requires_auth(self) -> bool:
        return bool(self.username or self.password)

    @property
    def negotiates_compression(self) -> bool:
        return self.gzip or self.brotli


def parse_header_option(value: str) -> tuple[str, str]:
    """Parse ``Name: value`` from ``--header``."""
    name, separator, header_value = value.partition(":")
    if not separator or not name.strip():
        raise argparse.ArgumentTypeError(
            f"expected NAME:VALUE, got {value!r}"
        )
    return name.strip(), header_value.strip()


def port_option(value: str) -> int:
    """Parse ``--port``; 0 asks the OS for any free port."""
    try:
        port = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid port {value!r}") from exc
    if not 0 <= port <= MAX_PORT:
        raise argparse.ArgumentTypeError(
            f"port must be between 0 and {MAX_PORT}, got {port}"
        )
    return port


def normalize_extensions(values: Sequence[str]) -> tuple[str, ...]:
    """Strip leading dots and blanks from fallback extensions."""
    return tuple(
        value.strip().lstrip(".") for value in values if value.strip().lstrip(".")
    )


def parse_cli_args(argv: list[str]) -> argparse.Namespace:
    """Return parsed CLI arguments for server configuration."""
    parser = argparse.ArgumentParser(
        prog=APP_NAME, description="Serve a directory over HTTP or HTTPS"
    )
    parser.add_argument(
        "root",
        nargs="?",
        default=_env_str("DIRSERVE_ROOT", "."),
        help="Directory to serve (default: current directory)",
    )
    parser.add_argument("--port", type=port_option, default=DEFAULT_PORT)
    parser.add_argument(
        "--local",
        action=argparse.BooleanOptionalAction,
        default=_env_bool("DIRSERVE_LOCAL", False),
        help="Only listen on 127.0.0.1",
    )
    parser.add_argument(
        "--index",
        action=argparse.BooleanOptionalAction,
        default=_env_bool("DIRSERVE_INDEX", True),
        help="Serve index.html for directory paths",
    )
    parser.add_argument(
        "--dirs",
        action=argparse.BooleanOptionalAction,
        default=_env_bool("DIRSERVE_DIRS", True),
        help="Render a listing for directories without an index",
    )
    parser.add_argument(
        "--gzip",
        action=argparse.BooleanOptionalAction,
        default=_env_bool("DIRSERVE_GZIP", False),
        help="Serve .gz sidecar files to clients that accept gzip",
    )
    parser.add_argument(
        "--brotli",
        action=argparse.BooleanOptionalAction,
        default=_env_bool("DIRSERVE_BROTLI", False),
        help="Serve .br sidecar files to clients that accept br",
    )
    parser.add_argument(
        "--unity-hack",
        action=argparse.BooleanOptionalAction,
        default=_env_bool("DIRSERVE_UNITY_HACK", False),
        help="Serve direct .gz/.br requests with the uncompressed content type",
    )
    parser.add_argument(
        "--shared-array-buffers",
        action=argparse.BooleanOptionalAction,
        default=_env_bool("DIRSERVE_SHARED_ARRAY_BUFFERS", False),
        help="Send cross-origin isolation headers",
    )
    parser.add_argument(
        "--robots",
        action=argparse.BooleanOptionalAction,
        default=_env_bool("DIRSERVE_ROBOTS", True),
        help="Answer /robots.txt with a disallow-all file when none exists",
    )
    parser.add_argument(
        "--hidden",
        action=argparse.BooleanOptionalAction,
        default=_env_bool("DIRSERVE_HIDDEN", False),
        help="Serve and list dot files",
    )
    parser.add_argument("--username", default=_env_str("DIRSERVE_USERNAME", None))
    parser.add_argument("--password", default=_env_str("DIRSERVE_PASSWORD", None))
    parser.add_argument(
        "--header",
        dest="headers",
        action="append",
        type=parse_header_option,
        default=[],
        metavar="NAME:VALUE",
        help="Extra header for served files (repeatable)",
    )
    parser.add_argument(
        "--extensions",
        default=",".join(DEFAULT_EXTENSIONS),
        help="Comma-separated fallback extensions for extensionless paths",
    )
    parser.add_argument(
        "--cors",
        action=argparse.BooleanOptionalAction,
        default=_env_bool("DIRSERVE_CORS", True),
        help="Send Access-Control-Allow-Origin: * on every response",
    )
    parser.add_argument(
        "--ssl",
        action=argparse.BooleanOptionalAction,
        default=_env_bool("DIRSERVE_SSL", False),
        help="Serve over HTTPS",
    )
    parser.add_argument("--cert", help="Path to TLS certificate file")
    parser.add_argument("--key", help="Path to TLS private key file")
    parser.add_argument(
        "--scan",
        action=argparse.BooleanOptionalAction,
        default=DEFAULT_SCAN,
        help="Try the next port when the requested one is taken",
    )
    parser.add_argument(
        "--data-dir",
        default=_env_str("DIRSERVE_DATA_DIR", None),
        help="Directory holding the cached self-signed certificate",
    )
    parser.add_argument(
        "--socket-timeout",
        type=int,
        default=DEFAULT_SOCKET_TIMEOUT,
        help="Socket timeout in seconds for client connections",
    )
    default_log_level = os.getenv("DIRSERVE_LOG_LEVEL", "INFO").upper()
    default_destination = os.getenv("DIRSERVE_LOG_DESTINATION", "stdout")
    parser.add_argument(
        "--log-level",
        default=default_log_level,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        type=str.upper,
    )
    parser.add_argument(
        "--log-destination",
        default=default_destination,
        help="stdout or a file path",
    )
    parser.add_argument(
        "--log-json",
        action=argparse.BooleanOptionalAction,
        default=_env_bool("DIRSERVE_LOG_JSON", False),
        help="Emit structured JSON log lines",
    )
    return parser.parse_args(argv)


def build_server_config(args: argparse.Namespace) -> ServerConfig:
    """Convert parsed CLI arguments into a ``ServerConfig``."""
    data_dir = args.data_dir or str(default_data_dir())
    return ServerConfig(
        root=str(Path(args.root).resolve()),
        port=args.port,
        local=args.local,
        serve_index=args.index,
        show_listing=args.dirs,
        gzip=args.gzip,
        brotli=args.brotli,
        unity_hack=args.unity_hack,
        shared_array_buffers=args.shared_array_buffers,
        robots=args.robots,
        show_hidden=args.hidden,
        username=args.username,
        password=args.password,
        extra_headers=dict(args.headers),
        extensions=normalize_extensions(args.extensions.split(",")),
        cors=args.cors,
        ssl=args.ssl,
        cert=args.cert,
        key=args.key,
        data_dir=data_dir,
        scan=args.scan,
        socket_timeout=args.socket_timeout,
    )
