"""Unit tests validating CLI parsing and config construction."""

import argparse
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from dirserve.bootstrap.config import (
    DEFAULT_PORT,
    DEFAULT_SOCKET_TIMEOUT,
    ConfigurationError,
    ServerConfig,
    build_server_config,
    default_data_dir,
    normalize_extensions,
    parse_cli_args,
    parse_header_option,
    port_option,
)

if TYPE_CHECKING:
    from _pytest.monkeypatch import MonkeyPatch


def test_parse_cli_args_uses_defaults() -> None:
    """Defaults serve the current directory with the usual conveniences on."""
    args = parse_cli_args([])

    assert args.root == "."
    assert args.port == DEFAULT_PORT
    assert args.local is False
    assert args.index is True
    assert args.dirs is True
    assert args.cors is True
    assert args.robots is True
    assert args.scan is True
    assert args.gzip is False
    assert args.brotli is False
    assert args.ssl is False
    assert args.hidden is False
    assert args.headers == []
    assert args.extensions == "html"
    assert args.socket_timeout == DEFAULT_SOCKET_TIMEOUT
    assert args.log_level == "INFO"
    assert args.log_destination == "stdout"


def test_parse_cli_args_honors_overrides(tmp_path: Path) -> None:
    """Flags replace defaults."""
    args = parse_cli_args(
        [
            tmp_path.as_posix(),
            "--port",
            "9090",
            "--local",
            "--no-index",
            "--no-dirs",
            "--gzip",
            "--brotli",
            "--unity-hack",
            "--shared-array-buffers",
            "--no-robots",
            "--hidden",
            "--username",
            "alice",
            "--password",
            "s3cret",
            "--header",
            "X-One: 1",
            "--header",
            "X-Two:two:parts",
            "--extensions",
            "html,.htm",
            "--no-cors",
            "--ssl",
            "--no-scan",
            "--data-dir",
            "data",
            "--socket-timeout",
            "5",
            "--log-level",
            "debug",
            "--log-json",
        ]
    )

    assert args.root == tmp_path.as_posix()
    assert args.port == 9090
    assert args.local and args.gzip and args.brotli and args.unity_hack
    assert args.shared_array_buffers and args.hidden and args.ssl and args.log_json
    assert not (args.index or args.dirs or args.robots or args.cors or args.scan)
    assert args.headers == [("X-One", "1"), ("X-Two", "two:parts")]
    assert args.log_level == "DEBUG"


def test_env_defaults(monkeypatch: "MonkeyPatch") -> None:
    """Environment variables seed defaults for boolean and string options."""
    monkeypatch.setenv("DIRSERVE_GZIP", "yes")
    monkeypatch.setenv("DIRSERVE_DIRS", "0")
    monkeypatch.setenv("DIRSERVE_USERNAME", "env-user")
    monkeypatch.setenv("DIRSERVE_LOG_LEVEL", "warning")

    args = parse_cli_args([])

    assert args.gzip is True
    assert args.dirs is False
    assert args.username == "env-user"
    assert args.log_level == "WARNING"


def test_parse_header_option_rejects_missing_colon() -> None:
    """A header without a separator is a usage error."""
    with pytest.raises(argparse.ArgumentTypeError):
        parse_header_option("NoSeparator")
    with pytest.raises(SystemExit):
        parse_cli_args(["--header", "NoSeparator"])


@pytest.mark.parametrize("value", ["-1", "65536", "http"])
def test_port_option_rejects_out_of_range(value: str) -> None:
    """Ports outside 0-65535 are usage errors, not startup crashes."""
    with pytest.raises(argparse.ArgumentTypeError):
        port_option(value)
    with pytest.raises(SystemExit):
        parse_cli_args(["--port", value])


def test_port_option_accepts_bounds() -> None:
    assert port_option("0") == 0
    assert port_option("65535") == 65535


@pytest.mark.parametrize("port", [-1, 65536])
def test_config_rejects_out_of_range_port(tmp_path: Path, port: int) -> None:
    with pytest.raises(ConfigurationError, match="between 0 and 65535"):
        ServerConfig(root=str(tmp_path), port=port)


def test_normalize_extensions() -> None:
    """Leading dots and blanks are dropped."""
    assert normalize_extensions(["html", ".htm", " ", "."]) == ("html", "htm")


def test_build_server_config(tmp_path: Path) -> None:
    """The namespace converts into an immutable config."""
    args = parse_cli_args(
        [
            str(tmp_path),
            "--gzip",
            "--header",
            "X-Test: yes",
            "--extensions",
            "html,htm",
            "--data-dir",
            str(tmp_path / "data"),
        ]
    )
    config = build_server_config(args)

    assert isinstance(config, ServerConfig)
    assert config.root == str(tmp_path.resolve())
    assert config.gzip is True
    assert config.serve_index is True
    assert config.show_listing is True
    assert config.extra_headers == {"X-Test": "yes"}
    assert config.extensions == ("html", "htm")
    assert config.data_dir == str(tmp_path / "data")
    with pytest.raises(AttributeError):
        config.port = 1  # type: ignore[misc]


def test_build_server_config_defaults_data_dir(tmp_path: Path) -> None:
    """Without --data-dir the per-user directory is used."""
    config = build_server_config(parse_cli_args([str(tmp_path)]))
    assert config.data_dir == str(default_data_dir())


@pytest.mark.parametrize(
    ("platform", "suffix"),
    [
        ("darwin", Path("Library") / "Application Support" / "dirserve"),
        ("linux", Path(".dirserve")),
    ],
)
def test_default_data_dir(platform: str, suffix: Path) -> None:
    """The data directory follows platform conventions."""
    assert default_data_dir(platform) == Path.home() / suffix


def test_default_data_dir_windows(monkeypatch: "MonkeyPatch", tmp_path: Path) -> None:
    """Windows uses %APPDATA%."""
    monkeypatch.setenv("APPDATA", str(tmp_path))
    assert default_data_dir("win32") == tmp_path / "dirserve"


def test_config_properties(tmp_path: Path) -> None:
    """Derived properties reflect the flags."""
    local = ServerConfig(root=str(tmp_path), local=True, ssl=True, password="pw")
    public = ServerConfig(root=str(tmp_path), brotli=True)

    assert local.bind_host == "127.0.0.1"
    assert public.bind_host == "0.0.0.0"
    assert local.protocol == "https"
    assert public.protocol == "http"
    assert local.requires_auth and not public.requires_auth
    assert public.negotiates_compression and not local.negotiates_compression
