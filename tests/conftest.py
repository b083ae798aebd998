"""Shared pytest fixtures for integration and unit tests."""

from __future__ import annotations

import gzip
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Generator, TypedDict

import pytest

from dirserve.bootstrap.config import ServerConfig
from dirserve.lifecycle.server import ServerHandle
from tests.utils.http import reserve_port, wait_for_port

if TYPE_CHECKING:
    from _pytest.tmpdir import TempPathFactory

PROJECT_ROOT = Path(__file__).resolve().parent.parent
SERVER_ENTRYPOINT = PROJECT_ROOT / "main.py"
START_TIMEOUT = 5.0

A_TXT = b"0123456789"
SIDECAR_PAYLOAD = b"payload that only exists inside the sidecar\n"

SITE_FILES: dict[str, bytes] = {
    "a.txt": A_TXT,
    "a.txt.gz": gzip.compress(SIDECAR_PAYLOAD, mtime=0),
    "file.txt": b"hello from dirserve\n",
    "app.js": b"console.log('plain');\n",
    "app.js.gz": gzip.compress(b"console.log('gzip');\n", mtime=0),
    "app.js.br": b"\x1b\x15\x00\xf8not-really-brotli",
    "foo.html": b"<h1>foo</h1>\n",
    "build.data.gz": gzip.compress(b"unity build data", mtime=0),
    "folder/index.html": b"<p>folder index</p>\n",
    "folder/index.html.gz": gzip.compress(b"<p>folder index</p>\n", mtime=0),
    "folder/notes.txt": b"notes",
    "folder/sub/child.txt": b"child",
    "docs/readme.txt": b"readme contents\n",
    "docs/a&b.txt": b"ampersand",
    "docs/guide/step.txt": b"step one",
    "docs/.secret": b"hidden in docs",
    ".hidden.txt": b"hidden at root",
}

DEFAULT_FEATURES: dict[str, Any] = {
    "serve_index": True,
    "show_listing": True,
    "robots": True,
    "cors": True,
    "extensions": ("html",),
}


@dataclass
class RunningServer:
    """An in-process server started by the ``start_dirserve`` fixture."""

    handle: ServerHandle
    url: str
    port: int


class ServerProcessInfo(TypedDict):
    """Metadata describing a CLI server running in a subprocess."""

    base_url: str
    port: int
    directory: Path
    process: subprocess.Popen[str]
    log_file: Path


def write_site(root: Path) -> Path:
    """Materialize ``SITE_FILES`` under ``root``."""

    for relative, payload in SITE_FILES.items():
        target = root / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(payload)
    (root / "empty-dir").mkdir()
    return root


@pytest.fixture(scope="session")
def project_root() -> Path:
    """Expose the repository root path to tests."""

    return PROJECT_ROOT


@pytest.fixture()
def site_root(tmp_path: Path) -> Path:
    """A freshly generated directory tree to serve."""

    return write_site(tmp_path / "site")


@pytest.fixture(name="start_dirserve")
def _start_dirserve(
    site_root: Path,
) -> Generator[Callable[..., RunningServer], None, None]:
    """Factory starting in-process servers on loopback; all are closed afterwards."""

    handles: list[ServerHandle] = []

    def start(**overrides: Any) -> RunningServer:
        options: dict[str, Any] = {
            "root": str(site_root),
            "port": reserve_port(),
            "local": True,
        }
        options.update(overrides)
        handle = ServerHandle(ServerConfig(**options))
        handles.append(handle)
        info = handle.start().wait_started(START_TIMEOUT)
        url = f"{info.protocol}://127.0.0.1:{info.port}"
        return RunningServer(handle, url, info.port)

    yield start
    for handle in handles:
        handle.close()


@pytest.fixture()
def base_url(start_dirserve: Callable[..., RunningServer]) -> str:
    """Base URL of a server with the CLI's default feature set."""

    return start_dirserve(**DEFAULT_FEATURES).url


@pytest.fixture(name="server_process")
def _server_process(
    tmp_path_factory: "TempPathFactory",
) -> Generator[ServerProcessInfo, None, None]:
    """Launch ``main.py`` in a subprocess against a generated tree."""

    host = "127.0.0.1"
    port = reserve_port(host)
    directory = write_site(tmp_path_factory.mktemp("cli-site"))
    log_file = tmp_path_factory.mktemp("cli-logs") / "server.log"
    args = [
        sys.executable,
        str(SERVER_ENTRYPOINT),
        str(directory),
        "--port",
        str(port),
        "--local",
        "--no-scan",
        "--log-json",
        "--log-destination",
        str(log_file),
    ]

    with subprocess.Popen(
        args,
        cwd=PROJECT_ROOT,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
    ) as process:
        try:
            wait_for_port(host, port)
        except Exception:
            process.terminate()
            stdout, stderr = process.communicate(timeout=5)
            print(f"\nServer stdout:\n{stdout}")
            print(f"\nServer stderr:\n{stderr}")
            raise

        yield {
            "base_url": f"http://{host}:{port}",
            "port": port,
            "directory": directory,
            "process": process,
            "log_file": log_file,
        }

        if process.poll() is None:
            process.terminate()
        try:
            process.wait(timeout=5)
        except subprocess.TimeoutExpired:
            process.kill()
