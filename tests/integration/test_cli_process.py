"""End-to-end tests running ``main.py`` in a subprocess."""

from __future__ import annotations

import json
import signal
import subprocess
import sys
from typing import TYPE_CHECKING

import pytest
import requests

from tests.conftest import SITE_FILES
from tests.utils.http import occupied_port

pytestmark = pytest.mark.integration

if TYPE_CHECKING:
    from pathlib import Path

    from tests.conftest import ServerProcessInfo


def test_cli_serves_directory(server_process: "ServerProcessInfo") -> None:
    """CLI defaults serve files, index documents, listings and robots."""

    base_url = server_process["base_url"]
    assert requests.get(f"{base_url}/a.txt", timeout=5).content == SITE_FILES["a.txt"]
    assert (
        requests.get(f"{base_url}/folder/", timeout=5).content
        == SITE_FILES["folder/index.html"]
    )
    assert 'id="files"' in requests.get(f"{base_url}/docs/", timeout=5).text
    assert requests.get(f"{base_url}/robots.txt", timeout=5).status_code == 200
    assert (
        requests.get(f"{base_url}/a.txt", timeout=5).headers[
            "Access-Control-Allow-Origin"
        ]
        == "*"
    )


def test_cli_writes_json_logs(server_process: "ServerProcessInfo") -> None:
    """Access log lines land in the log file as JSON."""

    requests.get(f"{server_process['base_url']}/a.txt", timeout=5)
    process = server_process["process"]
    process.send_signal(signal.SIGTERM)
    assert process.wait(timeout=10) == 0

    records = [
        json.loads(line)
        for line in server_process["log_file"].read_text().splitlines()
        if line.strip()
    ]
    events = {record.get("event") for record in records}
    assert {"logging_configured", "server_listening", "request"} <= events
    access = [record for record in records if record.get("event") == "request"]
    assert access[0]["component"] == "access"
    assert access[0]["url"] == "/a.txt"


def test_cli_exits_non_zero_when_port_taken(
    project_root: "Path", tmp_path: "Path"
) -> None:
    """``--no-scan`` on a busy port is a startup failure."""

    with occupied_port() as port:
        result = subprocess.run(
            [
                sys.executable,
                str(project_root / "main.py"),
                str(tmp_path),
                "--port",
                str(port),
                "--local",
                "--no-scan",
            ],
            cwd=project_root,
            capture_output=True,
            text=True,
            timeout=30,
            check=False,
        )
    assert result.returncode == 1
    assert "not available" in result.stdout


def test_cli_rejects_out_of_range_port(project_root: "Path", tmp_path: "Path") -> None:
    """An impossible port is a usage error and the process exits at once."""

    result = subprocess.run(
        [sys.executable, str(project_root / "main.py"), str(tmp_path), "--port", "-1"],
        cwd=project_root,
        capture_output=True,
        text=True,
        timeout=30,
        check=False,
    )
    assert result.returncode == 2
    assert "port must be between 0 and 65535" in result.stderr
