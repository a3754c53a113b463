"""HTTP client for the session server, plus management of the background server process."""

from __future__ import annotations

import subprocess
import sys
import time
from pathlib import Path
from typing import Any

import httpx
import psutil
import structlog

from pwsession.config import settings
from pwsession.exceptions import ServerNotRunning, ServerRequestTimeout, ServerStartTimeout

LOG = structlog.get_logger()

_HEALTH_POLL_INTERVAL = 0.2  # seconds
_PROCESS_EXIT_TIMEOUT = 3  # seconds


class SessionServerClient:
    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url or settings.server_url()
        self.timeout = settings.REQUEST_TIMEOUT_SECONDS if timeout is None else timeout
        self.transport = transport

    def _http_client(self, timeout: float) -> httpx.Client:
        return httpx.Client(base_url=self.base_url, timeout=timeout, transport=self.transport)

    def _request(self, method: str, path: str, json: dict[str, Any] | None = None) -> dict[str, Any]:
        try:
            with self._http_client(self.timeout) as client:
                response = client.request(method, path, json=json)
        except httpx.ConnectError as e:
            raise ServerNotRunning() from e
        except httpx.TimeoutException as e:
            raise ServerRequestTimeout(path, self.timeout) from e
        # error statuses still carry a {success, error} body
        return response.json()

    def is_running(self) -> bool:
        try:
            with self._http_client(1.0) as client:
                return client.get("/health").status_code == 200
        except httpx.HTTPError:
            return False

    def health(self) -> dict[str, Any]:
        return self._request("GET", "/health")

    def start(self, session_id: str) -> dict[str, Any]:
        return self._request("POST", "/start", json={"session_id": session_id})

    def eval(self, session_id: str, code: str) -> dict[str, Any]:
        return self._request("POST", "/eval", json={"session_id": session_id, "code": code})

    def stop(self, session_id: str) -> dict[str, Any]:
        return self._request("POST", "/stop", json={"session_id": session_id})

    def sessions(self) -> dict[str, Any]:
        return self._request("GET", "/sessions")

    def shutdown(self) -> dict[str, Any]:
        return self._request("POST", "/shutdown")


def pid_file_path() -> Path:
    return Path(settings.PID_FILE).resolve()


def read_pid() -> int | None:
    path = pid_file_path()
    try:
        return int(path.read_text().strip())
    except (FileNotFoundError, ValueError):
        return None


def spawn_server(client: SessionServerClient, timeout: float | None = None) -> int:
    """Start `pwsession serve` detached from this process and wait until it answers /health."""
    timeout = settings.SERVER_START_TIMEOUT_SECONDS if timeout is None else timeout
    process = subprocess.Popen(
        [sys.executable, "-m", "pwsession", "serve"],
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        start_new_session=True,
    )
    pid_file_path().write_text(str(process.pid))
    LOG.info("Session server spawned", pid=process.pid, url=client.base_url)

    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if client.is_running():
            return process.pid
        if process.poll() is not None:
            break
        time.sleep(_HEALTH_POLL_INTERVAL)
    raise ServerStartTimeout(timeout)


def ensure_server(client: SessionServerClient) -> bool:
    """Make sure a server answers at the client's URL. Returns True if one had to be spawned."""
    if client.is_running():
        return False
    spawn_server(client)
    return True


def terminate_recorded_server() -> bool:
    """Terminate the process recorded in the PID file, if it is still alive."""
    pid = read_pid()
    pid_file_path().unlink(missing_ok=True)
    if pid is None:
        return False

    try:
        process = psutil.Process(pid)
        process.terminate()
        try:
            process.wait(timeout=_PROCESS_EXIT_TIMEOUT)
        except psutil.TimeoutExpired:
            LOG.warning("Session server didn't terminate gracefully, forcing kill", pid=pid)
            process.kill()
    except psutil.NoSuchProcess:
        return False
    return True
