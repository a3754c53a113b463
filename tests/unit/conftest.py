from __future__ import annotations

from pathlib import Path

import pytest

from pwsession.core import session_context
from pwsession.executor.context_registry import ExecutionContextRegistry
from pwsession.logs import setup_logger
from pwsession.services.session_service import SessionService
from pwsession.webeye.resource_pool import ResourcePool
from tests.unit.helpers import FakeLauncher


@pytest.fixture(autouse=True)
def _reset_session_context():
    session_context.reset()
    yield
    session_context.reset()


@pytest.fixture(autouse=True)
def _rebind_logger_stream():
    # CLI tests run the callback (which calls setup_logger) under CliRunner's temporary
    # stderr; re-bind the logger to the live stream so later tests don't log to a closed file.
    setup_logger()
    yield


@pytest.fixture
def launcher() -> FakeLauncher:
    return FakeLauncher()


@pytest.fixture
def resource_pool(tmp_path: Path, launcher: FakeLauncher) -> ResourcePool:
    return ResourcePool(
        sessions_dir=tmp_path / "sessions",
        storage_states_dir=tmp_path / "states",
        launcher=launcher,
        sweep_orphans=False,
    )


@pytest.fixture
def registry(resource_pool: ResourcePool) -> ExecutionContextRegistry:
    return ExecutionContextRegistry(resource_pool)


@pytest.fixture
def service(resource_pool: ResourcePool, registry: ExecutionContextRegistry) -> SessionService:
    return SessionService(resource_pool, registry)
