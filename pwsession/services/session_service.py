from __future__ import annotations

import asyncio
from typing import Any

import structlog

from pwsession.constants import SESSION_INIT_FRAGMENT
from pwsession.exceptions import SessionAlreadyStarted, SessionNotFound, SessionStartFailed
from pwsession.executor.context_registry import ExecutionContextRegistry
from pwsession.executor.models import ExecutionResult
from pwsession.webeye.resource_pool import ResourcePool

LOG = structlog.get_logger()


class SessionService:
    """
    Session-level operations exposed to the server.

    Fragments for one session id run one at a time, in arrival order. Different
    sessions interleave freely at await points.
    """

    def __init__(self, resource_pool: ResourcePool, registry: ExecutionContextRegistry) -> None:
        self.resource_pool = resource_pool
        self.registry = registry
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = self._locks[session_id] = asyncio.Lock()
        return lock

    def has_session(self, session_id: str) -> bool:
        return self.registry.has(session_id)

    async def start(self, session_id: str) -> dict[str, Any]:
        async with self._lock(session_id):
            if self.registry.has(session_id):
                raise SessionAlreadyStarted(session_id)

            result = await self.registry.run(session_id, SESSION_INIT_FRAGMENT)
            if not result.success:
                self.registry.discard(session_id)
                raise SessionStartFailed(session_id, result.error)

        LOG.info("Session started", session_id=session_id)
        return {"success": True, "session_id": session_id, "message": f"Session '{session_id}' started"}

    async def run(self, session_id: str, code: str) -> ExecutionResult:
        async with self._lock(session_id):
            return await self.registry.run(session_id, code)

    async def stop(self, session_id: str) -> dict[str, Any]:
        # not serialized behind the run lock: a hung fragment must not block teardown,
        # a fragment still in flight fails against the closed handles
        if not self.registry.has(session_id):
            raise SessionNotFound(session_id)
        self._locks.pop(session_id, None)
        await self.registry.cleanup(session_id)

        LOG.info("Session stopped", session_id=session_id)
        return {"success": True, "session_id": session_id, "message": f"Session '{session_id}' stopped"}

    def list(self) -> list[str]:
        return self.resource_pool.list()

    def health(self) -> dict[str, Any]:
        sessions = self.list()
        return {"status": "ok", "active_sessions": len(sessions), "sessions": sessions}

    async def shutdown(self) -> None:
        LOG.info("Shutting down all sessions", sessions=self.registry.list())
        for session_id in self.registry.list():
            try:
                await self.stop(session_id)
            except SessionNotFound:
                # stopped concurrently
                pass
        await self.registry.cleanup_all()
        LOG.info("All sessions shut down")


def create_session_service() -> SessionService:
    resource_pool = ResourcePool()
    return SessionService(resource_pool, ExecutionContextRegistry(resource_pool))
