from __future__ import annotations

import asyncio
import hashlib
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import structlog
from playwright.async_api import Browser, BrowserContext, Page, Playwright

from pwsession.config import settings
from pwsession.constants import STORAGE_STATE_SUFFIX
from pwsession.exceptions import BrowserLaunchError
from pwsession.webeye.browser_factory import PlaywrightLauncher, kill_orphaned_browsers, load_storage_state

LOG = structlog.get_logger()

_UNSAFE_PATH_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class BrowserLauncher(Protocol):
    browser_type: str
    playwright: Playwright | None

    async def launch(self, profile_dir: Path) -> BrowserContext: ...

    async def stop(self) -> None: ...


def session_dirname(session_id: str) -> str:
    """Filesystem-safe name for a session id, still unique per id."""
    safe = _UNSAFE_PATH_CHARS.sub("_", session_id)
    if safe == session_id and safe not in {".", ".."}:
        return safe
    digest = hashlib.sha256(session_id.encode()).hexdigest()[:8]
    return f"{safe}-{digest}"


@dataclass
class ResourceSet:
    session_id: str
    profile_dir: Path
    storage_state_path: Path
    playwright: Playwright | None = None
    browser: Browser | None = None
    context: BrowserContext | None = None
    page: Page | None = None

    def is_live(self) -> bool:
        if self.context is None or self.page is None:
            return False
        if self.browser is not None and not self.browser.is_connected():
            return False
        return not self.page.is_closed()

    def clear(self) -> None:
        self.browser = None
        self.context = None
        self.page = None


class ResourcePool:
    """Browser, persistent context and page per session id.

    Resources are created lazily by `ensure`, recreated after the browser goes away,
    and torn down page first, then context, then browser.
    """

    def __init__(
        self,
        sessions_dir: str | Path | None = None,
        storage_states_dir: str | Path | None = None,
        launcher: BrowserLauncher | None = None,
        sweep_orphans: bool | None = None,
    ) -> None:
        self.sessions_dir = Path(sessions_dir or settings.SESSIONS_DIR).resolve()
        self.storage_states_dir = Path(storage_states_dir or settings.STORAGE_STATES_DIR).resolve()
        self.launcher: BrowserLauncher = launcher or PlaywrightLauncher()
        self.sweep_orphans = settings.ORPHAN_SWEEP_ENABLED if sweep_orphans is None else sweep_orphans
        self._resources: dict[str, ResourceSet] = {}
        self._launches: dict[str, asyncio.Task[ResourceSet]] = {}

    def _new_resource_set(self, session_id: str) -> ResourceSet:
        dirname = session_dirname(session_id)
        return ResourceSet(
            session_id=session_id,
            profile_dir=self.sessions_dir / dirname,
            storage_state_path=self.storage_states_dir / f"{dirname}{STORAGE_STATE_SUFFIX}",
        )

    def get(self, session_id: str) -> ResourceSet | None:
        return self._resources.get(session_id)

    def has(self, session_id: str) -> bool:
        return session_id in self._resources

    def list(self) -> list[str]:
        return list(self._resources)

    async def ensure(self, session_id: str) -> ResourceSet:
        resources = self._resources.get(session_id)
        if resources is not None and resources.is_live():
            return resources

        launch = self._launches.get(session_id)
        if launch is None:
            launch = asyncio.create_task(self._launch(session_id), name=f"launch-{session_id}")
            self._launches[session_id] = launch
        else:
            LOG.debug("Joining in-flight browser launch", session_id=session_id)
        # a cancelled caller must not cancel the launch other callers are waiting on
        return await asyncio.shield(launch)

    async def _launch(self, session_id: str) -> ResourceSet:
        try:
            resources = self._resources.get(session_id) or self._new_resource_set(session_id)
            if resources.context is None:
                await self._launch_context(resources)
            assert resources.context is not None

            if resources.page is None or resources.page.is_closed():
                try:
                    resources.page = await resources.context.new_page()
                except Exception as e:
                    raise BrowserLaunchError(session_id, self.launcher.browser_type, e) from e

            self._resources[session_id] = resources
            return resources
        finally:
            self._launches.pop(session_id, None)

    async def _launch_context(self, resources: ResourceSet) -> None:
        session_id = resources.session_id
        LOG.info("Launching browser", session_id=session_id, profile_dir=str(resources.profile_dir))
        context: BrowserContext | None = None
        try:
            resources.profile_dir.mkdir(parents=True, exist_ok=True)
            context = await self.launcher.launch(resources.profile_dir)
            await load_storage_state(context, resources.storage_state_path)
        except Exception as e:
            if context is not None:
                LOG.error("Unexpected error after the browser context was created, closing it", session_id=session_id)
                try:
                    await context.close()
                except Exception:
                    LOG.warning("Failed to close half-initialized context", session_id=session_id, exc_info=True)
            raise BrowserLaunchError(session_id, self.launcher.browser_type, e) from e

        resources.playwright = self.launcher.playwright
        resources.context = context
        resources.browser = context.browser
        # persistent contexts open with a blank page already
        resources.page = context.pages[0] if context.pages else None

        context.on("close", lambda _: self._on_disconnected(resources, context))
        if resources.browser is not None:
            resources.browser.on("disconnected", lambda _: self._on_disconnected(resources, context))

    def _on_disconnected(self, resources: ResourceSet, context: BrowserContext) -> None:
        # a relaunch may already have replaced the handles
        if resources.context is not context:
            return
        LOG.warning("Browser disconnected", session_id=resources.session_id)
        resources.clear()

    async def save(self, session_id: str) -> Path | None:
        resources = self._resources.get(session_id)
        if resources is None or resources.context is None:
            LOG.info("No browser context to save storage state from", session_id=session_id)
            return None

        resources.storage_state_path.parent.mkdir(parents=True, exist_ok=True)
        await resources.context.storage_state(path=str(resources.storage_state_path))
        LOG.info("Storage state saved", session_id=session_id, path=str(resources.storage_state_path))
        return resources.storage_state_path

    async def dispose(self, session_id: str) -> None:
        resources = self._resources.get(session_id)
        if resources is None:
            return

        page, context, browser = resources.page, resources.context, resources.browser
        resources.clear()
        try:
            try:
                if page is not None and not page.is_closed():
                    await page.close()
            except Exception:
                LOG.warning("Error closing page", session_id=session_id, exc_info=True)

            try:
                if context is not None:
                    await context.close()
            except Exception:
                LOG.warning("Error closing browser context", session_id=session_id, exc_info=True)

            try:
                if browser is not None and browser.is_connected():
                    await browser.close()
            except Exception:
                LOG.warning("Error closing browser", session_id=session_id, exc_info=True)
        finally:
            self._resources.pop(session_id, None)
        LOG.info("Browser resources disposed", session_id=session_id)

    async def dispose_all(self) -> None:
        for session_id in list(self._resources):
            await self.dispose(session_id)

        try:
            await self.launcher.stop()
        except Exception:
            LOG.warning("Error stopping playwright", exc_info=True)

        if self.sweep_orphans:
            try:
                await asyncio.to_thread(kill_orphaned_browsers, self.sessions_dir)
            except Exception:
                LOG.warning("Failed to sweep orphaned browser processes", exc_info=True)
