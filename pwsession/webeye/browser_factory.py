from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Awaitable, Protocol

import aiofiles
import psutil
import structlog
from playwright.async_api import BrowserContext, Playwright, async_playwright

from pwsession.config import settings
from pwsession.constants import ORPHAN_TERMINATE_TIMEOUT
from pwsession.exceptions import UnknownBrowserType

LOG = structlog.get_logger()


class BrowserContextCreator(Protocol):
    def __call__(self, playwright: Playwright, user_data_dir: str, **kwargs: Any) -> Awaitable[BrowserContext]: ...


class BrowserContextFactory:
    _creators: dict[str, BrowserContextCreator] = {}

    @staticmethod
    def build_browser_args(chromium: bool = True) -> dict[str, Any]:
        args: dict[str, Any] = {
            "viewport": {
                "width": settings.BROWSER_WIDTH,
                "height": settings.BROWSER_HEIGHT,
            },
        }
        if chromium:
            args["args"] = list(settings.BROWSER_ARGS)
            args["ignore_default_args"] = ["--enable-automation"]
            if settings.CHROME_EXECUTABLE_PATH:
                args["executable_path"] = settings.CHROME_EXECUTABLE_PATH
        if settings.BROWSER_USER_AGENT:
            args["user_agent"] = settings.BROWSER_USER_AGENT
        return args

    @classmethod
    def register_type(cls, browser_type: str, creator: BrowserContextCreator) -> None:
        cls._creators[browser_type] = creator

    @classmethod
    async def create_browser_context(
        cls, playwright: Playwright, user_data_dir: str, browser_type: str | None = None, **kwargs: Any
    ) -> BrowserContext:
        browser_type = browser_type or settings.BROWSER_TYPE
        creator = cls._creators.get(browser_type)
        if not creator:
            raise UnknownBrowserType(browser_type)

        browser_context = await creator(playwright, user_data_dir=user_data_dir, **kwargs)
        browser_context.set_default_timeout(settings.BROWSER_ACTION_TIMEOUT_MS)
        browser_context.set_default_navigation_timeout(settings.BROWSER_ACTION_TIMEOUT_MS)
        return browser_context


async def _create_headless_chromium(playwright: Playwright, user_data_dir: str, **kwargs: Any) -> BrowserContext:
    browser_args = BrowserContextFactory.build_browser_args()
    browser_args.update(kwargs)
    browser_args.update({"user_data_dir": user_data_dir, "headless": True})
    return await playwright.chromium.launch_persistent_context(**browser_args)


async def _create_headful_chromium(playwright: Playwright, user_data_dir: str, **kwargs: Any) -> BrowserContext:
    browser_args = BrowserContextFactory.build_browser_args()
    browser_args.update(kwargs)
    browser_args.update({"user_data_dir": user_data_dir, "headless": False})
    return await playwright.chromium.launch_persistent_context(**browser_args)


async def _create_firefox(playwright: Playwright, user_data_dir: str, **kwargs: Any) -> BrowserContext:
    browser_args = BrowserContextFactory.build_browser_args(chromium=False)
    browser_args.update(kwargs)
    browser_args.update({"user_data_dir": user_data_dir, "headless": settings.is_headless()})
    return await playwright.firefox.launch_persistent_context(**browser_args)


async def _create_webkit(playwright: Playwright, user_data_dir: str, **kwargs: Any) -> BrowserContext:
    browser_args = BrowserContextFactory.build_browser_args(chromium=False)
    browser_args.update(kwargs)
    browser_args.update({"user_data_dir": user_data_dir, "headless": settings.is_headless()})
    return await playwright.webkit.launch_persistent_context(**browser_args)


BrowserContextFactory.register_type("chromium-headless", _create_headless_chromium)
BrowserContextFactory.register_type("chromium-headful", _create_headful_chromium)
BrowserContextFactory.register_type("firefox", _create_firefox)
BrowserContextFactory.register_type("webkit", _create_webkit)


class PlaywrightLauncher:
    """Owns the Playwright driver and launches one persistent context per profile directory."""

    def __init__(self, browser_type: str | None = None) -> None:
        self.browser_type = browser_type or settings.BROWSER_TYPE
        self.playwright: Playwright | None = None

    async def launch(self, profile_dir: Path) -> BrowserContext:
        if self.playwright is None:
            self.playwright = await async_playwright().start()
        return await BrowserContextFactory.create_browser_context(
            self.playwright,
            user_data_dir=str(profile_dir),
            browser_type=self.browser_type,
        )

    async def stop(self) -> None:
        if self.playwright is None:
            return
        playwright, self.playwright = self.playwright, None
        await playwright.stop()


def build_local_storage_script(origins: list[dict[str, Any]]) -> str:
    """Init script replaying a storage-state snapshot's localStorage for matching origins."""
    payload = {
        origin["origin"]: {item["name"]: item["value"] for item in origin.get("localStorage", [])}
        for origin in origins
        if origin.get("origin")
    }
    return (
        "(() => {\n"
        f"  const snapshot = {json.dumps(payload)};\n"
        "  const items = snapshot[window.location.origin];\n"
        "  if (!items) return;\n"
        "  for (const [name, value] of Object.entries(items)) {\n"
        "    if (window.localStorage.getItem(name) === null) window.localStorage.setItem(name, value);\n"
        "  }\n"
        "})();"
    )


async def load_storage_state(browser_context: BrowserContext, storage_state_path: Path) -> bool:
    """Seed a context from a storage-state snapshot written by a previous session. Returns True if loaded."""
    if not storage_state_path.exists():
        return False

    async with aiofiles.open(storage_state_path) as f:
        state = json.loads(await f.read())

    cookies = state.get("cookies") or []
    if cookies:
        await browser_context.add_cookies(cookies)
    origins = state.get("origins") or []
    if origins:
        await browser_context.add_init_script(script=build_local_storage_script(origins))
    LOG.info(
        "Storage state loaded",
        storage_state_path=str(storage_state_path),
        cookies=len(cookies),
        origins=len(origins),
    )
    return True


def kill_orphaned_browsers(profile_root: Path) -> int:
    """Terminate browser processes still running against a profile under `profile_root`.

    Returns the number of processes that were signalled.
    """
    marker = str(profile_root)
    orphans: list[psutil.Process] = []
    own_pid = os.getpid()
    for proc in psutil.process_iter(["pid", "cmdline"]):
        try:
            if proc.pid == own_pid:
                continue
            cmdline = proc.info["cmdline"] or []
            if any(marker in arg for arg in cmdline):
                orphans.append(proc)
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            pass

    for proc in orphans:
        try:
            proc.terminate()
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            pass

    _, alive = psutil.wait_procs(orphans, timeout=ORPHAN_TERMINATE_TIMEOUT)
    for proc in alive:
        LOG.warning("Browser process didn't terminate gracefully, forcing kill", pid=proc.pid)
        try:
            proc.kill()
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            pass

    if orphans:
        LOG.info("Orphaned browser processes terminated", count=len(orphans), profile_root=marker)
    return len(orphans)
