"""In-memory stand-ins for the Playwright objects the pool and registry touch."""

from __future__ import annotations

import asyncio
import json
from collections import defaultdict
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Callable


class FakeEmitter:
    def __init__(self) -> None:
        self._handlers: dict[str, list[Callable[..., Any]]] = defaultdict(list)

    def on(self, event: str, handler: Callable[..., Any]) -> None:
        self._handlers[event].append(handler)

    def emit(self, event: str, *args: Any) -> None:
        for handler in list(self._handlers[event]):
            handler(*args)


class FakeBrowser(FakeEmitter):
    def __init__(self, calls: list[str], close_error: Exception | None = None) -> None:
        super().__init__()
        self.calls = calls
        self.close_error = close_error
        self.connected = True

    def is_connected(self) -> bool:
        return self.connected

    def disconnect(self) -> None:
        self.connected = False
        self.emit("disconnected", self)

    async def close(self) -> None:
        self.calls.append("browser.close")
        if self.close_error:
            raise self.close_error
        self.disconnect()


class FakePage:
    def __init__(self, context: FakeContext, close_error: Exception | None = None) -> None:
        self.context = context
        self.close_error = close_error
        self.closed = False
        self.url = "about:blank"

    def __repr__(self) -> str:
        return f"<FakePage url={self.url!r}>"

    def is_closed(self) -> bool:
        return self.closed

    async def goto(self, url: str) -> None:
        self.url = url

    def emit_console(self, text: str) -> None:
        self.context.emit("console", SimpleNamespace(text=text, type="log"))

    async def close(self) -> None:
        self.context.calls.append("page.close")
        if self.close_error:
            raise self.close_error
        self.closed = True


class FakeContext(FakeEmitter):
    def __init__(
        self,
        calls: list[str],
        browser: FakeBrowser | None = None,
        close_error: Exception | None = None,
    ) -> None:
        super().__init__()
        self.calls = calls
        self.browser = browser
        self.close_error = close_error
        self.cookies: list[dict[str, Any]] = []
        self.init_scripts: list[str] = []
        # persistent contexts come up with one blank page
        self.pages: list[FakePage] = [FakePage(self)]

    async def new_page(self) -> FakePage:
        page = FakePage(self)
        self.pages.append(page)
        return page

    async def add_cookies(self, cookies: list[dict[str, Any]]) -> None:
        self.cookies.extend(cookies)

    async def add_init_script(self, script: str | None = None, **_: Any) -> None:
        self.init_scripts.append(script or "")

    async def storage_state(self, path: str | None = None) -> dict[str, Any]:
        state = {
            "cookies": [{"name": "sid", "value": "abc", "domain": "example.com", "path": "/"}],
            "origins": [{"origin": "https://example.com", "localStorage": [{"name": "token", "value": "t"}]}],
        }
        if path:
            Path(path).write_text(json.dumps(state))
        return state

    async def close(self) -> None:
        self.calls.append("context.close")
        if self.close_error:
            raise self.close_error
        self.emit("close", self)


class FakeLauncher:
    def __init__(self, launch_delay: float = 0, with_browser: bool = True) -> None:
        self.browser_type = "chromium-headless"
        self.playwright = None
        self.launch_delay = launch_delay
        self.with_browser = with_browser
        self.launches = 0
        self.launch_error: Exception | None = None
        self.stopped = False
        self.calls: list[str] = []
        self.contexts: list[FakeContext] = []

    async def launch(self, profile_dir: Path) -> FakeContext:
        self.launches += 1
        if self.launch_delay:
            await asyncio.sleep(self.launch_delay)
        if self.launch_error:
            raise self.launch_error
        browser = FakeBrowser(self.calls) if self.with_browser else None
        context = FakeContext(self.calls, browser=browser)
        self.contexts.append(context)
        return context

    async def stop(self) -> None:
        self.stopped = True
