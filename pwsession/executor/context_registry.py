from __future__ import annotations

import ast
import asyncio
import inspect
import json
import traceback
from dataclasses import dataclass, field
from pathlib import Path
from types import CodeType, SimpleNamespace
from typing import Any

import structlog
from playwright.async_api import BrowserContext, ConsoleMessage, Page, expect

from pwsession.constants import DURABLE_NAMESPACE_NAME, FRAGMENT_FILENAME
from pwsession.executor.durable_namespace import DurableNamespace
from pwsession.executor.models import ExecutionErrorType, ExecutionResult, to_transport_value
from pwsession.executor.session_console import SessionConsole
from pwsession.executor.variable_tracker import parse_fragment, track_variables
from pwsession.webeye.resource_pool import ResourcePool, ResourceSet

LOG = structlog.get_logger()

_COMPILE_FLAGS = ast.PyCF_ALLOW_TOP_LEVEL_AWAIT


@dataclass
class ExecutionContext:
    session_id: str
    env: dict[str, Any]
    durable: DurableNamespace
    shared_state: SimpleNamespace
    console_logs: list[str] = field(default_factory=list)
    page_console_logs: list[str] = field(default_factory=list)
    bound_context: BrowserContext | None = None
    bound_page: Page | None = None

    def drain(self) -> dict[str, list[str]]:
        drained = {
            "session_console_logs": list(self.console_logs),
            "page_console_logs": list(self.page_console_logs),
        }
        self.console_logs.clear()
        self.page_console_logs.clear()
        return drained


@dataclass
class CompiledFragment:
    body: CodeType
    expression: CodeType | None = None


def compile_fragment(code: str) -> CompiledFragment:
    """Compile a fragment, splitting off a trailing bare expression as its completion value."""
    tree = parse_fragment(code)
    expression = None
    if tree.body and isinstance(tree.body[-1], ast.Expr):
        last = tree.body.pop()
        expression = compile(
            ast.Expression(body=last.value), FRAGMENT_FILENAME, "eval", flags=_COMPILE_FLAGS, dont_inherit=True
        )
    body = compile(tree, FRAGMENT_FILENAME, "exec", flags=_COMPILE_FLAGS, dont_inherit=True)
    return CompiledFragment(body=body, expression=expression)


async def _evaluate(code: CodeType, scope: dict[str, Any]) -> Any:
    value = eval(code, scope)
    if code.co_flags & inspect.CO_COROUTINE:
        value = await value
    return value


class ExecutionContextRegistry:
    """Owns the evaluation environment and console buffers of every session.

    An environment is created on the first `run` for a session id and lives until
    `discard` or `cleanup`. Each fragment runs in a fresh globals dict seeded from the
    environment and the durable namespace, so only tracked names and objects reachable
    from the environment (``shared_state``) carry over to the next fragment.
    """

    def __init__(self, resource_pool: ResourcePool) -> None:
        self.resource_pool = resource_pool
        self._contexts: dict[str, ExecutionContext] = {}

    def has(self, session_id: str) -> bool:
        return session_id in self._contexts

    def list(self) -> list[str]:
        return list(self._contexts)

    def get(self, session_id: str) -> ExecutionContext | None:
        return self._contexts.get(session_id)

    def _create(self, session_id: str) -> ExecutionContext:
        durable = DurableNamespace()
        context = ExecutionContext(
            session_id=session_id,
            env={},
            durable=durable,
            shared_state=SimpleNamespace(),
        )
        console = SessionConsole(session_id, context.console_logs)
        context.env.update(
            {
                "console": console,
                "print": console.print,
                "asyncio": asyncio,
                "sleep": asyncio.sleep,
                "json": json,
                "Path": Path,
                "expect": expect,
                "session_id": session_id,
                "shared_state": context.shared_state,
                "resource_pool": self.resource_pool,
                DURABLE_NAMESPACE_NAME: durable,
            }
        )
        self._contexts[session_id] = context
        LOG.info("Execution context created", session_id=session_id)
        return context

    def _durable_handles_live(self, context: ExecutionContext, resources: ResourceSet) -> bool:
        durable = context.durable
        if durable.get("context") is None or durable.get("page") is None:
            return False
        # persistent contexts may not expose a browser
        if resources.browser is not None and durable.get("browser") is None:
            return False
        is_closed = getattr(durable["page"], "is_closed", None)
        return not (callable(is_closed) and is_closed())

    def _bind(self, context: ExecutionContext, resources: ResourceSet) -> None:
        if (
            resources.context is context.bound_context
            and resources.page is context.bound_page
            and self._durable_handles_live(context, resources)
        ):
            return

        context.durable["browser"] = resources.browser
        context.durable["context"] = resources.context
        context.durable["page"] = resources.page

        playwright = resources.playwright
        if playwright is not None:
            context.env.update(
                {
                    "playwright": playwright,
                    "chromium": playwright.chromium,
                    "firefox": playwright.firefox,
                    "webkit": playwright.webkit,
                    "devices": playwright.devices,
                }
            )

        if resources.context is not None and resources.context is not context.bound_context:
            page_console_logs = context.page_console_logs

            def _on_console(message: ConsoleMessage) -> None:
                page_console_logs.append(message.text)

            resources.context.on("console", _on_console)

        context.bound_context = resources.context
        context.bound_page = resources.page
        LOG.info("Browser resources bound to execution context", session_id=context.session_id)

    def _failure(
        self, context: ExecutionContext, error: BaseException, error_type: ExecutionErrorType
    ) -> ExecutionResult:
        return ExecutionResult(
            success=False,
            error=f"{type(error).__name__}: {error}",
            error_type=error_type,
            stack=traceback.format_exc(),
            **context.drain(),
        )

    async def run(self, session_id: str, code: str) -> ExecutionResult:
        context = self._contexts.get(session_id) or self._create(session_id)

        try:
            resources = await self.resource_pool.ensure(session_id)
        except Exception as e:
            LOG.error("Failed to ensure browser resources", session_id=session_id, exc_info=True)
            return self._failure(context, e, ExecutionErrorType.RESOURCE)

        self._bind(context, resources)
        rewritten = track_variables(code)

        try:
            fragment = compile_fragment(rewritten)
            scope = {**context.env, **context.durable}
            await _evaluate(fragment.body, scope)
            value = await _evaluate(fragment.expression, scope) if fragment.expression else None
        except (Exception, SystemExit, KeyboardInterrupt) as e:
            # exit() inside a fragment ends the fragment only; CancelledError still propagates
            LOG.info("Fragment raised", session_id=session_id, error=f"{type(e).__name__}: {e}")
            return self._failure(context, e, ExecutionErrorType.RUNTIME)

        return ExecutionResult(success=True, result=to_transport_value(value), **context.drain())

    def discard(self, session_id: str) -> None:
        """Drop the session's environment. Browser resources are left to the pool."""
        if self._contexts.pop(session_id, None) is not None:
            LOG.info("Execution context discarded", session_id=session_id)

    async def cleanup(self, session_id: str) -> None:
        try:
            await self.resource_pool.save(session_id)
        except Exception:
            LOG.warning("Failed to save storage state", session_id=session_id, exc_info=True)
        try:
            await self.resource_pool.dispose(session_id)
        except Exception:
            LOG.warning("Failed to dispose browser resources", session_id=session_id, exc_info=True)
        self.discard(session_id)

    async def cleanup_all(self) -> None:
        for session_id in list(self._contexts):
            await self.cleanup(session_id)
        await self.resource_pool.dispose_all()
