from __future__ import annotations

import pytest

from pwsession.executor.context_registry import ExecutionContextRegistry, compile_fragment
from pwsession.executor.models import ExecutionErrorType
from pwsession.webeye.resource_pool import ResourcePool
from tests.unit.helpers import FakeLauncher


@pytest.mark.asyncio
async def test_first_run_creates_context_and_binds_resources(
    registry: ExecutionContextRegistry, resource_pool: ResourcePool
) -> None:
    result = await registry.run("default", "page is __durable__['page']")

    assert result.success, result.error
    assert result.result is True
    context = registry.get("default")
    resources = resource_pool.get("default")
    assert context.durable["page"] is resources.page
    assert context.durable["context"] is resources.context
    assert context.durable["browser"] is resources.browser


@pytest.mark.asyncio
async def test_tracked_name_survives_between_fragments(registry: ExecutionContextRegistry) -> None:
    first = await registry.run("default", "page = await context.new_page()\npage.marker = 'second tab'")
    second = await registry.run("default", "page.marker")

    assert first.success, first.error
    assert second.result == "second tab"
    assert len(registry.get("default").durable["context"].pages) == 2


@pytest.mark.asyncio
async def test_untracked_names_do_not_survive(registry: ExecutionContextRegistry) -> None:
    await registry.run("default", "x = 1")
    result = await registry.run("default", "x")

    assert not result.success
    assert result.error_type == ExecutionErrorType.RUNTIME
    assert result.error.startswith("NameError")


@pytest.mark.asyncio
async def test_sessions_are_isolated(registry: ExecutionContextRegistry) -> None:
    await registry.run("x", "page = 'bound in x'\nshared_state.owner = 'x'")

    in_x = await registry.run("x", "page")
    in_y = await registry.run("y", "page")
    state_in_y = await registry.run("y", "hasattr(shared_state, 'owner')")

    assert in_x.result == "bound in x"
    assert in_y.result != "bound in x"
    assert state_in_y.result is False


@pytest.mark.asyncio
async def test_console_buffers_are_drained_on_every_run(registry: ExecutionContextRegistry) -> None:
    first = await registry.run("default", "console.log('a')")
    second = await registry.run("default", "console.log('b')")

    assert first.session_console_logs == ["[LOG] a"]
    assert second.session_console_logs == ["[LOG] b"]


@pytest.mark.asyncio
async def test_buffers_are_drained_on_failure_too(registry: ExecutionContextRegistry) -> None:
    failed = await registry.run("default", "console.log('before')\nraise ValueError('boom')")
    after = await registry.run("default", "None")

    assert failed.session_console_logs == ["[LOG] before"]
    assert after.session_console_logs == []


@pytest.mark.asyncio
async def test_page_console_is_captured(registry: ExecutionContextRegistry) -> None:
    result = await registry.run("default", "page.emit_console('hello from page')\nconsole.info('hi')")

    assert result.page_console_logs == ["hello from page"]
    assert result.session_console_logs == ["[INFO] hi"]


@pytest.mark.asyncio
async def test_print_goes_to_the_session_console(registry: ExecutionContextRegistry) -> None:
    result = await registry.run("default", "print('hi', 2)")

    assert result.session_console_logs == ["[LOG] hi 2"]


@pytest.mark.asyncio
async def test_runtime_error_keeps_the_session_usable(registry: ExecutionContextRegistry) -> None:
    failed = await registry.run("default", "raise ValueError('boom')")
    recovered = await registry.run("default", "1 + 1")

    assert not failed.success
    assert failed.error == "ValueError: boom"
    assert failed.error_type == ExecutionErrorType.RUNTIME
    assert "ValueError" in failed.stack
    assert recovered.result == 2


@pytest.mark.asyncio
async def test_syntax_error_runs_untracked_and_fails_as_runtime_error(registry: ExecutionContextRegistry) -> None:
    result = await registry.run("default", "page = (")

    assert not result.success
    assert result.error_type == ExecutionErrorType.RUNTIME
    assert result.error.startswith("SyntaxError")
    assert (await registry.run("default", "2")).result == 2


@pytest.mark.asyncio
async def test_completion_value_is_last_expression(registry: ExecutionContextRegistry) -> None:
    result = await registry.run("default", "await asyncio.sleep(0)\nvalue = 40\nvalue + 2")
    no_value = await registry.run("default", "value = 1")

    assert result.result == 42
    assert no_value.success
    assert no_value.result is None


@pytest.mark.asyncio
async def test_non_json_values_are_rendered_with_repr(registry: ExecutionContextRegistry) -> None:
    await registry.run("default", "await page.goto('https://example.com')")
    result = await registry.run("default", "page")

    assert result.result == "<FakePage url='https://example.com'>"


@pytest.mark.asyncio
async def test_resource_failure_is_reported_and_retried_next_run(
    registry: ExecutionContextRegistry, launcher: FakeLauncher
) -> None:
    launcher.launch_error = RuntimeError("no display")

    failed = await registry.run("default", "1")

    assert not failed.success
    assert failed.error_type == ExecutionErrorType.RESOURCE
    assert "no display" in failed.error

    launcher.launch_error = None
    assert (await registry.run("default", "1")).result == 1


@pytest.mark.asyncio
async def test_relaunch_after_disconnect_rebinds_handles(
    registry: ExecutionContextRegistry, launcher: FakeLauncher
) -> None:
    await registry.run("default", "None")
    launcher.contexts[0].browser.disconnect()

    result = await registry.run("default", "page.emit_console('new page')\ncontext is __durable__['context']")

    assert launcher.launches == 2
    assert result.result is True
    assert registry.get("default").durable["context"] is launcher.contexts[1]
    assert result.page_console_logs == ["new page"]


@pytest.mark.asyncio
async def test_shared_state_persists(registry: ExecutionContextRegistry) -> None:
    await registry.run("default", "shared_state.count = 1")
    result = await registry.run("default", "shared_state.count += 1\nconsole.log(shared_state.count)")

    assert result.session_console_logs == ["[LOG] 2"]


@pytest.mark.asyncio
async def test_cleanup_saves_disposes_and_discards(
    registry: ExecutionContextRegistry, resource_pool: ResourcePool, launcher: FakeLauncher
) -> None:
    await registry.run("default", "None")
    storage_state_path = resource_pool.get("default").storage_state_path

    await registry.cleanup("default")

    assert not registry.has("default")
    assert resource_pool.list() == []
    assert storage_state_path.exists()
    assert launcher.calls == ["page.close", "context.close", "browser.close"]


def test_compile_fragment_splits_trailing_expression() -> None:
    fragment = compile_fragment("x = 1\nx + 1")
    no_expression = compile_fragment("x = 1")

    assert fragment.expression is not None
    assert no_expression.expression is None


@pytest.mark.asyncio
async def test_cleared_page_is_rebound_to_the_live_page(
    registry: ExecutionContextRegistry, resource_pool: ResourcePool
) -> None:
    await registry.run("default", "None")
    await registry.run("default", "page = None")

    result = await registry.run("default", "page is None")

    assert result.result is False
    assert registry.get("default").durable["page"] is resource_pool.get("default").page


@pytest.mark.asyncio
async def test_closed_user_page_is_rebound_to_the_live_page(
    registry: ExecutionContextRegistry, resource_pool: ResourcePool
) -> None:
    await registry.run("default", "page = await context.new_page()")
    await registry.run("default", "await page.close()")

    result = await registry.run("default", "page.is_closed()")

    assert result.result is False
    assert registry.get("default").durable["page"] is resource_pool.get("default").page


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "code, error",
    [
        ("raise SystemExit(3)", "SystemExit: 3"),
        ("exit(4)", "SystemExit: 4"),
        ("raise KeyboardInterrupt()", "KeyboardInterrupt: "),
    ],
)
async def test_exit_exceptions_become_runtime_failures(
    registry: ExecutionContextRegistry, code: str, error: str
) -> None:
    result = await registry.run("default", code)

    assert not result.success
    assert result.error_type == ExecutionErrorType.RUNTIME
    assert result.error == error
    assert (await registry.run("default", "1")).result == 1


@pytest.mark.asyncio
async def test_trailing_walrus_returns_its_value_and_persists(registry: ExecutionContextRegistry) -> None:
    result = await registry.run("default", "(page := await context.new_page())")
    persisted = await registry.run("default", "page is context.pages[-1]")

    assert result.success, result.error
    assert result.result == "<FakePage url='about:blank'>"
    assert persisted.result is True
