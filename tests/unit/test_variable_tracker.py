from __future__ import annotations

import textwrap

import pytest

from pwsession.executor.variable_tracker import track_variables


def _dedent(code: str) -> str:
    return textwrap.dedent(code).strip("\n")


def test_plain_assignment_is_published_after_the_statement() -> None:
    rewritten = track_variables("page = await context.new_page()")

    assert rewritten == "page = await context.new_page()\n__durable__['page'] = page"


def test_fragment_without_tracked_names_is_returned_verbatim() -> None:
    code = _dedent(
        """
        # navigate somewhere
        x   =  1
        await page.goto("https://example.com")
        """
    )

    assert track_variables(code) is code


def test_annotated_assignment_with_value_is_published() -> None:
    rewritten = track_variables("page: Page = await context.new_page()")

    assert rewritten.splitlines() == [
        "page: Page = await context.new_page()",
        "__durable__['page'] = page",
    ]


def test_bare_annotation_is_not_published() -> None:
    code = "page: Page"

    assert track_variables(code) == code


def test_augmented_assignment_is_published() -> None:
    assert track_variables("page += 1").splitlines()[-1] == "__durable__['page'] = page"


def test_unpacking_publishes_every_tracked_target_in_order() -> None:
    rewritten = track_variables("browser, (x, page) = a, (b, c)")

    assert rewritten.splitlines()[1:] == [
        "__durable__['browser'] = browser",
        "__durable__['page'] = page",
    ]


def test_name_bound_twice_in_one_statement_is_published_once() -> None:
    rewritten = track_variables("page = page = 1")

    assert rewritten.count("__durable__['page'] = page") == 1


def test_assignment_inside_function_is_published_in_the_function_body() -> None:
    rewritten = track_variables(
        _dedent(
            """
            async def open_tab():
                page = await context.new_page()
                return page
            """
        )
    )

    assert rewritten == _dedent(
        """
        async def open_tab():
            page = await context.new_page()
            __durable__['page'] = page
            return page
        """
    )


def test_for_target_is_published_at_the_top_of_the_body() -> None:
    rewritten = track_variables(
        _dedent(
            """
            for page in context.pages:
                console.log(page.url)
            """
        )
    )

    assert rewritten == _dedent(
        """
        for page in context.pages:
            __durable__['page'] = page
            console.log(page.url)
        """
    )


def test_async_with_target_is_published_at_the_top_of_the_body() -> None:
    rewritten = track_variables(
        _dedent(
            """
            async with factory() as context:
                pass
            """
        )
    )

    assert rewritten.splitlines()[1].strip() == "__durable__['context'] = context"


def test_except_name_is_published_in_the_handler() -> None:
    rewritten = track_variables(
        _dedent(
            """
            try:
                pass
            except Exception as page:
                pass
            """
        )
    )

    assert "    __durable__['page'] = page" in rewritten.splitlines()


def test_import_alias_is_published() -> None:
    assert track_variables("import json as page").splitlines()[-1] == "__durable__['page'] = page"


def test_walrus_in_condition_is_published_after_the_statement() -> None:
    rewritten = track_variables(
        _dedent(
            """
            if (page := pick()):
                pass
            """
        )
    )

    assert rewritten.splitlines()[-1] == "__durable__['page'] = page"


def test_untracked_names_are_left_alone() -> None:
    code = "pages = [1]\nbrowser_name = 'x'"

    assert track_variables(code) == code


def test_custom_tracked_names() -> None:
    rewritten = track_variables("frame = 1", tracked_names={"frame"})

    assert rewritten.splitlines()[-1] == "__durable__['frame'] = frame"


@pytest.mark.parametrize("code", ["page = (", "def f(:\n    pass", "page = 1 +"])
def test_syntax_error_falls_back_to_original_code(code: str) -> None:
    assert track_variables(code) == code


def test_rewritten_code_publishes_values_when_executed() -> None:
    durable: dict[str, object] = {}
    scope = {"__durable__": durable}

    exec(track_variables("page = 5\npage += 1\nx = page"), scope)

    assert durable == {"page": 6}
    assert "x" not in durable


def test_rewrite_is_deterministic() -> None:
    code = "browser = 1\npage = browser"

    assert track_variables(code) == track_variables(code)


def test_trailing_walrus_keeps_the_completion_value() -> None:
    rewritten = track_variables("await sleep(0)\n(page := await context.new_page())")

    assert rewritten.splitlines()[-2:] == ["__durable__['page'] = page", "__completion__"]
    assert rewritten.splitlines()[1].startswith("__completion__ = ")


def test_trailing_expression_without_bindings_is_untouched() -> None:
    rewritten = track_variables("page = 1\npage + 1")

    assert rewritten.splitlines() == ["page = 1", "__durable__['page'] = page", "page + 1"]
