"""Source-to-source pass that mirrors tracked bindings into the durable namespace.

Given a fragment like::

    page = await context.new_page()

the tracker returns::

    page = await context.new_page()
    __durable__['page'] = page

so the next fragment of the same session can read ``page`` without binding it again.
"""

from __future__ import annotations

import ast
from typing import Any, Iterable, Iterator

import structlog

from pwsession.constants import COMPLETION_VALUE_NAME, DURABLE_NAMESPACE_NAME, FRAGMENT_FILENAME, TRACKED_NAMES

LOG = structlog.get_logger()

_BLOCK_FIELDS = ("body", "orelse", "finalbody", "handlers", "cases")


def parse_fragment(code: str) -> ast.Module:
    """Parse a fragment, accepting ``await`` outside of a function body."""
    return compile(
        code,
        FRAGMENT_FILENAME,
        "exec",
        flags=ast.PyCF_ONLY_AST | ast.PyCF_ALLOW_TOP_LEVEL_AWAIT,
        dont_inherit=True,
    )


def _target_names(target: ast.AST) -> Iterator[str]:
    if isinstance(target, ast.Name):
        yield target.id
    elif isinstance(target, (ast.Tuple, ast.List)):
        for element in target.elts:
            yield from _target_names(element)
    elif isinstance(target, ast.Starred):
        yield from _target_names(target.value)


def _header_nodes(stmt: ast.stmt) -> Iterator[ast.AST]:
    """Yield the expression nodes of a statement, without nested blocks or lambda bodies."""
    stack: list[ast.AST] = []
    for field, value in ast.iter_fields(stmt):
        if field in _BLOCK_FIELDS:
            continue
        if isinstance(value, ast.AST):
            stack.append(value)
        elif isinstance(value, list):
            stack.extend(item for item in value if isinstance(item, ast.AST))
    while stack:
        node = stack.pop()
        yield node
        if isinstance(node, ast.Lambda):
            continue
        stack.extend(ast.iter_child_nodes(node))


def _names_bound_by(stmt: ast.stmt) -> Iterator[str]:
    """Names bound by the statement itself, i.e. visible right after it completes."""
    if isinstance(stmt, ast.Assign):
        for target in stmt.targets:
            yield from _target_names(target)
    elif isinstance(stmt, ast.AugAssign):
        yield from _target_names(stmt.target)
    elif isinstance(stmt, ast.AnnAssign):
        # `page: Page` alone does not bind anything
        if stmt.value is not None:
            yield from _target_names(stmt.target)
    elif isinstance(stmt, (ast.Import, ast.ImportFrom)):
        for alias in stmt.names:
            yield alias.asname or alias.name.split(".")[0]

    for node in _header_nodes(stmt):
        if isinstance(node, ast.NamedExpr):
            yield from _target_names(node.target)


class TrackedBindingInjector(ast.NodeTransformer):
    def __init__(self, tracked_names: Iterable[str]) -> None:
        self.tracked_names = frozenset(tracked_names)
        self.injected = 0

    def _tracked(self, names: Iterable[str]) -> list[str]:
        return [name for name in dict.fromkeys(names) if name in self.tracked_names]

    def _publish(self, name: str, anchor: ast.AST) -> ast.stmt:
        self.injected += 1
        statement = ast.Assign(
            targets=[
                ast.Subscript(
                    value=ast.Name(id=DURABLE_NAMESPACE_NAME, ctx=ast.Load()),
                    slice=ast.Constant(value=name),
                    ctx=ast.Store(),
                )
            ],
            value=ast.Name(id=name, ctx=ast.Load()),
        )
        return ast.copy_location(statement, anchor)

    def _prepend(self, node: Any, names: Iterable[str]) -> None:
        publishes = [self._publish(name, node) for name in self._tracked(names)]
        if publishes:
            node.body[:0] = publishes

    def generic_visit(self, node: ast.AST) -> Any:
        node = super().generic_visit(node)

        if isinstance(node, (ast.For, ast.AsyncFor)):
            self._prepend(node, _target_names(node.target))
        elif isinstance(node, (ast.With, ast.AsyncWith)):
            self._prepend(
                node,
                (name for item in node.items if item.optional_vars for name in _target_names(item.optional_vars)),
            )
        elif isinstance(node, ast.ExceptHandler) and node.name:
            self._prepend(node, [node.name])

        if isinstance(node, ast.stmt):
            names = self._tracked(_names_bound_by(node))
            if names:
                return [node, *(self._publish(name, node) for name in names)]
        return node


def _keep_completion_value(tree: ast.Module, trailing: ast.Expr) -> None:
    """Re-emit a trailing expression's value after the publishes it was followed by."""
    index = tree.body.index(trailing)
    tree.body[index] = ast.copy_location(
        ast.Assign(targets=[ast.Name(id=COMPLETION_VALUE_NAME, ctx=ast.Store())], value=trailing.value),
        trailing,
    )
    tree.body.append(ast.Expr(value=ast.Name(id=COMPLETION_VALUE_NAME, ctx=ast.Load())))


def track_variables(code: str, tracked_names: Iterable[str] = TRACKED_NAMES) -> str:
    """
    Return `code` with a durable-namespace publish after every binding of a tracked name.

    Never raises: when the fragment can't be parsed or transformed, the original code is
    returned and the failure is only logged. Fragments that bind no tracked name are
    returned verbatim.
    """
    try:
        tree = parse_fragment(code)
        trailing = tree.body[-1] if tree.body and isinstance(tree.body[-1], ast.Expr) else None
        injector = TrackedBindingInjector(tracked_names)
        tree = injector.visit(tree)
        if not injector.injected:
            return code
        if trailing is not None and tree.body[-1] is not trailing:
            _keep_completion_value(tree, trailing)
        ast.fix_missing_locations(tree)
        return ast.unparse(tree)
    except Exception:
        LOG.warning("Failed to rewrite fragment for variable tracking, running it as-is", exc_info=True)
        return code
