from __future__ import annotations

import json
from typing import Any

import structlog

LOG = structlog.get_logger()


def format_console_args(args: tuple[Any, ...], sep: str = " ") -> str:
    parts = []
    for arg in args:
        if isinstance(arg, (dict, list, tuple)):
            try:
                parts.append(json.dumps(arg, default=str))
                continue
            except (TypeError, ValueError):
                pass
        parts.append(str(arg))
    return sep.join(parts)


class SessionConsole:
    """The `console` object fragments log through.

    Every call appends a "[LEVEL] message" entry to the session's console buffer and
    mirrors the message to the server log.
    """

    def __init__(self, session_id: str, buffer: list[str]) -> None:
        self.session_id = session_id
        self.buffer = buffer

    def _append(self, level: str, args: tuple[Any, ...], sep: str = " ") -> None:
        message = format_console_args(args, sep=sep)
        self.buffer.append(f"[{level}] {message}")
        LOG.debug("Fragment console output", session_id=self.session_id, level=level, message=message)

    def log(self, *args: Any) -> None:
        self._append("LOG", args)

    def info(self, *args: Any) -> None:
        self._append("INFO", args)

    def warn(self, *args: Any) -> None:
        self._append("WARN", args)

    warning = warn

    def error(self, *args: Any) -> None:
        self._append("ERROR", args)

    def debug(self, *args: Any) -> None:
        self._append("DEBUG", args)

    def print(self, *args: Any, sep: str | None = " ", **_: Any) -> None:
        """Stand-in for the builtin `print`; `end`, `file` and `flush` are ignored."""
        self._append("LOG", args, sep=" " if sep is None else sep)
