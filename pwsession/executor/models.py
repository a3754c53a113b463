from __future__ import annotations

import json
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class ExecutionErrorType(StrEnum):
    RESOURCE = "resource"
    RUNTIME = "runtime"


class ExecutionResult(BaseModel):
    success: bool
    result: Any = None
    error: str | None = None
    error_type: ExecutionErrorType | None = None
    stack: str | None = None
    page_console_logs: list[str] = Field(default_factory=list)
    session_console_logs: list[str] = Field(default_factory=list)


def to_transport_value(value: Any) -> Any:
    """Keep JSON-native values, render everything else (pages, locators, ...) with repr()."""
    if value is None:
        return None
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return repr(value)
    return value
