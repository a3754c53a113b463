from __future__ import annotations

import json
from typing import Any

from rich.console import Console

console = Console()
err_console = Console(stderr=True)


def output(data: Any) -> None:
    console.print_json(json.dumps(data, default=str))


def output_error(message: str, *, hint: str = "", exit_code: int = 1) -> None:
    err_console.print(f"[red]Error: {message}[/red]")
    if hint:
        err_console.print(f"[yellow]Hint: {hint}[/yellow]")
    raise SystemExit(exit_code)
