from __future__ import annotations

import json
from decimal import Decimal
from pathlib import Path
from typing import Any

from rich.console import Console

_STDOUT_CONSOLE = Console()


def _json_default(value: Any) -> Any:
    if isinstance(value, (Decimal, Path)):
        return str(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _dumps(value: Any, **kwargs: Any) -> str:
    return json.dumps(value, ensure_ascii=True, sort_keys=True, default=_json_default, **kwargs)


def print_structured_stdout(event: dict[str, Any]) -> None:
    _STDOUT_CONSOLE.print_json(json=_dumps(event))


def append_log_event(path: Path | None, event: dict[str, Any]) -> None:
    if path is None:
        print_structured_stdout(event)
        return

    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as handle:
        handle.write(f"{_dumps(event, separators=(',', ':'))}\n")
