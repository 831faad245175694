"""Terminal and JSON rendering for CLI commands."""

from __future__ import annotations

import json
import sys
from collections.abc import Mapping, Sequence
from typing import Any

from sqlkv.storage import Entry

# Text-mode value column width; 0 disables truncation.
VALUE_PREVIEW = 60


def _preview(value: str, width: int) -> str:
    flat = value.replace("\n", "\\n")
    if width and len(flat) > width:
        return flat[: width - 3] + "..."
    return flat


def emit_json(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


def print_entries(
    entries: Sequence[Entry], *, json_mode: bool = False, value_width: int = VALUE_PREVIEW
) -> None:
    """Render entries as an aligned key/tag/value table or a JSON array.

    JSON output always carries full values; text output shortens values
    longer than ``value_width`` and escapes newlines so each entry stays on
    one line.
    """
    if json_mode:
        emit_json([{"key": e.key, "tag": e.tag, "value": e.value} for e in entries])
        return
    if not entries:
        return

    key_w = max(len("key"), *(len(e.key) for e in entries))
    tag_w = max(len("tag"), *(len(e.tag) for e in entries))
    print(f"{'key':<{key_w}}  {'tag':<{tag_w}}  value")
    print(f"{'-' * key_w}  {'-' * tag_w}  -----")
    for e in entries:
        print(f"{e.key:<{key_w}}  {e.tag:<{tag_w}}  {_preview(e.value, value_width)}".rstrip())


def print_object(data: Mapping[str, Any], *, json_mode: bool = False) -> None:
    """Print one result mapping as JSON or ``name: value`` lines."""
    if json_mode:
        emit_json(dict(data))
        return
    for k, v in data.items():
        print(f"{k}: {v}")


def print_error(msg: str) -> None:
    """Print an error message to stderr."""
    print(f"Error: {msg}", file=sys.stderr)
