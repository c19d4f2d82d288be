from __future__ import annotations

from typing import TYPE_CHECKING, cast

import orjson

if TYPE_CHECKING:
    from pathlib import Path


def load_json(json_str: str | bytes) -> dict[str, object] | list[object] | None:
    """Load and parse a JSON string.

    Args:
        json_str: The JSON string to parse.

    Returns:
        The parsed JSON data as a dictionary or list, or None if parsing fails.
    """
    try:
        return cast("dict[str, object] | list[object]", orjson.loads(json_str))
    except orjson.JSONDecodeError:
        return None


def dump_json(data: object, *, indent: bool = False) -> bytes:
    """Serialize data to JSON bytes.

    Args:
        data: JSON-compatible data. Paths and dataclasses are supported.
        indent: Whether to pretty-print with indentation.

    Returns:
        The encoded JSON document.
    """
    options = orjson.OPT_INDENT_2 if indent else 0
    return orjson.dumps(data, option=options, default=str)


def write_json_file(file_path: Path, data: object) -> None:
    """Write data as indented JSON, creating parent directories.

    Args:
        file_path: Destination file.
        data: JSON-compatible data.
    """
    file_path.parent.mkdir(parents=True, exist_ok=True)
    _ = file_path.write_bytes(dump_json(data, indent=True))
