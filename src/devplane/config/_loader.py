# pyright: reportAny=false, reportExplicitAny=false
"""Roster file loading and validation."""

import tomllib
from pathlib import Path
from typing import Any

import orjson
from pydantic import ValidationError

from devplane.exceptions import ConfigError

from ._models import RosterConfig


def read_roster_file(path: Path) -> dict[str, Any]:
    """Read and parse a JSON or TOML roster file.

    The format is chosen by file suffix; anything other than ``.toml`` is
    parsed as JSON.

    Args:
        path: Path to the roster file.

    Returns:
        Parsed roster content as dictionary.

    Raises:
        ConfigError: If the file is missing or cannot be parsed.
    """
    try:
        raw = path.read_bytes()
    except OSError as e:
        msg = f"Cannot read roster file {path}: {e.strerror or e}"
        raise ConfigError(msg, path=path) from e

    try:
        if path.suffix == ".toml":
            data: object = tomllib.loads(raw.decode())
        else:
            data = orjson.loads(raw)
    except (tomllib.TOMLDecodeError, orjson.JSONDecodeError, UnicodeDecodeError) as e:
        msg = f"Failed to parse roster file {path}: {e}"
        raise ConfigError(msg, path=path) from e

    if not isinstance(data, dict):
        msg = f"Roster file {path} must contain a table/object at the top level"
        raise ConfigError(msg, path=path)
    return data


def _format_location(loc: tuple[int | str, ...]) -> str:
    return ".".join(str(part) for part in loc)


def parse_roster(
    data: dict[str, Any],
    *,
    root: Path | None = None,
    path: Path | None = None,
) -> RosterConfig:
    """Validate raw roster data into a RosterConfig.

    Args:
        data: Raw roster mapping.
        root: Directory service paths resolve against. Defaults to the
            current working directory.
        path: Source file, used for error context only.

    Returns:
        The validated roster.

    Raises:
        ConfigError: If the data does not describe a valid roster. The
            first failing key is reported.
    """
    payload = dict(data)
    if root is not None:
        payload["root"] = root

    try:
        return RosterConfig.model_validate(payload)
    except ValidationError as e:
        first = e.errors()[0]
        key = _format_location(first["loc"])
        source = f" in {path}" if path is not None else ""
        msg = f"Invalid roster{source}: {key}: {first['msg']}"
        raise ConfigError(msg, path=path, key=key) from e


def load_roster(path: Path) -> RosterConfig:
    """Load a roster file and validate it.

    Service paths are resolved against the directory holding the file.

    Args:
        path: Path to the roster file.

    Returns:
        The validated roster.

    Raises:
        ConfigError: If the file is missing, unparsable, or invalid.
    """
    data = read_roster_file(path)
    return parse_roster(data, root=path.resolve().parent, path=path)
