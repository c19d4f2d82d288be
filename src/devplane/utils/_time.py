from collections.abc import Callable

import pendulum
from pendulum import DateTime

Clock = Callable[[], DateTime]


def utc_now() -> DateTime:
    """Return the current time in UTC."""
    return pendulum.now("UTC")


def get_timestamp() -> str:
    """Get current timestamp in ISO 8601 format."""
    return utc_now().to_iso8601_string()


def parse_timestamp(value: str) -> DateTime:
    """Parse an ISO 8601 timestamp produced by get_timestamp()."""
    parsed = pendulum.parse(value)
    if not isinstance(parsed, DateTime):
        msg = f"Not a datetime: {value!r}"
        raise ValueError(msg)
    return parsed
