from dataclasses import dataclass, field

import pendulum
import pytest
from pendulum import DateTime


@dataclass
class ManualClock:
    """A clock that only moves when told to."""

    now: DateTime = field(
        default_factory=lambda: pendulum.datetime(2025, 3, 1, 12, 0, 0, tz="UTC")
    )

    def __call__(self) -> DateTime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now.add(**kwargs)  # pyright: ignore[reportArgumentType]


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()
