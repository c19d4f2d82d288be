"""Marks everything under tests/properties as a property test."""

from pathlib import Path

import pytest
from hypothesis import HealthCheck, settings

PROPERTIES_DIR = Path(__file__).parent

settings.register_profile(
    "devplane", max_examples=200, suppress_health_check=[HealthCheck.too_slow]
)
settings.load_profile("devplane")


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    for item in items:
        if item.path.is_relative_to(PROPERTIES_DIR):
            item.add_marker(pytest.mark.property)
