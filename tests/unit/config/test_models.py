from pathlib import Path

import pytest
from pydantic import ValidationError

from devplane.config import (
    DEFAULT_HEALTH_INTERVAL,
    DEFAULT_HEALTH_RETRIES,
    LaunchCommand,
    LaunchVariant,
    ServiceDefinition,
)
from tests.conftest import make_roster, service_entry


class TestLaunchCommand:
    def test_splits_shell_string(self) -> None:
        command = LaunchCommand.model_validate({"normal": "npm run dev -- --port 3000"})

        assert command.normal == ("npm", "run", "dev", "--", "--port", "3000")

    def test_mock_falls_back_to_normal(self) -> None:
        command = LaunchCommand(normal=("node", "index.js"))

        assert command.for_variant(LaunchVariant.MOCK) == ("node", "index.js")

    def test_mock_variant_uses_mock_command(self) -> None:
        command = LaunchCommand(normal=("node", "index.js"), mock=("node", "mock.js"))

        assert command.for_variant(LaunchVariant.MOCK) == ("node", "mock.js")
        assert command.for_variant(LaunchVariant.NORMAL) == ("node", "index.js")


class TestServiceDefinition:
    def test_defaults(self) -> None:
        definition = ServiceDefinition.model_validate(
            {"id": "api", "name": "API", "port": 3000, "command": "node app.js"}
        )

        assert definition.health_path == "/health"
        assert definition.dependencies == ()
        assert definition.critical is False
        assert definition.performance.health_retries == DEFAULT_HEALTH_RETRIES
        assert definition.performance.health_interval == DEFAULT_HEALTH_INTERVAL

    def test_command_shorthand_is_normal_command(self) -> None:
        from_string = ServiceDefinition.model_validate(
            {"id": "api", "name": "API", "port": 3000, "command": "node app.js"}
        )
        from_argv = ServiceDefinition.model_validate(
            {"id": "api", "name": "API", "port": 3000, "command": ["node", "app.js"]}
        )

        assert from_string.command == LaunchCommand(normal=("node", "app.js"))
        assert from_argv.command.normal == ("node", "app.js")
        assert from_argv.command.mock is None

    def test_empty_command_shorthand_is_rejected(self) -> None:
        with pytest.raises(ValidationError):
            _ = ServiceDefinition.model_validate(
                {"id": "api", "name": "API", "port": 3000, "command": []}
            )

    def test_health_url(self) -> None:
        definition = ServiceDefinition.model_validate(
            {
                "id": "api",
                "name": "API",
                "port": 3000,
                "healthPath": "status",
                "command": "node app.js",
            }
        )

        assert definition.health_url == "http://localhost:3000/status"

    def test_is_frozen(self) -> None:
        definition = ServiceDefinition.model_validate(
            {"id": "api", "name": "API", "port": 3000, "command": "node app.js"}
        )

        with pytest.raises(ValidationError):
            definition.port = 4000  # pyright: ignore[reportAttributeAccessIssue]


class TestRosterConfig:
    def test_launch_order_sorts_by_layer_then_declaration(self) -> None:
        roster = make_roster(
            {
                "web": service_entry(layer=2),
                "db": service_entry(layer=0),
                "api": service_entry(layer=1),
                "cache": service_entry(layer=0),
            }
        )

        order = [definition.id for definition in roster.launch_order()]

        assert order == ["db", "cache", "api", "web"]

    def test_launch_order_excludes_monitoring(self) -> None:
        roster = make_roster(
            {"monitoring": service_entry(port=9999), "api": service_entry()}
        )

        assert [d.id for d in roster.launch_order()] == ["api"]
        assert roster.monitoring_service is not None

    def test_resolve_path_uses_root(self, tmp_path: Path) -> None:
        roster = make_roster({"api": service_entry(path="apps/api")}, root=tmp_path)

        path = roster.resolve_path(roster.services["api"])

        assert path == (tmp_path / "apps" / "api").resolve()
