# pyright: reportAny=false, reportUnknownArgumentType=false
from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from devplane.config import load_roster, parse_roster, read_roster_file
from devplane.exceptions import ConfigError

if TYPE_CHECKING:
    from pyfakefs.fake_filesystem import FakeFilesystem


JSON_ROSTER = """
{
  "services": {
    "gateway": {
      "name": "Gateway",
      "path": "services/gateway",
      "port": 8080,
      "healthPath": "/healthz",
      "command": {"dev": "node server.js --watch", "mock": ["node", "mock.js"]},
      "dependencies": ["auth"],
      "layer": 1,
      "critical": true,
      "performance": {"earlyStart": true, "healthRetries": 30}
    },
    "auth": {
      "name": "Auth",
      "port": 8081,
      "command": "python -m auth"
    }
  },
  "integrations": {
    "monitoring": {"enabled": true, "dashboardUrl": "http://localhost:9999"}
  }
}
"""

TOML_ROSTER = """
[services.api]
name = "API"
port = 9000
command = { normal = "uvicorn app:app" }

[services.worker]
name = "Worker"
port = 9001
command = { normal = ["python", "worker.py"] }
dependencies = ["api"]
"""


class TestReadRosterFile:
    def test_parses_json(self, fs: FakeFilesystem) -> None:
        path = Path("/project/config/services.json")
        fs.create_file(path, contents=JSON_ROSTER)

        result = read_roster_file(path)

        assert set(result["services"]) == {"gateway", "auth"}

    def test_parses_toml_by_suffix(self, fs: FakeFilesystem) -> None:
        path = Path("/project/services.toml")
        fs.create_file(path, contents=TOML_ROSTER)

        result = read_roster_file(path)

        assert result["services"]["api"]["port"] == 9000

    def test_missing_file_raises_config_error(self, fs: FakeFilesystem) -> None:
        path = Path("/project/missing.json")

        with pytest.raises(ConfigError) as exc_info:
            _ = read_roster_file(path)

        assert exc_info.value.path == path

    def test_invalid_json_raises_config_error(self, fs: FakeFilesystem) -> None:
        path = Path("/project/broken.json")
        fs.create_file(path, contents='{"services": ')

        with pytest.raises(ConfigError, match="Failed to parse"):
            _ = read_roster_file(path)

    def test_invalid_toml_raises_config_error(self, fs: FakeFilesystem) -> None:
        path = Path("/project/broken.toml")
        fs.create_file(path, contents="[services.api\nport = 1")

        with pytest.raises(ConfigError) as exc_info:
            _ = read_roster_file(path)

        assert isinstance(exc_info.value.__cause__, Exception)

    def test_top_level_array_is_rejected(self, fs: FakeFilesystem) -> None:
        path = Path("/project/list.json")
        fs.create_file(path, contents="[]")

        with pytest.raises(ConfigError, match="top level"):
            _ = read_roster_file(path)


class TestLoadRoster:
    def test_resolves_paths_against_roster_directory(self, fs: FakeFilesystem) -> None:
        path = Path("/project/config/services.json")
        fs.create_file(path, contents=JSON_ROSTER)

        roster = load_roster(path)

        gateway = roster.services["gateway"]
        assert roster.root == Path("/project/config")
        assert roster.resolve_path(gateway) == Path("/project/config/services/gateway")

    def test_camel_case_keys_and_aliases(self, fs: FakeFilesystem) -> None:
        path = Path("/project/services.json")
        fs.create_file(path, contents=JSON_ROSTER)

        roster = load_roster(path)

        gateway = roster.services["gateway"]
        assert gateway.health_path == "/healthz"
        assert gateway.command.normal == ("node", "server.js", "--watch")
        assert gateway.command.mock == ("node", "mock.js")
        assert gateway.performance.early_start is True
        assert gateway.performance.health_retries == 30
        assert roster.monitoring.enabled is True
        assert roster.monitoring.dashboard_url == "http://localhost:9999"

    def test_loads_toml(self, fs: FakeFilesystem) -> None:
        path = Path("/project/services.toml")
        fs.create_file(path, contents=TOML_ROSTER)

        roster = load_roster(path)

        assert roster.services["worker"].dependencies == ("api",)
        assert roster.services["api"].command.normal == ("uvicorn", "app:app")

    def test_validation_error_names_failing_key(self, fs: FakeFilesystem) -> None:
        path = Path("/project/services.json")
        content = '{"services": {"api": {"name": "API", "port": 0, "command": "x"}}}'
        fs.create_file(path, contents=content)

        with pytest.raises(ConfigError) as exc_info:
            _ = load_roster(path)

        error = exc_info.value
        assert error.path == path
        assert error.key == "services.api.port"
        assert str(path) in str(error)


class TestParseRoster:
    def test_empty_services_rejected(self) -> None:
        with pytest.raises(ConfigError, match="services"):
            _ = parse_roster({"services": {}})

    def test_missing_command_rejected(self) -> None:
        with pytest.raises(ConfigError) as exc_info:
            _ = parse_roster({"services": {"api": {"name": "API", "port": 80}}})

        assert exc_info.value.key == "services.api.command"

    def test_empty_command_rejected(self) -> None:
        with pytest.raises(ConfigError):
            _ = parse_roster(
                {"services": {"api": {"name": "API", "port": 80, "command": ""}}}
            )
