"""Roster configuration models.

This module defines the strongly-typed roster records that every other
component consumes:
- PerformanceHints: Startup tuning for a single service
- LaunchCommand: Normal and mock command lines
- ServiceDefinition: One manageable service
- MonitoringIntegration: Dashboard/monitoring settings
- Prerequisite: A host tool that must be present
- CleanupConfig: Stale process cleanup settings
- RosterConfig: The full roster
"""

import shlex
from enum import StrEnum
from pathlib import Path
from typing import Any, ClassVar

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

DEFAULT_HEALTH_RETRIES = 15
DEFAULT_HEALTH_INTERVAL = 0.5
MONITORING_SERVICE_ID = "monitoring"


class LaunchVariant(StrEnum):
    """Which command line to launch a service with."""

    NORMAL = "normal"
    MOCK = "mock"


class _RosterModel(BaseModel):
    model_config: ClassVar[ConfigDict] = ConfigDict(
        frozen=True,
        extra="ignore",
        alias_generator=to_camel,
        populate_by_name=True,
    )


def _split_command(value: Any) -> Any:  # noqa: ANN401
    """Split a shell-style command string into an argv tuple."""
    if isinstance(value, str):
        return tuple(shlex.split(value))
    return value


class PerformanceHints(_RosterModel):
    """Startup tuning for a single service.

    Attributes:
        early_start: Allow launching once any dependency has been spawned.
        health_retries: Number of health probes before giving up.
        health_interval: Seconds to sleep between health probes.
    """

    early_start: bool = False
    health_retries: int = Field(default=DEFAULT_HEALTH_RETRIES, ge=1)
    health_interval: float = Field(default=DEFAULT_HEALTH_INTERVAL, ge=0.0)


class LaunchCommand(_RosterModel):
    """Command lines used to launch a service.

    Attributes:
        normal: Command used in normal mode. ``dev`` is accepted as an alias.
        mock: Optional command used in mock mode.
    """

    normal: tuple[str, ...] = Field(validation_alias=AliasChoices("normal", "dev"))
    mock: tuple[str, ...] | None = None

    @field_validator("normal", "mock", mode="before")
    @classmethod
    def _split(cls, value: Any) -> Any:  # noqa: ANN401
        return _split_command(value)

    @field_validator("normal")
    @classmethod
    def _not_empty(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        if not value:
            msg = "command must not be empty"
            raise ValueError(msg)
        return value

    def for_variant(self, variant: LaunchVariant) -> tuple[str, ...]:
        """Return the argv for a launch variant.

        Mock mode falls back to the normal command when no mock command
        is configured.
        """
        if variant is LaunchVariant.MOCK and self.mock:
            return self.mock
        return self.normal


class ServiceDefinition(_RosterModel):
    """A manageable service. Immutable once loaded.

    Attributes:
        id: Unique roster key of the service.
        name: Human-readable display name.
        path: Working directory, relative to the roster root.
        port: Port the service listens on.
        health_path: HTTP path answering 200 once the service is ready.
        command: Normal and mock command lines.
        dependencies: Ids of services that must be ready first.
        layer: Startup priority seed, lower starts first.
        critical: Whether a failure of this service aborts the run.
        performance: Startup tuning hints.
        env: Extra environment variables for the process.
    """

    id: str
    name: str
    path: Path = Path()
    port: int = Field(ge=1, le=65535)
    health_path: str = "/health"
    command: LaunchCommand
    dependencies: tuple[str, ...] = ()
    layer: int = 0
    critical: bool = False
    performance: PerformanceHints = Field(default_factory=PerformanceHints)
    env: dict[str, str] = Field(default_factory=dict)

    @field_validator("command", mode="before")
    @classmethod
    def _command_shorthand(cls, value: Any) -> Any:  # noqa: ANN401
        # A bare string or argv list is the normal command
        if isinstance(value, str | list | tuple):
            return {"normal": value}
        return value

    @field_validator("health_path")
    @classmethod
    def _leading_slash(cls, value: str) -> str:
        return value if value.startswith("/") else f"/{value}"

    @property
    def base_url(self) -> str:
        """Return the base URL of the service on the local host."""
        return f"http://localhost:{self.port}"

    @property
    def health_url(self) -> str:
        """Return the full health-check URL."""
        return f"{self.base_url}{self.health_path}"


class MonitoringIntegration(_RosterModel):
    """Monitoring dashboard integration.

    Attributes:
        enabled: Launch the monitoring service ahead of the main batch.
        dashboard_url: URL printed in the startup summary.
        port: Port of the monitoring server.
        data_dir: Directory for logs, metrics and health reports.
    """

    enabled: bool = False
    dashboard_url: str | None = None
    port: int = 9999
    data_dir: Path = Path(".devplane/monitoring")


class Prerequisite(_RosterModel):
    """A host tool that must be available before launching.

    Attributes:
        name: Display name of the tool.
        command: Command printing the tool version.
    """

    name: str
    command: tuple[str, ...]

    @field_validator("command", mode="before")
    @classmethod
    def _split(cls, value: Any) -> Any:  # noqa: ANN401
        return _split_command(value)


class CleanupConfig(_RosterModel):
    """Stale process cleanup settings.

    Attributes:
        process_names: Process names killed during a normal (non-fast) cleanup.
    """

    process_names: tuple[str, ...] = ()


class RosterConfig(_RosterModel):
    """The full service roster.

    Attributes:
        services: Service definitions keyed by id, in declaration order.
        monitoring: Monitoring integration settings.
        prerequisites: Host tools checked before launching.
        cleanup: Stale process cleanup settings.
        root: Directory service paths are resolved against.
    """

    services: dict[str, ServiceDefinition]
    monitoring: MonitoringIntegration = Field(default_factory=MonitoringIntegration)
    prerequisites: tuple[Prerequisite, ...] = ()
    cleanup: CleanupConfig = Field(default_factory=CleanupConfig)
    root: Path = Field(default_factory=Path.cwd)

    @model_validator(mode="before")
    @classmethod
    def _lift_sections(cls, data: Any) -> Any:  # noqa: ANN401
        if not isinstance(data, dict):
            return data
        result = dict(data)

        # The monitoring flag may live under an "integrations" table
        integrations = result.pop("integrations", None)
        if isinstance(integrations, dict) and "monitoring" not in result:
            result["monitoring"] = integrations.get("monitoring", {})

        # Service ids come from the mapping keys
        services = result.get("services")
        if isinstance(services, dict):
            result["services"] = {
                service_id: {"id": service_id, **body}
                if isinstance(body, dict)
                else body
                for service_id, body in services.items()
            }
        return result

    @field_validator("services")
    @classmethod
    def _not_empty(
        cls, value: dict[str, ServiceDefinition]
    ) -> dict[str, ServiceDefinition]:
        if not value:
            msg = "roster must define at least one service"
            raise ValueError(msg)
        for service_id, definition in value.items():
            if definition.id != service_id:
                msg = f"service id '{definition.id}' does not match key '{service_id}'"
                raise ValueError(msg)
        return value

    @property
    def monitoring_service(self) -> ServiceDefinition | None:
        """Return the designated monitoring service, if declared."""
        return self.services.get(MONITORING_SERVICE_ID)

    def launch_order(self) -> list[ServiceDefinition]:
        """Return every non-monitoring service sorted by layer.

        Ties keep declaration order.
        """
        batch = [
            definition
            for service_id, definition in self.services.items()
            if service_id != MONITORING_SERVICE_ID
        ]
        return sorted(batch, key=lambda definition: definition.layer)

    def resolve_path(self, definition: ServiceDefinition) -> Path:
        """Resolve a service working directory against the roster root."""
        return (self.root / definition.path).resolve()
