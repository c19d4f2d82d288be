"""devplane exceptions."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path


class DevplaneError(Exception):
    """Base exception for devplane errors."""


# =============================================================================
# Configuration Exceptions
# =============================================================================


class ConfigError(DevplaneError):
    """Raised when the service roster is malformed.

    Attributes:
        path: Roster file the error came from, if any.
        key: Dotted key of the offending value, if known.
    """

    def __init__(
        self,
        message: str,
        *,
        path: Path | None = None,
        key: str | None = None,
    ) -> None:
        """Initialize with error message and optional location context."""
        super().__init__(message)
        self.path: Path | None = path
        self.key: str | None = key


class CycleError(ConfigError):
    """Raised when the dependency graph contains a cycle.

    Attributes:
        service_id: A service that lies on the cycle.
        cycle: The dependency path that closes the cycle.
    """

    def __init__(
        self,
        message: str,
        *,
        service_id: str,
        cycle: tuple[str, ...] = (),
    ) -> None:
        """Initialize with error message and cycle context."""
        super().__init__(message, key=f"services.{service_id}.dependencies")
        self.service_id: str = service_id
        self.cycle: tuple[str, ...] = cycle


class PrerequisiteError(ConfigError):
    """Raised when a required tool is missing from the host."""

    def __init__(self, message: str, *, name: str) -> None:
        """Initialize with error message and the prerequisite name."""
        super().__init__(message)
        self.name: str = name


# =============================================================================
# Service Exceptions
# =============================================================================


class ServiceError(DevplaneError):
    """Base exception for service lifecycle errors.

    Attributes:
        service_id: The service the error relates to.
        cause: The underlying exception, if any.
    """

    def __init__(
        self,
        message: str,
        *,
        service_id: str,
        cause: BaseException | None = None,
    ) -> None:
        """Initialize with error message and service context."""
        super().__init__(message)
        self.service_id: str = service_id
        self.cause: BaseException | None = cause


class ServiceNotFoundError(ServiceError, KeyError):
    """Raised when a service id is not part of the roster."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""


class SpawnError(ServiceError):
    """Raised when a service process could not be started."""


class HealthCheckError(ServiceError):
    """Raised when a service never answered its health endpoint.

    Attributes:
        url: The health URL that was probed.
        attempts: Number of probes made before giving up.
    """

    def __init__(
        self,
        message: str,
        *,
        service_id: str,
        url: str,
        attempts: int,
        cause: BaseException | None = None,
    ) -> None:
        """Initialize with error message and probe context."""
        super().__init__(message, service_id=service_id, cause=cause)
        self.url: str = url
        self.attempts: int = attempts


class CriticalServiceError(ServiceError):
    """Raised when a critical service fails and the run must abort."""


class ShutdownTimeoutError(ServiceError):
    """Recorded when a process outlived the shutdown grace period.

    Attributes:
        grace_period: Seconds the process was given before being killed.
    """

    def __init__(
        self,
        message: str,
        *,
        service_id: str,
        grace_period: float,
    ) -> None:
        """Initialize with error message and the grace period used."""
        super().__init__(message, service_id=service_id)
        self.grace_period: float = grace_period


# =============================================================================
# Monitoring Exceptions
# =============================================================================


class MonitoringError(DevplaneError):
    """Base exception for monitoring errors."""


class AlertNotFoundError(MonitoringError, KeyError):
    """Raised when an alert id is unknown.

    Attributes:
        alert_id: The id that was looked up.
    """

    def __init__(self, message: str, *, alert_id: int) -> None:
        """Initialize with error message and alert context."""
        super().__init__(message)
        self.alert_id: int = alert_id

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""
