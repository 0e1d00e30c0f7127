"""Inbound ports - API contracts for the container fleet.

Inbound ports define what the CLI (or any other front end) can ask of
the fleet operator: one call per command.
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

from container_fleet.domain.entities.container import ContainerSummary, LaunchConfig
from container_fleet.infrastructure.tasks import CancellationToken
from container_fleet.ports.outbound import (
    ListContainersOptions,
    LogOptions,
    RemoveContainerOptions,
    RemoveImageOptions,
)


# =============================================================================
# Batch results
# =============================================================================


@dataclass
class BatchOutcome:
    """Result of one batch unit."""

    target: str
    output: Any = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class BatchReport:
    """All outcomes of one batch, in arrival order."""

    operation: str
    outcomes: list[BatchOutcome] = field(default_factory=list)

    @property
    def failed(self) -> list[BatchOutcome]:
        return [o for o in self.outcomes if not o.ok]

    @property
    def succeeded(self) -> list[BatchOutcome]:
        return [o for o in self.outcomes if o.ok]


# =============================================================================
# Fleet Operator Port
# =============================================================================


class FleetOperatorPort(Protocol):
    """Protocol for fleet commands.

    Batch commands attempt every target before deciding; they print one
    success line per target to stdout and log each failure.

    Example:
        fleet.stop(["web-1", "web-2"])
        fleet.remove(["web-1", "web-2"], RemoveContainerOptions(force=True))
    """

    @abstractmethod
    def run(self, config: LaunchConfig) -> str:
        """Create, attach to and start a container from an image.

        Returns:
            Container id.

        Raises:
            EngineCallFailed: If any engine call fails.
        """
        ...

    @abstractmethod
    def start(self, targets: list[str], attach: bool = False, interactive: bool = False) -> BatchReport:
        """Start containers, optionally attached to one of them.

        Raises:
            MultiAttachUnsupported: If attaching to more than one target.
            BatchFailed: If any target failed to start.
        """
        ...

    @abstractmethod
    def stop(self, targets: list[str], timeout: int | None = None) -> BatchReport:
        """Stop containers.

        Raises:
            BatchFailed: If any target failed to stop.
        """
        ...

    @abstractmethod
    def remove(self, targets: list[str], options: RemoveContainerOptions) -> BatchReport:
        """Remove containers.

        Raises:
            BatchFailed: If any target could not be removed.
        """
        ...

    @abstractmethod
    def remove_images(self, images: list[str], options: RemoveImageOptions) -> BatchReport:
        """Remove images.

        Raises:
            BatchFailed: If any image could not be removed.
        """
        ...

    @abstractmethod
    def stats(self, keep_screen: bool = False, token: Optional[CancellationToken] = None) -> None:
        """Render the live stats dashboard until interrupted or cancelled."""
        ...

    @abstractmethod
    def list(self, options: ListContainersOptions) -> list[ContainerSummary]:
        """List containers."""
        ...

    @abstractmethod
    def logs(self, target: str, options: LogOptions) -> None:
        """Stream a container's logs to stdout/stderr."""
        ...

    @abstractmethod
    def events(self, filters: dict[str, list[str]], limit: int | None = None) -> int:
        """Stream engine events to stdout.

        Returns:
            Number of events printed.
        """
        ...


# =============================================================================
# Errors
# =============================================================================


class MultiAttachUnsupported(Exception):
    """Raised when attach or interactive mode names more than one target."""

    def __init__(self, count: int) -> None:
        self.count = count
        super().__init__(f"Cannot attach to {count} containers, exactly one is required")


class BatchFailed(Exception):
    """Raised after a batch in which at least one unit failed."""

    def __init__(self, report: BatchReport) -> None:
        self.report = report
        failed = [o.target for o in report.failed]
        super().__init__(
            f"{report.operation} failed for {len(failed)} of {len(report.outcomes)} targets: "
            + ", ".join(failed)
        )


class ListingFailed(Exception):
    """Raised when a discovery listing fails. Retried on the next tick."""

    pass


__all__ = [
    "BatchOutcome",
    "BatchReport",
    "FleetOperatorPort",
    "MultiAttachUnsupported",
    "BatchFailed",
    "ListingFailed",
]
