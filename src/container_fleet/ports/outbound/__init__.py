"""Outbound ports - Engine client interface for the container fleet.

The engine client is the only external dependency of the fleet
operator: every container and image operation, and every stream,
goes through it.
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass, field
from typing import Iterator, Protocol

from container_fleet.domain.entities.container import (
    ContainerSummary,
    CreatedContainer,
    EngineEvent,
    ImageDeleteItem,
    LaunchConfig,
    OutputChunk,
    StatsSnapshot,
)


# =============================================================================
# Call options
# =============================================================================


@dataclass
class RemoveContainerOptions:
    """Options for removing a container."""
    force: bool = False  # Kill a running container first
    volumes: bool = False  # Remove anonymous volumes
    link: bool = False  # Remove the link, not the container


@dataclass
class RemoveImageOptions:
    """Options for removing an image."""
    force: bool = False
    noprune: bool = False  # Keep untagged parents


@dataclass
class ListContainersOptions:
    """Options for listing containers."""
    all: bool = False  # Include stopped containers
    size: bool = False
    filters: dict[str, list[str]] = field(default_factory=dict)


@dataclass
class AttachOptions:
    """Channels to attach to."""
    stdin: bool = False
    stdout: bool = True
    stderr: bool = True
    logs: bool = False  # Replay output produced before the attach


@dataclass
class LogOptions:
    """Options for streaming container logs."""
    follow: bool = False
    tail: int | None = None  # None streams the whole history
    timestamps: bool = False


# =============================================================================
# Attach session
# =============================================================================


class InputSink(Protocol):
    """Write side of an attached container."""

    @abstractmethod
    def write(self, data: bytes) -> None:
        """Send bytes to the container's stdin."""
        ...

    @abstractmethod
    def close(self) -> None:
        """Close the input channel."""
        ...


@dataclass
class AttachSession:
    """Duplex channel returned by an attach call."""
    output: Iterator[OutputChunk]
    input: InputSink | None = None

    def close(self) -> None:
        if self.input is not None:
            self.input.close()
        close = getattr(self.output, "close", None)
        if close is not None:
            close()


# =============================================================================
# Engine Client Port
# =============================================================================


class EngineClientPort(Protocol):
    """Protocol for container engine operations.

    Every call is fallible and raises EngineCallFailed; callers never
    retry. Stream methods return blocking iterators that end when the
    engine closes the stream.

    Thread Safety:
        A single instance is shared by concurrent callers. All methods
        must be thread-safe.

    Example:
        created = engine.create_container(LaunchConfig(image="alpine"))
        engine.start_container(created.container_id)
        for sample in engine.stats(created.container_id):
            ...
    """

    @abstractmethod
    def create_container(self, config: LaunchConfig) -> CreatedContainer:
        """Create a container.

        Args:
            config: Image, name, network, volumes and ports.

        Returns:
            New container id and any engine warnings.

        Raises:
            EngineCallFailed: If creation fails.
        """
        ...

    @abstractmethod
    def start_container(self, container_id: str) -> None:
        """Start a container.

        Raises:
            EngineCallFailed: If the container cannot be started.
        """
        ...

    @abstractmethod
    def stop_container(self, container_id: str, timeout: int | None = None) -> None:
        """Stop a container.

        Args:
            container_id: Container to stop.
            timeout: Seconds to wait before killing; engine default if None.

        Raises:
            EngineCallFailed: If the container cannot be stopped.
        """
        ...

    @abstractmethod
    def remove_container(self, container_id: str, options: RemoveContainerOptions) -> None:
        """Remove a container.

        Raises:
            EngineCallFailed: If removal fails.
        """
        ...

    @abstractmethod
    def remove_image(self, image: str, options: RemoveImageOptions) -> list[ImageDeleteItem]:
        """Remove an image by name, tag or id.

        Returns:
            References untagged or deleted by the removal.

        Raises:
            EngineCallFailed: If removal fails.
        """
        ...

    @abstractmethod
    def list_containers(self, options: ListContainersOptions) -> list[ContainerSummary]:
        """List containers matching the filters.

        Raises:
            EngineCallFailed: If the listing fails.
        """
        ...

    @abstractmethod
    def attach_container(self, container_id: str, options: AttachOptions) -> AttachSession:
        """Attach to a container's I/O.

        Raises:
            EngineCallFailed: If the attach fails.
        """
        ...

    @abstractmethod
    def stats(self, container_id: str) -> Iterator[StatsSnapshot]:
        """Open a continuous metrics stream.

        Raises:
            EngineCallFailed: On transport errors, possibly mid-stream.
        """
        ...

    @abstractmethod
    def logs(self, container_id: str, options: LogOptions) -> Iterator[OutputChunk]:
        """Open a log stream.

        Raises:
            EngineCallFailed: On transport errors, possibly mid-stream.
        """
        ...

    @abstractmethod
    def events(self, filters: dict[str, list[str]]) -> Iterator[EngineEvent]:
        """Open a continuous engine event stream.

        Raises:
            EngineCallFailed: On transport errors, possibly mid-stream.
        """
        ...

    @abstractmethod
    def close(self) -> None:
        """Release the connection."""
        ...


class EngineCallFailed(Exception):
    """Raised when an engine call fails at the transport or API level."""

    def __init__(self, operation: str, target: str = "", cause: BaseException | str = "") -> None:
        self.operation = operation
        self.target = target
        self.cause = cause
        message = f"{operation} failed"
        if target:
            message = f"{operation} {target} failed"
        if cause:
            message = f"{message}: {cause}"
        super().__init__(message)


# =============================================================================
# Exports
# =============================================================================

__all__ = [
    "EngineClientPort",
    "EngineCallFailed",
    "InputSink",
    "AttachSession",
    "AttachOptions",
    "ListContainersOptions",
    "LogOptions",
    "RemoveContainerOptions",
    "RemoveImageOptions",
]
