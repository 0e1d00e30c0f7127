"""Container, stream and metrics entities."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import time

from container_fleet.domain.value_objects.identifiers import short_id
from container_fleet.domain.value_objects.port_spec import PortSpec


class StreamKind(Enum):
    """Channel an I/O chunk travelled on."""
    STDIN = "stdin"  # Input echo, never expected on an output stream
    STDOUT = "stdout"
    STDERR = "stderr"
    CONSOLE = "console"  # TTY-attached container, stdout and stderr merged


@dataclass(frozen=True)
class OutputChunk:
    """One tagged chunk read from a container stream."""
    kind: StreamKind
    data: bytes


@dataclass(frozen=True)
class ContainerRef:
    """Engine id plus user-facing name."""
    container_id: str
    name: str = ""

    @property
    def short_id(self) -> str:
        return short_id(self.container_id)

    def display(self) -> str:
        """Name if known, otherwise the short id."""
        return self.name or self.short_id


@dataclass
class ContainerSummary:
    """One entry of a container listing."""
    container_id: str
    names: list[str] = field(default_factory=list)
    image: str = ""
    command: str = ""
    created: int | None = None  # Epoch seconds
    status: str = ""
    ports: list[str] = field(default_factory=list)
    size_rw: int | None = None
    size_root_fs: int | None = None

    def ref(self) -> ContainerRef:
        """Reference using the first listed name without its leading slash."""
        name = self.names[0].lstrip("/") if self.names else ""
        return ContainerRef(container_id=self.container_id, name=name)


@dataclass
class LaunchConfig:
    """Everything needed to create a container for ``run``."""
    image: str
    name: str | None = None
    network: str | None = None
    volumes: list[str] = field(default_factory=list)
    ports: PortSpec = field(default_factory=PortSpec)
    auto_remove: bool = False

    def validate(self) -> bool:
        """Validate configuration.

        Returns:
            True if valid.
        """
        if not self.image:
            return False
        if self.name is not None and not self.name:
            return False
        return True


@dataclass
class CreatedContainer:
    """Result of a create call."""
    container_id: str
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ImageDeleteItem:
    """One reference untagged or deleted by an image removal."""
    untagged: str | None = None
    deleted: str | None = None

    def describe(self) -> str:
        if self.untagged:
            return f"Untagged: {self.untagged}"
        return f"Deleted: {self.deleted}"


@dataclass
class StatsSnapshot:
    """Most recent metrics sample for one container."""
    container_id: str
    name: str = ""
    cpu_total_usage: int = 0  # Cumulative CPU time counter
    memory_usage: int | None = None  # Bytes
    network_rx_bytes: int | None = None
    block_read_bytes: int | None = None
    block_write_bytes: int | None = None
    timestamp: float = field(default_factory=time.time)


@dataclass
class EngineEvent:
    """One entry of the engine event stream."""
    type: str
    action: str
    actor_id: str = ""
    attributes: dict[str, str] = field(default_factory=dict)
    timestamp: int = 0

    def describe(self) -> str:
        attrs = ", ".join(f"{k}={v}" for k, v in sorted(self.attributes.items()))
        line = f"{self.timestamp} {self.type} {self.action} {self.actor_id}"
        return f"{line} ({attrs})" if attrs else line
