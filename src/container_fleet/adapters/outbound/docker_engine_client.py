"""Docker engine client.

Implements EngineClientPort on top of the Docker SDK's low-level
APIClient. Every SDK or transport error is re-raised as
EngineCallFailed, including errors surfacing mid-stream.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterator, Optional

import docker
import requests
from docker.errors import DockerException

from container_fleet.domain.entities.container import (
    ContainerSummary,
    CreatedContainer,
    EngineEvent,
    ImageDeleteItem,
    LaunchConfig,
    OutputChunk,
    StatsSnapshot,
    StreamKind,
)
from container_fleet.domain.value_objects.port_spec import PortSpec
from container_fleet.infrastructure.config import EngineConfig
from container_fleet.ports.outbound import (
    AttachOptions,
    AttachSession,
    EngineCallFailed,
    ListContainersOptions,
    LogOptions,
    RemoveContainerOptions,
    RemoveImageOptions,
)


logger = logging.getLogger(__name__)

ENGINE_ERRORS = (DockerException, requests.exceptions.RequestException, OSError)


# =============================================================================
# Payload translation
# =============================================================================


def exposed_ports(spec: PortSpec) -> list[Any]:
    """Container ports in the form ``create_container(ports=...)`` takes."""
    ports: list[Any] = []
    for port in spec.exposed_ports():
        number, _, proto = port.partition("/")
        ports.append((number, proto) if proto else number)
    return ports


def port_bindings(spec: PortSpec) -> dict[str, list[tuple[str, str]]]:
    """Host bindings in the form ``create_host_config(port_bindings=...)`` takes.

    Brackets around IPv6 host addresses are dropped; the engine wants the
    bare address.
    """
    bindings: dict[str, list[tuple[str, str]]] = {}
    for port, entries in spec.bindings().items():
        bindings[port] = [
            ((b.host_ip or "").strip("[]"), b.host_port or "")
            for b in entries
        ]
    return bindings


def _block_io(sample: dict) -> tuple[Optional[int], Optional[int]]:
    storage = sample.get("storage_stats") or {}
    if "read_size_bytes" in storage or "write_size_bytes" in storage:
        return storage.get("read_size_bytes"), storage.get("write_size_bytes")

    entries = (sample.get("blkio_stats") or {}).get("io_service_bytes_recursive")
    if entries is None:
        return None, None
    read = sum(e.get("value", 0) for e in entries if e.get("op", "").lower() == "read")
    write = sum(e.get("value", 0) for e in entries if e.get("op", "").lower() == "write")
    return read, write


def snapshot_from_sample(container_id: str, sample: dict) -> StatsSnapshot:
    """Translate one decoded stats document."""
    cpu = ((sample.get("cpu_stats") or {}).get("cpu_usage") or {}).get("total_usage", 0)
    memory = (sample.get("memory_stats") or {}).get("usage")
    networks = sample.get("networks")
    rx = sum(n.get("rx_bytes", 0) for n in networks.values()) if networks else None
    read, write = _block_io(sample)
    return StatsSnapshot(
        container_id=sample.get("id") or container_id,
        name=(sample.get("name") or "").lstrip("/"),
        cpu_total_usage=cpu,
        memory_usage=memory,
        network_rx_bytes=rx,
        block_read_bytes=read,
        block_write_bytes=write,
    )


def summary_from_listing(entry: dict) -> ContainerSummary:
    """Translate one ``/containers/json`` entry."""
    ports = []
    for port in entry.get("Ports") or []:
        private = f"{port.get('PrivatePort')}/{port.get('Type', 'tcp')}"
        if port.get("PublicPort"):
            ports.append(f"{port.get('IP', '')}:{port['PublicPort']}->{private}")
        else:
            ports.append(private)
    return ContainerSummary(
        container_id=entry["Id"],
        names=list(entry.get("Names") or []),
        image=entry.get("Image", ""),
        command=entry.get("Command", ""),
        created=entry.get("Created"),
        status=entry.get("Status", ""),
        ports=ports,
        size_rw=entry.get("SizeRw"),
        size_root_fs=entry.get("SizeRootFs"),
    )


def event_from_message(message: dict) -> EngineEvent:
    actor = message.get("Actor") or {}
    return EngineEvent(
        type=message.get("Type", ""),
        action=message.get("Action", ""),
        actor_id=actor.get("ID", ""),
        attributes=dict(actor.get("Attributes") or {}),
        timestamp=message.get("time", 0),
    )


# =============================================================================
# Adapter
# =============================================================================


class DockerInputSink:
    """Writes to the stdin side of an attach socket."""

    def __init__(self, sock: Any, container_id: str) -> None:
        self._sock = sock
        self._container_id = container_id

    def write(self, data: bytes) -> None:
        raw = getattr(self._sock, "_sock", self._sock)
        try:
            raw.sendall(data)
        except ENGINE_ERRORS as exc:
            raise EngineCallFailed("attach", self._container_id, exc) from exc

    def close(self) -> None:
        try:
            self._sock.close()
        except OSError as exc:
            logger.debug(f"Closing attach socket for {self._container_id}: {exc}")


class DockerEngineClient:
    """EngineClientPort backed by a Docker daemon.

    Example:
        engine = DockerEngineClient.from_config(EngineConfig())
        for summary in engine.list_containers(ListContainersOptions(all=True)):
            print(summary.container_id)
    """

    def __init__(self, api: docker.APIClient) -> None:
        """Wrap an already connected low-level client."""
        self._api = api

    @classmethod
    def from_config(cls, config: EngineConfig) -> "DockerEngineClient":
        """Connect using the configured URL, or the DOCKER_* environment.

        Raises:
            EngineCallFailed: If the daemon cannot be reached.
        """
        try:
            if config.base_url:
                client = docker.DockerClient(
                    base_url=config.base_url,
                    version=config.api_version,
                    timeout=config.timeout_seconds,
                )
            else:
                client = docker.from_env(version=config.api_version, timeout=config.timeout_seconds)
        except ENGINE_ERRORS as exc:
            raise EngineCallFailed("connect", config.base_url or "", exc) from exc
        return cls(client.api)

    def _call(self, operation: str, target: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        try:
            return fn(*args, **kwargs)
        except ENGINE_ERRORS as exc:
            raise EngineCallFailed(operation, target, exc) from exc

    def _guard(self, operation: str, target: str, stream: Iterator[Any]) -> Iterator[Any]:
        """Re-raise errors from a lazy stream as EngineCallFailed."""
        try:
            yield from stream
        except ENGINE_ERRORS as exc:
            raise EngineCallFailed(operation, target, exc) from exc

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def create_container(self, config: LaunchConfig) -> CreatedContainer:
        host_config = self._call(
            "create_container", config.image, self._api.create_host_config,
            binds=config.volumes or None,
            port_bindings=port_bindings(config.ports) or None,
            network_mode=config.network,
        )
        response = self._call(
            "create_container", config.image, self._api.create_container,
            image=config.image,
            name=config.name,
            ports=exposed_ports(config.ports) or None,
            host_config=host_config,
        )
        return CreatedContainer(
            container_id=response["Id"],
            warnings=list(response.get("Warnings") or []),
        )

    def start_container(self, container_id: str) -> None:
        self._call("start_container", container_id, self._api.start, container_id)

    def stop_container(self, container_id: str, timeout: int | None = None) -> None:
        self._call("stop_container", container_id, self._api.stop, container_id, timeout=timeout)

    def remove_container(self, container_id: str, options: RemoveContainerOptions) -> None:
        self._call(
            "remove_container", container_id, self._api.remove_container, container_id,
            v=options.volumes, link=options.link, force=options.force,
        )

    def remove_image(self, image: str, options: RemoveImageOptions) -> list[ImageDeleteItem]:
        response = self._call(
            "remove_image", image, self._api.remove_image, image,
            force=options.force, noprune=options.noprune,
        )
        return [
            ImageDeleteItem(untagged=item.get("Untagged"), deleted=item.get("Deleted"))
            for item in response or []
        ]

    def list_containers(self, options: ListContainersOptions) -> list[ContainerSummary]:
        entries = self._call(
            "list_containers", "", self._api.containers,
            all=options.all, size=options.size, filters=options.filters or None,
        )
        return [summary_from_listing(entry) for entry in entries]

    # -------------------------------------------------------------------------
    # Streams
    # -------------------------------------------------------------------------

    def attach_container(self, container_id: str, options: AttachOptions) -> AttachSession:
        info = self._call("inspect_container", container_id, self._api.inspect_container, container_id)
        tty = bool((info.get("Config") or {}).get("Tty"))

        sink = None
        if options.stdin:
            sock = self._call(
                "attach_container", container_id, self._api.attach_socket, container_id,
                params={"stdin": 1, "stream": 1},
            )
            sink = DockerInputSink(sock, container_id)

        frames = self._call(
            "attach_container", container_id, self._api.attach, container_id,
            stdout=options.stdout, stderr=options.stderr, stream=True, logs=options.logs, demux=True,
        )
        output = self._tag_frames(self._guard("attach_container", container_id, frames), tty)
        return AttachSession(output=output, input=sink)

    @staticmethod
    def _tag_frames(frames: Iterator[tuple[bytes | None, bytes | None]], tty: bool) -> Iterator[OutputChunk]:
        for out, err in frames:
            if out:
                yield OutputChunk(StreamKind.CONSOLE if tty else StreamKind.STDOUT, out)
            if err:
                yield OutputChunk(StreamKind.STDERR, err)

    def stats(self, container_id: str) -> Iterator[StatsSnapshot]:
        samples = self._call(
            "stats", container_id, self._api.stats, container_id, decode=True, stream=True
        )
        return (
            snapshot_from_sample(container_id, sample)
            for sample in self._guard("stats", container_id, samples)
        )

    def logs(self, container_id: str, options: LogOptions) -> Iterator[OutputChunk]:
        chunks = self._call(
            "logs", container_id, self._api.logs, container_id,
            stream=True,
            follow=options.follow,
            tail="all" if options.tail is None else options.tail,
            timestamps=options.timestamps,
        )
        # The engine merges both streams here
        return (
            OutputChunk(StreamKind.CONSOLE, chunk)
            for chunk in self._guard("logs", container_id, chunks)
        )

    def events(self, filters: dict[str, list[str]]) -> Iterator[EngineEvent]:
        messages = self._call("events", "", self._api.events, filters=filters or None, decode=True)
        return (event_from_message(m) for m in self._guard("events", "", messages))

    def close(self) -> None:
        self._api.close()
