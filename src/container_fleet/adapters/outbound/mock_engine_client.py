"""Mock engine client for testing and development.

This adapter provides an in-memory implementation of the
EngineClientPort protocol, so the fleet can be exercised without a
running container engine.
"""

from __future__ import annotations

import itertools
import logging
import queue
import threading
from dataclasses import dataclass, field
from typing import Callable, Iterator

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

_END = object()
ATTACH_WAIT_SECONDS = 5.0


def _matches(event: EngineEvent, filters: dict[str, list[str]]) -> bool:
    for key, values in filters.items():
        actual = event.type if key == "type" else event.attributes.get(key)
        if actual not in values:
            return False
    return True


@dataclass
class MockContainerState:
    """State for a mock container."""

    container_id: str
    name: str
    image: str
    status: str = "created"
    config: LaunchConfig | None = None
    output: list[OutputChunk] = field(default_factory=list)
    logs: list[OutputChunk] = field(default_factory=list)
    stdin: list[bytes] = field(default_factory=list)
    started: threading.Event = field(default_factory=threading.Event)

    def summary(self) -> ContainerSummary:
        return ContainerSummary(
            container_id=self.container_id,
            names=[f"/{self.name}"],
            image=self.image,
            status=self.status,
        )


class MockInputSink:
    """Collects bytes written to a mock container's stdin."""

    def __init__(
        self,
        state: MockContainerState,
        lock: threading.Lock,
        check: Callable[[], None] = lambda: None,
    ) -> None:
        self._state = state
        self._lock = lock
        self._check = check
        self.closed = False

    def write(self, data: bytes) -> None:
        if self.closed:
            raise EngineCallFailed("attach", self._state.container_id, "input closed")
        self._check()
        with self._lock:
            self._state.stdin.append(data)

    def close(self) -> None:
        self.closed = True


class MockEngineClient:
    """Mock implementation of EngineClientPort for testing.

    Containers, images and streams live in memory. Stats and event
    streams are fed through queues and block like the real ones until a
    sample is pushed or the stream is ended.

    Example:
        engine = MockEngineClient()
        engine.add_container("web")
        engine.fail("start_container", "web", "no such container")
        engine.push_stats("web", StatsSnapshot(container_id="web"))
        engine.end_stats("web")
    """

    def __init__(self) -> None:
        """Initialize mock engine client."""
        self._lock = threading.Lock()
        self._containers: dict[str, MockContainerState] = {}
        self._images: dict[str, list[ImageDeleteItem]] = {}
        self._image_output: dict[str, list[OutputChunk]] = {}
        self._stats: dict[str, queue.Queue] = {}
        self._events: queue.Queue = queue.Queue()
        self._failures: dict[tuple[str, str], str] = {}
        self._ids = itertools.count(1)
        self.calls: list[tuple[str, str]] = []
        self.closed = False

    # -------------------------------------------------------------------------
    # EngineClientPort
    # -------------------------------------------------------------------------

    def create_container(self, config: LaunchConfig) -> CreatedContainer:
        self._record("create_container", config.image)
        container_id = f"{next(self._ids):064x}"
        name = config.name or f"mock_{container_id[-6:]}"
        state = MockContainerState(
            container_id=container_id,
            name=name,
            image=config.image,
            config=config,
            output=list(self._image_output.get(config.image, [])),
        )
        with self._lock:
            self._containers[container_id] = state
        logger.debug(f"Created mock container: {name}")
        warnings = [] if config.image in self._images else [f"Image {config.image} pulled on demand"]
        return CreatedContainer(container_id=container_id, warnings=warnings)

    def start_container(self, container_id: str) -> None:
        state = self._call("start_container", container_id)
        state.status = "running"
        state.started.set()

    def stop_container(self, container_id: str, timeout: int | None = None) -> None:
        state = self._call("stop_container", container_id)
        state.status = "exited"

    def remove_container(self, container_id: str, options: RemoveContainerOptions) -> None:
        state = self._call("remove_container", container_id)
        if state.status == "running" and not options.force:
            raise EngineCallFailed("remove_container", container_id, "container is running")
        with self._lock:
            self._containers.pop(state.container_id, None)
        self.end_stats(state.container_id)

    def remove_image(self, image: str, options: RemoveImageOptions) -> list[ImageDeleteItem]:
        self._record("remove_image", image)
        self._maybe_fail("remove_image", image)
        with self._lock:
            if image not in self._images:
                raise EngineCallFailed("remove_image", image, "no such image")
            return self._images.pop(image)

    def list_containers(self, options: ListContainersOptions) -> list[ContainerSummary]:
        self._record("list_containers", "")
        self._maybe_fail("list_containers", "")
        with self._lock:
            states = list(self._containers.values())
        if not options.all:
            states = [s for s in states if s.status == "running"]
        for key, values in options.filters.items():
            if key == "name":
                states = [s for s in states if s.name in values]
            elif key == "status":
                states = [s for s in states if s.status in values]
        return [s.summary() for s in states]

    def attach_container(self, container_id: str, options: AttachOptions) -> AttachSession:
        state = self._call("attach_container", container_id)
        sink = None
        if options.stdin:
            sink = MockInputSink(
                state, self._lock, lambda: self._maybe_fail("write_input", container_id)
            )
        return AttachSession(output=self._replay(state), input=sink)

    def stats(self, container_id: str) -> Iterator[StatsSnapshot]:
        self._call("stats", container_id)
        return self._drain(self._stats_queue(container_id))

    def logs(self, container_id: str, options: LogOptions) -> Iterator[OutputChunk]:
        state = self._call("logs", container_id)
        chunks = list(state.logs)
        if options.tail is not None:
            chunks = chunks[-options.tail:] if options.tail else []
        return iter(chunks)

    def events(self, filters: dict[str, list[str]]) -> Iterator[EngineEvent]:
        self._record("events", "")
        self._maybe_fail("events", "")
        for event in self._drain(self._events):
            if _matches(event, filters):
                yield event

    def close(self) -> None:
        self.closed = True

    # -------------------------------------------------------------------------
    # Test helpers
    # -------------------------------------------------------------------------

    def add_container(self, name: str, status: str = "running", image: str = "alpine:latest") -> str:
        """Register a container and return its id (the name, for readability)."""
        state = MockContainerState(container_id=name, name=name, image=image, status=status)
        if status == "running":
            state.started.set()
        with self._lock:
            self._containers[name] = state
        return name

    def drop_container(self, container_id: str) -> None:
        """Forget a container without ending its streams."""
        with self._lock:
            self._containers.pop(container_id, None)

    def add_image(self, image: str, removed: list[ImageDeleteItem] | None = None) -> None:
        with self._lock:
            self._images[image] = removed or [ImageDeleteItem(untagged=image)]

    def set_output(self, container_id: str, *chunks: tuple[StreamKind, bytes]) -> None:
        """Script what an attach to this container will read."""
        state = self.get_container(container_id)
        state.output = [OutputChunk(kind, data) for kind, data in chunks]

    def set_image_output(self, image: str, *chunks: tuple[StreamKind, bytes]) -> None:
        """Script the output of every container created from ``image``."""
        self._image_output[image] = [OutputChunk(kind, data) for kind, data in chunks]

    def set_logs(self, container_id: str, *chunks: tuple[StreamKind, bytes]) -> None:
        state = self.get_container(container_id)
        state.logs = [OutputChunk(kind, data) for kind, data in chunks]

    def fail(self, operation: str, target: str = "", reason: str = "mock failure") -> None:
        """Make every ``operation`` call on ``target`` raise EngineCallFailed.

        Besides the port methods, ``read_output`` fails an attach output
        stream after its scripted chunks (target: container id or image)
        and ``write_input`` fails writes to an attach input channel.
        """
        with self._lock:
            self._failures[(operation, target)] = reason

    def recover(self, operation: str, target: str = "") -> None:
        with self._lock:
            self._failures.pop((operation, target), None)

    def push_stats(self, container_id: str, snapshot: StatsSnapshot) -> None:
        self._stats_queue(container_id).put(snapshot)

    def end_stats(self, container_id: str) -> None:
        self._stats_queue(container_id).put(_END)

    def break_stats(self, container_id: str, reason: str = "connection reset") -> None:
        """Make the stats stream fail mid-way."""
        self._stats_queue(container_id).put(EngineCallFailed("stats", container_id, reason))

    def push_event(self, event: EngineEvent) -> None:
        self._events.put(event)

    def end_events(self) -> None:
        self._events.put(_END)

    def get_container(self, container_id: str) -> MockContainerState:
        with self._lock:
            return self._containers[container_id]

    def calls_for(self, operation: str) -> list[str]:
        with self._lock:
            return [target for op, target in self.calls if op == operation]

    # -------------------------------------------------------------------------

    def _record(self, operation: str, target: str) -> None:
        with self._lock:
            self.calls.append((operation, target))

    def _maybe_fail(self, operation: str, target: str) -> None:
        with self._lock:
            reason = self._failures.get((operation, target))
        if reason is not None:
            raise EngineCallFailed(operation, target, reason)

    def _call(self, operation: str, container_id: str) -> MockContainerState:
        self._record(operation, container_id)
        self._maybe_fail(operation, container_id)
        with self._lock:
            state = self._containers.get(container_id)
        if state is None:
            raise EngineCallFailed(operation, container_id, "no such container")
        return state

    def _stats_queue(self, container_id: str) -> queue.Queue:
        with self._lock:
            return self._stats.setdefault(container_id, queue.Queue())

    def _replay(self, state: MockContainerState) -> Iterator[OutputChunk]:
        """Yield scripted output once started, then mark the container exited."""
        if not state.started.wait(ATTACH_WAIT_SECONDS):
            return
        yield from list(state.output)
        for target in (state.container_id, state.image):
            self._maybe_fail("read_output", target)
        state.status = "exited"

    def _drain(self, source: queue.Queue) -> Iterator:
        while True:
            item = source.get()
            if item is _END:
                return
            if isinstance(item, EngineCallFailed):
                raise item
            yield item
