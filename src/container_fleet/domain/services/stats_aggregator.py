"""Live stats aggregation and dashboard rendering.

Three cooperating parts share one StatsCache:
1. Discovery loop: lists every container on a fixed tick and starts a
   poller for each id it has not seen before
2. Pollers: one per container, copy each sample from the engine's stats
   stream into the cache and clear the cell when the stream ends
3. Render loop: repaints the populated cells on a short fixed tick

The cache lock is only held for dict operations, never while waiting on
a stream.
"""

from __future__ import annotations

import sys
import threading
from typing import Optional, TextIO

from container_fleet.domain.entities.container import StatsSnapshot
from container_fleet.domain.value_objects.identifiers import short_id
from container_fleet.infrastructure.logging import get_logger
from container_fleet.infrastructure.metrics import MetricsRegistry, get_metrics
from container_fleet.infrastructure.tasks import BackgroundTask, CancellationToken
from container_fleet.infrastructure.terminal import AlternateScreen, Term
from container_fleet.ports.inbound import ListingFailed
from container_fleet.ports.outbound import (
    EngineCallFailed,
    EngineClientPort,
    ListContainersOptions,
)

logger = get_logger(__name__)

HEADER = "Container ID\tName\tCPU\tMemory\tNetwork\tBlock I/O"
PLACEHOLDER = "-"


def _field(value: int | None) -> str:
    return PLACEHOLDER if value is None else str(value)


def format_row(snapshot: StatsSnapshot) -> str:
    """Render one dashboard row."""
    return "\t".join([
        short_id(snapshot.container_id),
        snapshot.name.lstrip("/"),
        str(snapshot.cpu_total_usage),
        _field(snapshot.memory_usage),
        _field(snapshot.network_rx_bytes),
        f"{_field(snapshot.block_read_bytes)}/{_field(snapshot.block_write_bytes)}",
    ])


class StatsCache:
    """Container id -> latest snapshot, guarded by a single lock.

    A key with a None value is a container that was discovered but has no
    sample yet, or whose stream has ended.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[str, Optional[StatsSnapshot]] = {}

    def register(self, container_id: str) -> bool:
        """Insert an empty cell.

        Returns:
            True if the id was new.
        """
        with self._lock:
            if container_id in self._entries:
                return False
            self._entries[container_id] = None
            return True

    def update(self, container_id: str, snapshot: StatsSnapshot) -> None:
        with self._lock:
            self._entries[container_id] = snapshot

    def clear(self, container_id: str) -> None:
        """Empty a cell but keep its key."""
        with self._lock:
            if container_id in self._entries:
                self._entries[container_id] = None

    def evict(self, container_id: str) -> None:
        with self._lock:
            self._entries.pop(container_id, None)

    def get(self, container_id: str) -> Optional[StatsSnapshot]:
        with self._lock:
            return self._entries.get(container_id)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._entries)

    def populated(self) -> list[StatsSnapshot]:
        """Snapshots of populated cells in insertion order."""
        with self._lock:
            return [s for s in self._entries.values() if s is not None]

    def __contains__(self, container_id: object) -> bool:
        with self._lock:
            return container_id in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class StatsAggregator:
    """Discovers containers, polls their stats and renders the dashboard.

    Example:
        aggregator = StatsAggregator(engine)
        aggregator.run()  # blocks until SIGINT
    """

    def __init__(
        self,
        engine: EngineClientPort,
        cache: Optional[StatsCache] = None,
        out: Optional[TextIO] = None,
        discovery_interval: float = 1.0,
        render_interval: float = 0.1,
        keep_screen: bool = False,
        metrics: Optional[MetricsRegistry] = None,
    ) -> None:
        """Initialize aggregator.

        Args:
            engine: Engine client shared by discovery and every poller.
            cache: Shared cache, a fresh one if None.
            out: Dashboard stream, stdout if None.
            discovery_interval: Seconds between container listings.
            render_interval: Seconds between repaints.
            keep_screen: Append-only output without clearing.
            metrics: Metrics registry, the global one if None.
        """
        self._engine = engine
        self.cache = cache if cache is not None else StatsCache()
        self._out = out
        self._discovery_interval = discovery_interval
        self._render_interval = render_interval
        self._keep_screen = keep_screen
        self._metrics = metrics or get_metrics()
        self._pollers: dict[str, BackgroundTask] = {}
        self._pollers_lock = threading.Lock()

    @property
    def pollers(self) -> dict[str, BackgroundTask]:
        """Snapshot of the poller registry."""
        with self._pollers_lock:
            return dict(self._pollers)

    # -------------------------------------------------------------------------
    # Discovery
    # -------------------------------------------------------------------------

    def discover_once(self, token: Optional[CancellationToken] = None) -> list[str]:
        """List containers once and start pollers for newcomers.

        Keys are evicted only when their container is gone from the
        listing and its poller has ended.

        Returns:
            Ids that got a new poller.

        Raises:
            ListingFailed: If the engine listing failed.
        """
        try:
            containers = self._engine.list_containers(ListContainersOptions(all=True))
        except EngineCallFailed as exc:
            raise ListingFailed(str(exc)) from exc

        listed = {c.container_id for c in containers}
        logger.debug("listed containers", count=len(listed))

        started: list[str] = []
        for summary in containers:
            if self.cache.register(summary.container_id):
                self._spawn_poller(summary.container_id, token)
                started.append(summary.container_id)

        for container_id in self.cache.keys():
            with self._pollers_lock:
                poller = self._pollers.get(container_id)
            if container_id not in listed and (poller is None or poller.done()):
                self.cache.evict(container_id)
                with self._pollers_lock:
                    self._pollers.pop(container_id, None)
                logger.debug("evicted container", container_id=short_id(container_id))

        self._metrics.stats_cache_entries.set(len(self.cache))
        return started

    def discovery_loop(self, token: CancellationToken) -> None:
        """Run discovery on every tick until cancelled."""
        while not token.cancelled:
            try:
                self.discover_once(token)
            except ListingFailed as exc:
                self._metrics.discovery_failures_total.inc()
                logger.error("Failed to list containers", error=str(exc))
            if token.wait(self._discovery_interval):
                break

    def start_discovery(self, token: CancellationToken) -> BackgroundTask:
        return BackgroundTask("stats-discovery", self.discovery_loop, token, token=token).start()

    # -------------------------------------------------------------------------
    # Polling
    # -------------------------------------------------------------------------

    def _spawn_poller(self, container_id: str, token: Optional[CancellationToken]) -> None:
        poller = BackgroundTask(f"stats-{short_id(container_id)}", self.poll, container_id, token=token)
        with self._pollers_lock:
            self._pollers[container_id] = poller
        poller.start()

    def poll(self, container_id: str) -> int:
        """Copy every stats sample for one container into the cache.

        Returns:
            Number of samples received before the stream ended.

        Raises:
            EngineCallFailed: On a transport error. The cell is cleared and
                the poller is not restarted.
        """
        log = logger.bind(container_id=short_id(container_id))
        self._metrics.stats_pollers_active.inc()
        received = 0
        try:
            log.debug("Waiting for first stats item")
            for snapshot in self._engine.stats(container_id):
                self.cache.update(container_id, snapshot)
                received += 1
                self._metrics.stats_samples_total.inc()
            log.debug("stats stream ended", samples=received)
            return received
        except Exception as exc:
            log.error("Error while receiving stats", error=str(exc))
            raise
        finally:
            self.cache.clear(container_id)
            self._metrics.stats_pollers_active.dec()

    # -------------------------------------------------------------------------
    # Rendering
    # -------------------------------------------------------------------------

    def render_once(self) -> int:
        """Paint the header and one row per populated cell.

        Returns:
            Number of container rows written.
        """
        out = self._out or sys.stdout
        lines = [HEADER]
        lines.extend(format_row(snapshot) for snapshot in self.cache.populated())
        frame = "\n".join(lines) + "\n"
        if not self._keep_screen:
            frame = Term.CLEAR + frame
        out.write(frame)
        out.flush()
        return len(lines) - 1

    def render_loop(self, token: CancellationToken) -> None:
        while not token.cancelled:
            self.render_once()
            if token.wait(self._render_interval):
                break

    def run(self, token: Optional[CancellationToken] = None) -> None:
        """Start discovery and render until cancelled or interrupted.

        Without keep-screen the dashboard lives on the alternate screen and
        SIGINT restores the main screen and exits the process.
        """
        token = token or CancellationToken()
        self.start_discovery(token)
        if self._keep_screen:
            self.render_loop(token)
            return
        with AlternateScreen(self._out or sys.stdout):
            self.render_loop(token)
