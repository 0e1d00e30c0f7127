"""Fleet operator.

Resolves each command into one call on the domain services: the port
parser and duplexer for ``run``, the batch dispatcher for the lifecycle
commands, and the stats aggregator for the dashboard.
"""

from __future__ import annotations

import sys
from typing import Any, Optional, TextIO

from container_fleet.domain.entities.container import (
    ContainerRef,
    ContainerSummary,
    ImageDeleteItem,
    LaunchConfig,
)
from container_fleet.domain.services.batch_dispatcher import BatchDispatcher
from container_fleet.domain.services.stats_aggregator import StatsAggregator
from container_fleet.domain.services.stream_duplexer import AttachedContainer, StreamDuplexer
from container_fleet.infrastructure.config import Config
from container_fleet.infrastructure.logging import get_logger
from container_fleet.infrastructure.metrics import MetricsRegistry, get_metrics
from container_fleet.infrastructure.tasks import CancellationToken
from container_fleet.ports.inbound import BatchReport, MultiAttachUnsupported
from container_fleet.ports.outbound import (
    EngineClientPort,
    ListContainersOptions,
    LogOptions,
    RemoveContainerOptions,
    RemoveImageOptions,
)

logger = get_logger(__name__)


def describe_image_removal(image: str, items: list[ImageDeleteItem]) -> list[str]:
    """Success lines for ``rmi``: the image, then what it untagged or deleted."""
    return [image, *(item.describe() for item in items)]


class FleetOperator:
    """Implements FleetOperatorPort on top of an engine client."""

    def __init__(
        self,
        engine: EngineClientPort,
        config: Optional[Config] = None,
        out: Optional[TextIO] = None,
        dispatcher: Optional[BatchDispatcher] = None,
        duplexer: Optional[StreamDuplexer] = None,
        metrics: Optional[MetricsRegistry] = None,
    ) -> None:
        """Initialize the operator.

        Args:
            engine: Engine client, shared by every service.
            config: Fleet configuration, defaults if None.
            out: Text stream for command output, stdout if None.
            dispatcher: Batch dispatcher override.
            duplexer: Stream duplexer override.
            metrics: Metrics registry, the global one if None.
        """
        self._engine = engine
        self._config = config or Config()
        self._out = out
        self._metrics = metrics or get_metrics()
        self._dispatcher = dispatcher or BatchDispatcher(
            max_workers=self._config.dispatch.max_workers,
            out=out,
            metrics=self._metrics,
        )
        self._duplexer = duplexer or StreamDuplexer(engine, metrics=self._metrics)

    @property
    def out(self) -> TextIO:
        return self._out or sys.stdout

    # -------------------------------------------------------------------------
    # run
    # -------------------------------------------------------------------------

    def run(self, config: LaunchConfig) -> str:
        """Create a container, stream its output, and optionally remove it.

        Returns:
            Container id.

        Raises:
            ValueError: If the launch config is invalid.
            EngineCallFailed: If any engine call fails.
        """
        if not config.validate():
            raise ValueError("Invalid launch config")

        created = self._engine.create_container(config)
        if created.warnings:
            logger.warning("Warnings while creating the container", container_id=created.container_id)
            for warning in created.warnings:
                logger.warning("create warning", warning=warning)

        ref = ContainerRef(container_id=created.container_id, name=config.name or "")
        token = CancellationToken()
        attached = self._duplexer.attach(ref, interactive=False, token=token)
        try:
            self._engine.start_container(created.container_id)
        except Exception:
            token.cancel()
            attached.close()
            raise
        self._join_attach(attached)

        if config.auto_remove:
            self._engine.remove_container(created.container_id, RemoveContainerOptions())
            logger.debug("removed container", container_id=created.container_id)
        return created.container_id

    # -------------------------------------------------------------------------
    # Batch lifecycle commands
    # -------------------------------------------------------------------------

    def start(self, targets: list[str], attach: bool = False, interactive: bool = False) -> BatchReport:
        """Start containers, attaching first when asked.

        Raises:
            MultiAttachUnsupported: Attach or interactive with != 1 target,
                before any engine call.
            BatchFailed: If any start failed.
        """
        if not (attach or interactive):
            return self._dispatcher.dispatch("start", targets, self._engine.start_container)

        if len(targets) != 1:
            raise MultiAttachUnsupported(len(targets))

        token = CancellationToken()
        attached = self._duplexer.attach(ContainerRef(container_id=targets[0]), interactive, token)
        try:
            report = self._dispatcher.dispatch("start", targets, self._engine.start_container)
        except Exception:
            token.cancel()
            attached.close()
            raise
        self._join_attach(attached)
        return report

    def stop(self, targets: list[str], timeout: int | None = None) -> BatchReport:
        def stop_one(target: str) -> None:
            self._engine.stop_container(target, timeout)

        return self._dispatcher.dispatch("stop", targets, stop_one)

    def remove(self, targets: list[str], options: RemoveContainerOptions) -> BatchReport:
        def remove_one(target: str) -> None:
            self._engine.remove_container(target, options)

        return self._dispatcher.dispatch("remove", targets, remove_one)

    def remove_images(self, images: list[str], options: RemoveImageOptions) -> BatchReport:
        def remove_one(image: str) -> list[ImageDeleteItem]:
            return self._engine.remove_image(image, options)

        return self._dispatcher.dispatch(
            "remove_image", images, remove_one, describe=describe_image_removal
        )

    # -------------------------------------------------------------------------
    # Streams and listings
    # -------------------------------------------------------------------------

    def stats(self, keep_screen: bool = False, token: Optional[CancellationToken] = None) -> None:
        """Run the dashboard. Only returns when ``token`` is cancelled."""
        stats_config = self._config.stats
        aggregator = StatsAggregator(
            self._engine,
            out=self._out,
            discovery_interval=stats_config.discovery_interval_seconds,
            render_interval=stats_config.render_interval_seconds,
            keep_screen=keep_screen or stats_config.keep_screen,
            metrics=self._metrics,
        )
        aggregator.run(token)

    def list(self, options: ListContainersOptions) -> list[ContainerSummary]:
        return self._engine.list_containers(options)

    def logs(self, target: str, options: LogOptions) -> None:
        self._duplexer.pump_output(self._engine.logs(target, options))

    def events(self, filters: dict[str, list[str]], limit: int | None = None) -> int:
        """Print engine events until the stream ends or ``limit`` is hit.

        Returns:
            Number of events printed.
        """
        out = self.out
        printed = 0
        for event in self._engine.events(filters):
            out.write(event.describe() + "\n")
            out.flush()
            printed += 1
            if limit is not None and printed >= limit:
                break
        return printed

    # -------------------------------------------------------------------------

    def _join_attach(self, attached: AttachedContainer) -> Any:
        """Wait for the output pump, then settle the input forwarder.

        The input forwarder has no natural end; once output is done it is
        cancelled and the session is closed. An error the forwarder already
        raised is still propagated.
        """
        try:
            result = attached.output.join()
        finally:
            if attached.input is not None:
                attached.input.cancel()
            attached.close()
        if attached.input is not None:
            error = attached.input.exception()
            if error is not None:
                raise error
        return result
