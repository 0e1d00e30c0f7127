"""Stream duplexer.

Relays a container's tagged output chunks to the process's own stdout or
stderr, flushing after every chunk, and optionally forwards terminal
input lines into the container.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from typing import BinaryIO, Iterable, Optional, TextIO

from container_fleet.domain.entities.container import ContainerRef, OutputChunk, StreamKind
from container_fleet.infrastructure.logging import get_logger
from container_fleet.infrastructure.metrics import MetricsRegistry, get_metrics
from container_fleet.infrastructure.tasks import BackgroundTask, CancellationToken
from container_fleet.ports.outbound import (
    AttachOptions,
    AttachSession,
    EngineCallFailed,
    EngineClientPort,
    InputSink,
)

logger = get_logger(__name__)


def _binary(stream: TextIO | BinaryIO) -> BinaryIO:
    """Underlying byte stream of a text stream, or the stream itself."""
    return getattr(stream, "buffer", stream)


@dataclass
class AttachedContainer:
    """A live attach: the engine session and the tasks relaying it."""

    session: AttachSession
    output: BackgroundTask
    input: Optional[BackgroundTask] = None

    @property
    def tasks(self) -> list[BackgroundTask]:
        return [self.output] if self.input is None else [self.output, self.input]

    def close(self) -> None:
        """Close the input channel, and the output stream once its pump ended.

        An output stream still being read by the pump is left to the pump.
        """
        if self.output.done():
            self.session.close()
        elif self.session.input is not None:
            self.session.input.close()


class StreamDuplexer:
    """Pumps bytes between the controlling terminal and a container."""

    def __init__(
        self,
        engine: EngineClientPort,
        stdout: Optional[BinaryIO] = None,
        stderr: Optional[BinaryIO] = None,
        stdin: Optional[Iterable[bytes]] = None,
        metrics: Optional[MetricsRegistry] = None,
    ) -> None:
        """Initialize duplexer.

        Args:
            engine: Engine client.
            stdout: Byte sink for STDOUT and CONSOLE chunks.
            stderr: Byte sink for STDERR chunks.
            stdin: Source of input lines as bytes.
            metrics: Metrics registry, the global one if None.
        """
        self._engine = engine
        self._stdout = stdout
        self._stderr = stderr
        self._stdin = stdin
        self._metrics = metrics or get_metrics()

    def attach(
        self,
        container: ContainerRef,
        interactive: bool = False,
        token: Optional[CancellationToken] = None,
    ) -> AttachedContainer:
        """Attach to a container and start the relay tasks.

        The first task pumps output and ends when the container closes its
        output. With ``interactive`` a second task forwards terminal input;
        it only ends on cancellation or end of input.

        Args:
            container: Container to attach to.
            interactive: Also forward stdin.
            token: Cancellation token shared by both tasks.

        Returns:
            The session with its started tasks. The caller closes it.

        Raises:
            EngineCallFailed: If the attach itself fails.
            ValueError: If input was requested but the session has none.
        """
        token = token or CancellationToken()
        session = self._engine.attach_container(
            container.container_id,
            AttachOptions(stdin=interactive, stdout=True, stderr=True),
        )
        logger.debug("attached", container=container.display(), interactive=interactive)

        if interactive and session.input is None:
            session.close()
            raise ValueError(f"Attach to {container.display()} returned no input channel")

        attached = AttachedContainer(
            session=session,
            output=BackgroundTask(
                f"output-{container.short_id}", self.pump_output, session.output, token=token
            ).start(),
        )
        if interactive:
            attached.input = BackgroundTask(
                f"input-{container.short_id}", self.forward_input, session.input, token, token=token
            ).start()
        return attached

    def pump_output(self, chunks: Iterable[OutputChunk]) -> int:
        """Write every chunk to the sink matching its tag.

        Returns:
            Number of bytes relayed.
        """
        stdout = self._stdout or _binary(sys.stdout)
        stderr = self._stderr or _binary(sys.stderr)
        relayed = 0
        for chunk in chunks:
            if chunk.kind in (StreamKind.STDOUT, StreamKind.CONSOLE):
                sink = stdout
            elif chunk.kind is StreamKind.STDERR:
                sink = stderr
            else:
                # Input echo is not expected on an output stream
                logger.debug("dropping input echo chunk", size=len(chunk.data))
                continue
            sink.write(chunk.data)
            sink.flush()
            relayed += len(chunk.data)
            self._metrics.stream_bytes_total.labels(direction="output").inc(len(chunk.data))
        return relayed

    def forward_input(self, sink: InputSink, token: CancellationToken) -> int:
        """Forward terminal lines into the container until cancelled.

        Returns:
            Number of bytes forwarded.
        """
        source = self._stdin if self._stdin is not None else _binary(sys.stdin)
        forwarded = 0
        for line in source:
            if token.cancelled:
                break
            try:
                sink.write(line)
            except EngineCallFailed:
                # Input closed under us after cancellation
                if token.cancelled:
                    break
                raise
            forwarded += len(line)
            self._metrics.stream_bytes_total.labels(direction="input").inc(len(line))
        return forwarded
