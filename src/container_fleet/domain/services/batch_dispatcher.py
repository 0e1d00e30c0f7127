"""Batch dispatcher.

Fans one lifecycle operation out across many targets:
1. One unit of work per target, all submitted up front
2. Every unit runs to completion; a failure never cancels a sibling
3. Successes are printed to stdout as they arrive, failures are logged
4. The batch fails as a whole only after every target was attempted
"""

from __future__ import annotations

import contextvars
import sys
import time
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from typing import Any, Callable, Iterable, Optional, TextIO

from container_fleet.infrastructure.logging import get_logger
from container_fleet.infrastructure.metrics import MetricsRegistry, get_metrics
from container_fleet.infrastructure.tracing import mark_failed, trace_span
from container_fleet.ports.inbound import BatchFailed, BatchOutcome, BatchReport

logger = get_logger(__name__)

Operation = Callable[[str], Any]
Describe = Callable[[str, Any], Iterable[str]]


def describe_target(target: str, output: Any) -> list[str]:
    """Default success line: the target identifier alone."""
    return [target]


class BatchDispatcher:
    """Concurrent run-all-then-decide dispatcher."""

    def __init__(
        self,
        max_workers: int = 16,
        out: Optional[TextIO] = None,
        metrics: Optional[MetricsRegistry] = None,
    ) -> None:
        """Initialize dispatcher.

        Args:
            max_workers: Upper bound on concurrent units.
            out: Stream for success lines, stdout if None.
            metrics: Metrics registry, the global one if None.
        """
        self._max_workers = max_workers
        self._out = out
        self._metrics = metrics or get_metrics()

    def run_all(
        self,
        operation: str,
        targets: list[str],
        op: Operation,
        describe: Describe = describe_target,
    ) -> BatchReport:
        """Run ``op`` against every target and collect the outcomes.

        Never raises for per-target failures.

        Args:
            operation: Operation name for logs and metrics.
            targets: Target identifiers, one unit each.
            op: Callable applied to each target.
            describe: Renders the success lines for one outcome.

        Returns:
            Report with exactly one outcome per target.
        """
        report = BatchReport(operation=operation)
        if not targets:
            return report

        out = self._out or sys.stdout
        started = time.monotonic()
        workers = min(self._max_workers, len(targets))

        with trace_span("fleet.batch", {"operation": operation, "targets": len(targets)}):
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix=f"batch-{operation}") as pool:
                # One context copy per unit keeps each unit span under the batch span
                futures: dict[Future, str] = {
                    pool.submit(contextvars.copy_context().run, self._run_unit, operation, target, op): target
                    for target in targets
                }
                for future in as_completed(futures):
                    outcome = future.result()
                    report.outcomes.append(outcome)
                    self._report(operation, outcome, describe, out)

        self._metrics.batch_duration_seconds.labels(operation=operation).observe(
            time.monotonic() - started
        )
        return report

    def dispatch(
        self,
        operation: str,
        targets: list[str],
        op: Operation,
        describe: Describe = describe_target,
    ) -> BatchReport:
        """Run the batch and fail if any unit failed.

        Raises:
            BatchFailed: After all units finished, if at least one failed.
        """
        report = self.run_all(operation, targets, op, describe)
        if report.failed:
            raise BatchFailed(report)
        return report

    def _run_unit(self, operation: str, target: str, op: Operation) -> BatchOutcome:
        """Run one unit; the error is kept, never raised."""
        with trace_span(f"fleet.{operation}", {"target": target}) as span:
            try:
                output = op(target)
            except Exception as exc:
                mark_failed(span, exc)
                return BatchOutcome(target=target, error=exc)
        return BatchOutcome(target=target, output=output)

    def _report(self, operation: str, outcome: BatchOutcome, describe: Describe, out: TextIO) -> None:
        if outcome.ok:
            self._metrics.batch_units_total.labels(operation=operation, status="success").inc()
            for line in describe(outcome.target, outcome.output):
                out.write(f"{line}\n")
            out.flush()
        else:
            self._metrics.batch_units_total.labels(operation=operation, status="error").inc()
            logger.error(
                f"{operation} failed",
                target=outcome.target,
                error=str(outcome.error),
            )
