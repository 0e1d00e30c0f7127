"""Unit tests for the batch dispatcher."""

import io
import threading

import pytest
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from container_fleet.domain.services.batch_dispatcher import BatchDispatcher
from container_fleet.infrastructure import tracing
from container_fleet.ports.inbound import BatchFailed
from container_fleet.ports.outbound import EngineCallFailed


@pytest.mark.unit
class TestBatchDispatcher:
    """Run-all-then-decide semantics."""

    def test_all_succeed(self, metrics_registry):
        """Test one success line per target and no error."""
        out = io.StringIO()
        dispatcher = BatchDispatcher(out=out, metrics=metrics_registry)
        report = dispatcher.dispatch("stop", ["a", "b", "c"], lambda target: None)

        assert sorted(out.getvalue().splitlines()) == ["a", "b", "c"]
        assert len(report.succeeded) == 3
        assert report.failed == []

    def test_one_failure_fails_batch_after_all_attempted(self, metrics_registry):
        """Test that a failing unit never cancels its siblings."""
        out = io.StringIO()
        attempted = []
        lock = threading.Lock()

        def op(target):
            with lock:
                attempted.append(target)
            if target == "b":
                raise EngineCallFailed("stop_container", target, "no such container")

        dispatcher = BatchDispatcher(out=out, metrics=metrics_registry)
        with pytest.raises(BatchFailed) as info:
            dispatcher.dispatch("stop", ["a", "b", "c"], op)

        assert sorted(attempted) == ["a", "b", "c"]
        assert sorted(out.getvalue().splitlines()) == ["a", "c"]
        report = info.value.report
        assert [o.target for o in report.failed] == ["b"]
        assert len(report.outcomes) == 3
        assert "b" in str(info.value)

    def test_run_all_never_raises(self, metrics_registry):
        dispatcher = BatchDispatcher(out=io.StringIO(), metrics=metrics_registry)

        def op(target):
            raise RuntimeError("boom")

        report = dispatcher.run_all("remove", ["x", "y"], op)
        assert sorted(o.target for o in report.failed) == ["x", "y"]
        assert all(isinstance(o.error, RuntimeError) for o in report.failed)

    def test_units_run_concurrently(self, metrics_registry):
        """Test that units overlap in time."""
        barrier = threading.Barrier(3, timeout=2)
        dispatcher = BatchDispatcher(max_workers=3, out=io.StringIO(), metrics=metrics_registry)
        report = dispatcher.dispatch("start", ["a", "b", "c"], lambda target: barrier.wait())
        assert len(report.succeeded) == 3

    def test_custom_describe(self, metrics_registry):
        out = io.StringIO()
        dispatcher = BatchDispatcher(out=out, metrics=metrics_registry)
        dispatcher.dispatch(
            "remove_image",
            ["alpine"],
            lambda image: ["sha256:1"],
            describe=lambda target, output: [target, *output],
        )
        assert out.getvalue() == "alpine\nsha256:1\n"

    def test_empty_batch(self, metrics_registry):
        out = io.StringIO()
        report = BatchDispatcher(out=out, metrics=metrics_registry).dispatch("stop", [], lambda t: None)
        assert report.outcomes == []
        assert out.getvalue() == ""

    def test_metrics_count_outcomes(self, metrics_registry):
        """Test success and error counters."""
        dispatcher = BatchDispatcher(out=io.StringIO(), metrics=metrics_registry)

        def op(target):
            if target == "bad":
                raise RuntimeError("boom")

        dispatcher.run_all("stop", ["ok1", "ok2", "bad"], op)
        registry = metrics_registry._registry
        assert registry.get_sample_value(
            "fleet_batch_units_total", {"operation": "stop", "status": "success"}
        ) == 2
        assert registry.get_sample_value(
            "fleet_batch_units_total", {"operation": "stop", "status": "error"}
        ) == 1

    def test_unit_spans_are_children_of_batch_span(self, metrics_registry, monkeypatch):
        """Test that pool threads inherit the batch span's context."""
        exporter = InMemorySpanExporter()
        provider = TracerProvider()
        provider.add_span_processor(SimpleSpanProcessor(exporter))
        monkeypatch.setattr(tracing, "_tracer", provider.get_tracer("test"))

        dispatcher = BatchDispatcher(max_workers=3, out=io.StringIO(), metrics=metrics_registry)
        dispatcher.run_all("stop", ["a", "b", "c"], lambda target: None)

        spans = exporter.get_finished_spans()
        batch = next(s for s in spans if s.name == "fleet.batch")
        units = [s for s in spans if s.name == "fleet.stop"]
        assert len(units) == 3
        assert all(s.parent is not None for s in units)
        assert {s.parent.span_id for s in units} == {batch.context.span_id}
        assert {s.context.trace_id for s in units} == {batch.context.trace_id}
