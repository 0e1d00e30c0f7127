"""Unit tests for background tasks, terminal control and the DI container."""

import io
import signal
import threading

import pytest

from container_fleet.adapters.outbound.mock_engine_client import MockEngineClient
from container_fleet.infrastructure.config import Config, EngineConfig
from container_fleet.infrastructure.container import Container, build_container
from container_fleet.infrastructure.metrics import MetricsRegistry
from container_fleet.infrastructure.tasks import BackgroundTask, CancellationToken
from container_fleet.infrastructure.terminal import AlternateScreen, Term
from container_fleet.ports.outbound import EngineClientPort


@pytest.mark.unit
class TestCancellationToken:
    """Tests for CancellationToken."""

    def test_initially_not_cancelled(self):
        token = CancellationToken()
        assert not token.cancelled
        assert token.wait(0.01) is False

    def test_cancel_ends_wait(self):
        token = CancellationToken()
        token.cancel()
        assert token.cancelled
        assert token.wait(5) is True


@pytest.mark.unit
class TestBackgroundTask:
    """Tests for BackgroundTask."""

    def test_join_returns_result(self):
        task = BackgroundTask("add", lambda a, b: a + b, 1, 2).start()
        assert task.join(timeout=2) == 3
        assert task.done()
        assert task.exception() is None

    def test_join_reraises(self):
        """Test that the target's error surfaces in the joiner."""

        def boom():
            raise RuntimeError("boom")

        task = BackgroundTask("boom", boom).start()
        with pytest.raises(RuntimeError, match="boom"):
            task.join(timeout=2)
        assert isinstance(task.exception(), RuntimeError)

    def test_join_timeout(self):
        release = threading.Event()
        task = BackgroundTask("wait", release.wait).start()
        with pytest.raises(TimeoutError):
            task.join(timeout=0.01)
        assert not task.done()
        release.set()
        task.join(timeout=2)

    def test_cancel_sets_shared_token(self):
        token = CancellationToken()
        task = BackgroundTask("loop", token.wait, token=token).start()
        task.cancel()
        assert task.join(timeout=2) is True
        assert token.cancelled

    def test_not_done_before_start(self):
        assert not BackgroundTask("idle", lambda: None).done()


@pytest.mark.unit
class TestAlternateScreen:
    """Tests for AlternateScreen."""

    def test_enter_and_leave(self):
        stream = io.StringIO()
        with AlternateScreen(stream, install_handler=False):
            stream.write("frame")
        assert stream.getvalue() == Term.ALT_SCREEN + "frame" + Term.MAIN_SCREEN

    def test_restores_on_error(self):
        """Test the main screen comes back when the body raises."""
        stream = io.StringIO()
        with pytest.raises(RuntimeError):
            with AlternateScreen(stream, install_handler=False):
                raise RuntimeError("render failed")
        assert stream.getvalue().endswith(Term.MAIN_SCREEN)

    def test_restore_is_idempotent(self):
        stream = io.StringIO()
        with AlternateScreen(stream, install_handler=False) as screen:
            screen.restore()
        assert stream.getvalue().count(Term.MAIN_SCREEN) == 1

    def test_interrupt_restores_then_exits(self):
        """Test the SIGINT handler restores the screen and exits with 0."""
        stream = io.StringIO()
        exits = []
        previous = signal.getsignal(signal.SIGINT)
        with AlternateScreen(stream, exit_process=exits.append) as screen:
            assert signal.getsignal(signal.SIGINT) == screen._on_interrupt
            screen._on_interrupt(signal.SIGINT, None)
            assert exits == [0]
            assert stream.getvalue().endswith(Term.MAIN_SCREEN)
        assert signal.getsignal(signal.SIGINT) == previous
        assert stream.getvalue().count(Term.MAIN_SCREEN) == 1


@pytest.mark.unit
class TestContainer:
    """Tests for the DI container."""

    def test_resolves_injected_engine(self, container, engine):
        assert container.resolve(EngineClientPort) is engine
        assert isinstance(container.resolve(Config), Config)
        assert isinstance(container.resolve(MetricsRegistry), MetricsRegistry)

    def test_mock_engine_from_config(self, metrics_registry):
        config = Config(engine=EngineConfig(use_mock=True))
        c = build_container(config, metrics=metrics_registry)
        engine = c.resolve(EngineClientPort)
        assert isinstance(engine, MockEngineClient)
        assert c.resolve(EngineClientPort) is engine

    def test_clear_closes_engine(self, engine, test_config, metrics_registry):
        c = build_container(test_config, engine=engine, metrics=metrics_registry)
        c.clear()
        assert engine.closed
        assert not c.has(EngineClientPort)

    def test_factory_not_built_until_resolved(self, metrics_registry):
        built = []
        c = Container()
        c.register_factory(str, lambda _: built.append(1) or "value")
        assert c.has(str)
        assert built == []
        assert c.resolve(str) == "value"
        assert c.resolve(str) == "value"
        assert built == [1]

    def test_unknown_interface(self):
        with pytest.raises(KeyError):
            Container().resolve(int)
