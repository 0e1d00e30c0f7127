"""Pytest configuration and fixtures for container_fleet tests."""

from __future__ import annotations

import io
import tempfile
import time
from pathlib import Path
from typing import Callable, Generator

import pytest
from prometheus_client import CollectorRegistry

from container_fleet.adapters.outbound.mock_engine_client import MockEngineClient
from container_fleet.infrastructure.config import Config, StatsConfig
from container_fleet.infrastructure.container import Container, build_container
from container_fleet.infrastructure.metrics import MetricsRegistry


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def test_config() -> Config:
    """Provide a test configuration with fast stats ticks."""
    return Config(
        stats=StatsConfig(
            discovery_interval_seconds=0.05,
            render_interval_seconds=0.01,
            keep_screen=True,
        )
    )


@pytest.fixture
def metrics_registry() -> MetricsRegistry:
    """Provide a fresh metrics registry."""
    registry = CollectorRegistry(auto_describe=True)
    return MetricsRegistry(registry=registry)


@pytest.fixture
def engine() -> MockEngineClient:
    """Provide an empty in-memory engine."""
    return MockEngineClient()


@pytest.fixture
def container(
    test_config: Config, engine: MockEngineClient, metrics_registry: MetricsRegistry
) -> Generator[Container, None, None]:
    """Provide a DI container wired to the mock engine."""
    c = build_container(test_config, engine=engine, metrics=metrics_registry)
    yield c
    c.clear()


@pytest.fixture
def out() -> io.StringIO:
    """Capture command output."""
    return io.StringIO()


@pytest.fixture
def wait_for() -> Callable[..., bool]:
    """Poll a condition until it holds or a deadline passes."""

    def _wait(condition: Callable[[], bool], timeout: float = 2.0, interval: float = 0.005) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if condition():
                return True
            time.sleep(interval)
        return condition()

    return _wait


def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
