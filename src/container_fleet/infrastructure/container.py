"""Dependency injection container.

The engine client variant (Docker or mock) is chosen here, once, when
the container is built.
"""

from __future__ import annotations

from typing import Any, Callable, TypeVar

from container_fleet.infrastructure.config import Config
from container_fleet.infrastructure.metrics import MetricsRegistry, get_metrics
from container_fleet.ports.outbound import EngineClientPort

T = TypeVar("T")


class Container:
    """Simple dependency injection container."""

    def __init__(self) -> None:
        self._factories: dict[type, Callable[[Container], Any]] = {}
        self._instances: dict[type, Any] = {}

    def register_singleton(self, interface: type[T], instance: T) -> None:
        """Register a ready-made instance."""
        self._instances[interface] = instance

    def register_factory(self, interface: type[T], factory: Callable[[Container], T]) -> None:
        """Register a factory, called once on first resolve."""
        self._factories[interface] = factory

    def resolve(self, interface: type[T]) -> T:
        """Resolve a dependency."""
        if interface in self._instances:
            return self._instances[interface]
        if interface in self._factories:
            instance = self._factories[interface](self)
            self._instances[interface] = instance
            return instance
        raise KeyError(f"No registration found for {interface}")

    def has(self, interface: type) -> bool:
        """Check if an interface is registered."""
        return interface in self._factories or interface in self._instances

    def clear(self) -> None:
        """Close the engine client if it was built, then drop everything."""
        engine = self._instances.get(EngineClientPort)
        if engine is not None:
            engine.close()
        self._factories.clear()
        self._instances.clear()


def _engine_factory(container: Container) -> EngineClientPort:
    config = container.resolve(Config)
    if config.engine.use_mock:
        from container_fleet.adapters.outbound.mock_engine_client import MockEngineClient

        return MockEngineClient()

    from container_fleet.adapters.outbound.docker_engine_client import DockerEngineClient

    return DockerEngineClient.from_config(config.engine)


def build_container(
    config: Config,
    engine: EngineClientPort | None = None,
    metrics: MetricsRegistry | None = None,
) -> Container:
    """Wire config, metrics and the engine client.

    Args:
        config: Fleet configuration.
        engine: Pre-built engine client; chosen from config if None.
        metrics: Metrics registry; the global one if None.
    """
    container = Container()
    container.register_singleton(Config, config)
    container.register_singleton(MetricsRegistry, metrics or get_metrics())
    if engine is not None:
        container.register_singleton(EngineClientPort, engine)
    else:
        container.register_factory(EngineClientPort, _engine_factory)
    return container

