"""Outbound adapters - Implementations of the engine client port.

Provides the Docker-backed client and an in-memory mock for testing and
development without a daemon.
"""

from container_fleet.adapters.outbound.docker_engine_client import DockerEngineClient
from container_fleet.adapters.outbound.mock_engine_client import (
    MockContainerState,
    MockEngineClient,
    MockInputSink,
)

__all__ = [
    # Docker
    "DockerEngineClient",
    # Mock
    "MockEngineClient",
    "MockContainerState",
    "MockInputSink",
]
