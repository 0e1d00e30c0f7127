"""Application layer for the container fleet.

Orchestrates domain services to provide one call per CLI command.
"""

from container_fleet.application.fleet import FleetOperator

__all__ = [
    "FleetOperator",
]
