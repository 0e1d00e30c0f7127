"""Inbound adapters for the container fleet.

Provides the command-line adapter.
"""

from container_fleet.adapters.inbound.cli import build_parser, main

__all__ = ["build_parser", "main"]
