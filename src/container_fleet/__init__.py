"""
Container Fleet - batched lifecycle control and live metrics for a container engine

Fans start/stop/remove operations out across many containers, relays
interactive I/O with a running container, and renders a live stats
dashboard for every container on one engine endpoint.
"""

__version__ = "0.1.0"
