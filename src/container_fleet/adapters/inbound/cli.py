"""Command-line adapter for the container fleet.

Usage:
    fleetctl run alpine --name web -p 8080:80 --rm
    fleetctl start web-1 web-2
    fleetctl start -a -i web-1
    fleetctl stop web-1 web-2
    fleetctl rm -f web-1 web-2
    fleetctl rmi alpine:3.19
    fleetctl stats [--keep-screen]
    fleetctl ps -a --filter status=exited
    fleetctl logs -f --tail 20 web-1
    fleetctl events --filter type=container

Exit codes: 0 success, 1 engine or batch failure, 2 usage error,
130 interrupted.
"""

from __future__ import annotations

import argparse
import sys
import time
from typing import Callable, Optional, Sequence, TextIO

from rich.console import Console
from rich.table import Table

from container_fleet import __version__
from container_fleet.application.fleet import FleetOperator
from container_fleet.domain.entities.container import ContainerSummary, LaunchConfig
from container_fleet.domain.value_objects.identifiers import parse_filters, short_id
from container_fleet.domain.value_objects.port_spec import InvalidPortSpec, parse_port_specs
from container_fleet.infrastructure.config import Config, get_config
from container_fleet.infrastructure.container import build_container
from container_fleet.infrastructure.logging import bind_command, get_logger, setup_logging
from container_fleet.infrastructure.metrics import MetricsRegistry, setup_metrics
from container_fleet.infrastructure.tracing import setup_tracing
from container_fleet.ports.inbound import BatchFailed, MultiAttachUnsupported
from container_fleet.ports.outbound import (
    EngineCallFailed,
    EngineClientPort,
    ListContainersOptions,
    LogOptions,
    RemoveContainerOptions,
    RemoveImageOptions,
)

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2
EXIT_INTERRUPTED = 130


# =============================================================================
# Formatting
# =============================================================================

_SIZE_UNITS = ((1000 ** 4, "TB"), (1000 ** 3, "GB"), (1000 ** 2, "MB"), (1000, "kB"))


def format_size(size: int) -> str:
    """Decimal size with two digits, e.g. ``1125 -> 1.12kB``."""
    if size <= 1000:
        return f"{size}B"
    if size > 1000 ** 5:
        return f"{size / 1000 ** 5:.2f}PB"
    for factor, unit in _SIZE_UNITS:
        if size > factor:
            return f"{size / factor:.2f}{unit}"
    return f"{size}B"


def format_created(created: int | None, now: float | None = None) -> str:
    if created is None:
        return ""
    minutes = int(((now or time.time()) - created) // 60)
    return f"{minutes} minutes ago"


def summary_row(summary: ContainerSummary, with_size: bool = False) -> list[str]:
    row = [
        short_id(summary.container_id),
        summary.image,
        summary.command,
        format_created(summary.created),
        summary.status,
        ", ".join(summary.ports),
        ", ".join(name.lstrip("/") for name in summary.names),
    ]
    if with_size:
        rw = format_size(summary.size_rw or 0)
        root = format_size(summary.size_root_fs or 0)
        row.append(f"{rw} (virtual {root})")
    return row


def render_summaries(summaries: list[ContainerSummary], out: TextIO, with_size: bool = False) -> None:
    table = Table(box=None, padding=(0, 2), show_edge=False)
    headers = ["CONTAINER ID", "IMAGE", "COMMAND", "CREATED", "STATUS", "PORTS", "NAMES"]
    if with_size:
        headers.append("SIZE")
    for header in headers:
        table.add_column(header, no_wrap=True)
    for summary in summaries:
        table.add_row(*summary_row(summary, with_size))
    Console(file=out, width=250, highlight=False).print(table)


# =============================================================================
# Commands
# =============================================================================


def cmd_run(fleet: FleetOperator, args: argparse.Namespace) -> int:
    ports = parse_port_specs(args.publish)
    ports.merge_exposed(parse_port_specs(args.expose).exposed_ports())
    config = LaunchConfig(
        image=args.image,
        name=args.name,
        network=args.network,
        volumes=list(args.volume),
        ports=ports,
        auto_remove=args.rm,
    )
    fleet.run(config)
    return EXIT_OK


def cmd_start(fleet: FleetOperator, args: argparse.Namespace) -> int:
    fleet.start(args.containers, attach=args.attach, interactive=args.interactive)
    return EXIT_OK


def cmd_stop(fleet: FleetOperator, args: argparse.Namespace) -> int:
    fleet.stop(args.containers, timeout=args.time)
    return EXIT_OK


def cmd_rm(fleet: FleetOperator, args: argparse.Namespace) -> int:
    options = RemoveContainerOptions(force=args.force, volumes=args.volumes, link=args.link)
    fleet.remove(args.containers, options)
    return EXIT_OK


def cmd_rmi(fleet: FleetOperator, args: argparse.Namespace) -> int:
    fleet.remove_images(args.images, RemoveImageOptions(force=args.force, noprune=args.no_prune))
    return EXIT_OK


def cmd_stats(fleet: FleetOperator, args: argparse.Namespace) -> int:
    fleet.stats(keep_screen=args.keep_screen)
    return EXIT_OK


def cmd_ps(fleet: FleetOperator, args: argparse.Namespace) -> int:
    options = ListContainersOptions(all=args.all, size=args.size, filters=parse_filters(args.filter))
    render_summaries(fleet.list(options), fleet.out, with_size=args.size)
    return EXIT_OK


def cmd_logs(fleet: FleetOperator, args: argparse.Namespace) -> int:
    fleet.logs(args.container, LogOptions(follow=args.follow, tail=args.tail, timestamps=args.timestamps))
    return EXIT_OK


def cmd_events(fleet: FleetOperator, args: argparse.Namespace) -> int:
    fleet.events(parse_filters(args.filter))
    return EXIT_OK


# =============================================================================
# Parser
# =============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fleetctl",
        description="Batched lifecycle control and live stats for a container engine",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--mock", action="store_true", help="Use the in-memory engine")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Create and run a new container from an image")
    run.add_argument("image", help="The image to create the container from")
    run.add_argument("--name", help="Assign a name to the container")
    run.add_argument("--network", help="Connect a container to a network")
    run.add_argument("-v", "--volume", action="append", default=[], help="Bind mount a volume")
    run.add_argument("-p", "--publish", action="append", default=[],
                     help="Publish a container port: [[hostIP:]hostPort:]containerPort")
    run.add_argument("--expose", action="append", default=[], help="Expose a port without publishing it")
    run.add_argument("--rm", action="store_true", help="Automatically remove the container when it exits")
    run.set_defaults(handler=cmd_run)

    start = sub.add_parser("start", help="Start one or more containers")
    start.add_argument("containers", nargs="+")
    start.add_argument("-a", "--attach", action="store_true", help="Attach stdout/stderr")
    start.add_argument("-i", "--interactive", action="store_true", help="Attach stdin")
    start.set_defaults(handler=cmd_start)

    stop = sub.add_parser("stop", help="Stop one or more containers")
    stop.add_argument("containers", nargs="+")
    stop.add_argument("-t", "--time", type=int, default=None, help="Seconds to wait before killing")
    stop.set_defaults(handler=cmd_stop)

    rm = sub.add_parser("rm", help="Remove one or more containers")
    rm.add_argument("containers", nargs="+")
    rm.add_argument("-f", "--force", action="store_true", help="Kill running containers first")
    rm.add_argument("-v", "--volumes", action="store_true", help="Remove anonymous volumes")
    rm.add_argument("-l", "--link", action="store_true", help="Remove the specified link")
    rm.set_defaults(handler=cmd_rm)

    rmi = sub.add_parser("rmi", help="Remove one or more images")
    rmi.add_argument("images", nargs="+")
    rmi.add_argument("-f", "--force", action="store_true", help="Force removal")
    rmi.add_argument("--no-prune", action="store_true", help="Do not delete untagged parents")
    rmi.set_defaults(handler=cmd_rmi)

    stats = sub.add_parser("stats", help="Live resource usage of every container")
    stats.add_argument("--keep-screen", action="store_true", help="Do not clear the screen between refreshes")
    stats.set_defaults(handler=cmd_stats)

    ps = sub.add_parser("ps", help="List containers")
    ps.add_argument("-a", "--all", action="store_true", help="Show stopped containers too")
    ps.add_argument("-s", "--size", action="store_true", help="Display total file sizes")
    ps.add_argument("-f", "--filter", action="append", default=[], help="Filter output (key=value)")
    ps.set_defaults(handler=cmd_ps)

    logs = sub.add_parser("logs", help="Fetch the logs of a container")
    logs.add_argument("container")
    logs.add_argument("-f", "--follow", action="store_true", help="Follow log output")
    logs.add_argument("-n", "--tail", type=int, default=None, help="Lines to show from the end")
    logs.add_argument("-t", "--timestamps", action="store_true", help="Show timestamps")
    logs.set_defaults(handler=cmd_logs)

    events = sub.add_parser("events", help="Stream engine events")
    events.add_argument("-f", "--filter", action="append", default=[], help="Filter events (key=value)")
    events.set_defaults(handler=cmd_events)

    return parser


def _setup_observability(config: Config) -> Optional[MetricsRegistry]:
    observability = config.observability
    if observability.otel_endpoint:
        setup_tracing(observability.otel_service_name, observability.otel_endpoint)
    if observability.metrics_port:
        return setup_metrics(observability.metrics_port)
    return None


def main(
    argv: Optional[Sequence[str]] = None,
    engine: Optional[EngineClientPort] = None,
    config: Optional[Config] = None,
    out: Optional[TextIO] = None,
    err: Optional[TextIO] = None,
) -> int:
    """Parse arguments, wire the fleet and run one command.

    Args:
        argv: Arguments without the program name, sys.argv if None.
        engine: Engine client override, chosen from config if None.
        config: Configuration, from the environment if None.
        out: Command output stream, stdout if None.
        err: Error message stream, stderr if None.

    Returns:
        Process exit code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    err = err or sys.stderr

    config = (config or get_config()).model_copy(deep=True)
    if args.debug:
        config.observability.log_level = "DEBUG"
    if args.mock:
        config.engine.use_mock = True
    setup_logging(config.observability.log_level, config.observability.log_format)
    bind_command(args.command)

    handler: Callable[[FleetOperator, argparse.Namespace], int] = args.handler
    container = None
    try:
        metrics = _setup_observability(config)
        container = build_container(config, engine=engine, metrics=metrics)
        fleet = FleetOperator(
            container.resolve(EngineClientPort),
            config=config,
            out=out,
            metrics=container.resolve(MetricsRegistry),
        )
        return handler(fleet, args)
    except (InvalidPortSpec, MultiAttachUnsupported, ValueError) as exc:
        err.write(f"Error: {exc}\n")
        return EXIT_USAGE
    except BatchFailed as exc:
        err.write(f"Error: {exc}\n")
        return EXIT_FAILURE
    except EngineCallFailed as exc:
        logger.error("engine call failed", operation=exc.operation, target=exc.target, error=str(exc.cause))
        err.write(f"Error: {exc}\n")
        return EXIT_FAILURE
    except KeyboardInterrupt:
        return EXIT_INTERRUPTED
    finally:
        if container is not None and engine is None:
            container.clear()
