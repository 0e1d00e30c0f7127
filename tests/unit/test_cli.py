"""Unit tests for the fleetctl command-line adapter."""

import io

import pytest

from container_fleet.adapters.inbound.cli import (
    EXIT_FAILURE,
    EXIT_OK,
    EXIT_USAGE,
    build_parser,
    format_created,
    format_size,
    main,
    summary_row,
)
from container_fleet.domain.entities.container import ContainerSummary, EngineEvent, ImageDeleteItem


@pytest.fixture
def err() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def fleetctl(engine, test_config, out, err):
    """Run fleetctl against the mock engine and return the exit code."""

    def _run(*argv: str) -> int:
        return main(list(argv), engine=engine, config=test_config, out=out, err=err)

    return _run


@pytest.mark.unit
class TestFormatting:
    """Listing column formatting."""

    @pytest.mark.parametrize(
        "size,expected",
        [
            (0, "0B"),
            (1000, "1000B"),
            (1125, "1.12kB"),
            (1_500_000, "1.50MB"),
            (2_000_000_001, "2.00GB"),
            (3 * 1000 ** 5 + 1, "3.00PB"),
        ],
    )
    def test_format_size(self, size, expected):
        assert format_size(size) == expected

    def test_format_created(self):
        assert format_created(None) == ""
        assert format_created(1000, now=1000 + 5 * 60 + 30) == "5 minutes ago"

    def test_summary_row_with_size(self):
        summary = ContainerSummary(
            container_id="4f66ad9a0b2e" + "0" * 52,
            names=["/web"],
            image="nginx",
            command="nginx -g",
            status="Up",
            ports=["0.0.0.0:8080->80/tcp"],
            size_rw=1125,
            size_root_fs=2_000_000,
        )
        row = summary_row(summary, with_size=True)
        assert row[0] == "4f66ad9a0b2e"
        assert row[5] == "0.0.0.0:8080->80/tcp"
        assert row[6] == "web"
        assert row[7] == "1.12kB (virtual 2.00MB)"


@pytest.mark.unit
class TestParser:
    """Argument parsing."""

    def test_requires_command(self):
        with pytest.raises(SystemExit) as info:
            build_parser().parse_args([])
        assert info.value.code == 2

    def test_repeated_publish(self):
        args = build_parser().parse_args(["run", "nginx", "-p", "80", "-p", "443:8080", "--rm"])
        assert args.publish == ["80", "443:8080"]
        assert args.rm is True

    def test_start_flags(self):
        args = build_parser().parse_args(["start", "-a", "-i", "web"])
        assert args.attach and args.interactive
        assert args.containers == ["web"]


@pytest.mark.unit
class TestMain:
    """Exit codes and command output."""

    def test_stop_prints_each_target(self, engine, fleetctl, out):
        engine.add_container("web-1")
        engine.add_container("web-2")
        assert fleetctl("stop", "web-1", "web-2") == EXIT_OK
        assert sorted(out.getvalue().splitlines()) == ["web-1", "web-2"]

    def test_partial_failure_exits_one(self, engine, fleetctl, out, err):
        """Test that good targets still print when another fails."""
        engine.add_container("a")
        engine.add_container("c")
        assert fleetctl("stop", "a", "b", "c") == EXIT_FAILURE
        assert sorted(out.getvalue().splitlines()) == ["a", "c"]
        assert "b" in err.getvalue()
        assert sorted(engine.calls_for("stop_container")) == ["a", "b", "c"]

    def test_bad_port_spec_exits_two_before_engine_call(self, engine, fleetctl, err):
        assert fleetctl("run", "nginx", "-p", "1:2:3:4") == EXIT_USAGE
        assert "1:2:3:4" in err.getvalue()
        assert engine.calls == []

    def test_multi_attach_exits_two_before_engine_call(self, engine, fleetctl, err):
        engine.add_container("a")
        engine.add_container("b")
        assert fleetctl("start", "-i", "a", "b") == EXIT_USAGE
        assert engine.calls == []
        assert "Error:" in err.getvalue()

    def test_bad_filter_exits_two(self, fleetctl):
        assert fleetctl("ps", "--filter", "status") == EXIT_USAGE

    def test_ps(self, engine, fleetctl, out):
        engine.add_container("web", image="nginx")
        engine.add_container("old", status="exited")
        assert fleetctl("ps") == EXIT_OK
        text = out.getvalue()
        assert "CONTAINER ID" in text
        assert "nginx" in text
        assert "old" not in text

    def test_ps_all(self, engine, fleetctl, out):
        engine.add_container("old", status="exited")
        assert fleetctl("ps", "-a") == EXIT_OK
        assert "old" in out.getvalue()

    def test_rm_force(self, engine, fleetctl, out):
        engine.add_container("web")
        assert fleetctl("rm", "-f", "web") == EXIT_OK
        assert out.getvalue() == "web\n"

    def test_rmi(self, engine, fleetctl, out):
        engine.add_image("alpine:3.19", [ImageDeleteItem(untagged="alpine:3.19"), ImageDeleteItem(deleted="sha256:9")])
        assert fleetctl("rmi", "alpine:3.19") == EXIT_OK
        assert out.getvalue() == "alpine:3.19\nUntagged: alpine:3.19\nDeleted: sha256:9\n"

    def test_run_with_auto_remove(self, engine, fleetctl):
        engine.add_image("alpine")
        assert fleetctl("run", "alpine", "--name", "job", "--rm") == EXIT_OK
        assert [op for op, _ in engine.calls] == [
            "create_container",
            "attach_container",
            "start_container",
            "remove_container",
        ]

    def test_events(self, engine, fleetctl, out):
        engine.push_event(EngineEvent("container", "start", "abc", timestamp=1))
        engine.push_event(EngineEvent("image", "pull", "alpine", timestamp=2))
        engine.end_events()
        assert fleetctl("events", "--filter", "type=container") == EXIT_OK
        assert out.getvalue() == "1 container start abc\n"

    def test_engine_failure_exits_one(self, engine, fleetctl, err):
        engine.fail("list_containers", reason="daemon unreachable")
        assert fleetctl("ps") == EXIT_FAILURE
        assert "daemon unreachable" in err.getvalue()

    def test_attached_output_failure_exits_one(self, engine, fleetctl, out, err):
        """Test a stream that breaks after start is reported, not swallowed."""
        engine.add_container("web", status="created")
        engine.fail("read_output", "web", "connection reset")
        assert fleetctl("start", "-a", "web") == EXIT_FAILURE
        assert out.getvalue() == "web\n"
        assert "connection reset" in err.getvalue()

    def test_injected_engine_is_not_closed(self, engine, fleetctl):
        fleetctl("ps")
        assert not engine.closed

    def test_mock_flag(self, test_config, out, err):
        assert main(["--mock", "ps", "-a"], config=test_config, out=out, err=err) == EXIT_OK
        assert test_config.engine.use_mock is False
