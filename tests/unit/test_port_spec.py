"""Unit tests for port spec parsing."""

import pytest

from container_fleet.domain.value_objects.port_spec import (
    InvalidPortSpec,
    PortBinding,
    PortSpec,
    parse_port_spec,
    parse_port_specs,
)


@pytest.mark.unit
class TestParsePortSpec:
    """Test single and combined port specs."""

    def test_bare_port_is_exposed_only(self):
        spec = parse_port_specs(["80"])
        assert spec.ports == {"80": []}

    def test_host_port(self):
        spec = parse_port_specs(["443:8080"])
        assert spec.ports == {"8080": [PortBinding(host_ip=None, host_port="443")]}

    def test_host_ip_and_port(self):
        spec = parse_port_specs(["127.0.0.1:80:8080"])
        assert spec.ports == {"8080": [PortBinding(host_ip="127.0.0.1", host_port="80")]}

    def test_combined_preserves_order(self):
        spec = parse_port_specs(["80", "443:8080", "127.0.0.1:80:8080"])
        assert spec.ports == {
            "80": [],
            "8080": [
                PortBinding(host_ip=None, host_port="443"),
                PortBinding(host_ip="127.0.0.1", host_port="80"),
            ],
        }
        assert list(spec.ports) == ["80", "8080"]

    def test_bracketed_ipv6_host(self):
        spec = parse_port_specs(["[::]:443:8080"])
        assert spec["8080"] == [PortBinding(host_ip="[::]", host_port="443")]

    def test_empty_host_port_lets_engine_choose(self):
        spec = parse_port_specs(["127.0.0.1::8080"])
        assert spec["8080"] == [PortBinding(host_ip="127.0.0.1", host_port=None)]

    def test_protocol_suffix_is_kept(self):
        spec = parse_port_specs(["5353:53/udp"])
        assert "53/udp" in spec

    def test_accumulates_into_existing(self):
        spec = PortSpec()
        parse_port_spec("80", into=spec)
        parse_port_spec("8080:80", into=spec)
        assert spec["80"] == [PortBinding(host_port="8080")]

    def test_no_specs(self):
        assert len(parse_port_specs([])) == 0


@pytest.mark.unit
class TestInvalidPortSpec:
    """Malformed strings fail with InvalidPortSpec."""

    @pytest.mark.parametrize(
        "raw",
        ["", "   ", "1:2:3:4", "10.0.0.1:80:", ":80", "::80", "a:b:c:d:e"],
    )
    def test_rejected(self, raw):
        with pytest.raises(InvalidPortSpec) as info:
            parse_port_specs([raw])
        assert info.value.spec == raw

    def test_is_value_error(self):
        with pytest.raises(ValueError):
            parse_port_specs(["1:2:3:4"])

    def test_fails_on_first_bad_entry(self):
        with pytest.raises(InvalidPortSpec) as info:
            parse_port_specs(["80", "bad:1:2:3", "90"])
        assert info.value.spec == "bad:1:2:3"


@pytest.mark.unit
class TestRender:
    """Rendering a PortSpec and parsing it back."""

    def test_render_forms(self):
        spec = parse_port_specs(["80", "443:8080", "127.0.0.1:80:8080", "[::]::9000"])
        assert spec.render() == ["80", "443:8080", "127.0.0.1:80:8080", "[::]::9000"]

    def test_reparse_reproduces_bindings(self):
        spec = parse_port_specs(["80", "443:8080", "127.0.0.1:80:8080", "[::]:443:8443"])
        assert parse_port_specs(spec.render()).ports == spec.ports

    def test_bindings_skip_exposed_only(self):
        spec = parse_port_specs(["80", "443:8080"])
        assert spec.bindings() == {"8080": [PortBinding(host_port="443")]}
        assert spec.exposed_ports() == ["80", "8080"]

    def test_merge_exposed(self):
        spec = parse_port_specs(["443:8080"])
        spec.merge_exposed(["9000", "8080"])
        assert spec.exposed_ports() == ["8080", "9000"]
        assert spec["8080"] == [PortBinding(host_port="443")]
