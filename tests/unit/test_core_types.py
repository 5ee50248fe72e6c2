"""Tests for configuration models and result types."""

from pathlib import Path

import pytest

from alloykit.core.components import component_from_name, get_spec, normalize_arch
from alloykit.core.enums import Component, SubstrateKind
from alloykit.core.errors import ConfigurationError
from alloykit.core.types import AlloyKitConfig, BatchResult, CleanResult, PortConfig, RetryConfig


class TestPortValidation:
    """Ports must be in range and distinct."""

    def test_defaults_are_valid(self) -> None:
        config = AlloyKitConfig()
        assert config.ports.as_dict() == {
            "prometheus": 9090,
            "loki": 3100,
            "grafana": 3000,
            "alloy": 12345,
        }

    def test_duplicate_ports_rejected(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            AlloyKitConfig(ports=PortConfig(grafana=9090))
        assert any("Port conflict" in e for e in exc_info.value.errors)

    @pytest.mark.parametrize("port", [0, -1, 65536, 70000])
    def test_out_of_range_ports_rejected(self, port: int) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            AlloyKitConfig(ports=PortConfig(loki=port))
        assert any("between 1 and 65535" in e for e in exc_info.value.errors)

    def test_boundary_ports_accepted(self) -> None:
        config = AlloyKitConfig(ports=PortConfig(grafana=1, alloy=65535))
        assert config.ports.grafana == 1

    def test_all_errors_collected(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            AlloyKitConfig(
                instance_name="bad name",
                ports=PortConfig(grafana=0, loki=9090),
            )
        assert len(exc_info.value.errors) == 3


class TestConfigValidation:
    """Instance names, paths and retry policy."""

    def test_invalid_instance_name(self) -> None:
        with pytest.raises(ConfigurationError):
            AlloyKitConfig(instance_name="prod!")

    def test_control_characters_in_install_dir(self) -> None:
        with pytest.raises(ConfigurationError):
            AlloyKitConfig(install_dir=Path("/tmp/bad\ndir"))

    def test_retry_attempts_must_be_positive(self) -> None:
        with pytest.raises(ConfigurationError):
            AlloyKitConfig(retry=RetryConfig(max_attempts=0))

    def test_resolved_paths(self, tmp_path: Path) -> None:
        config = AlloyKitConfig(install_dir=tmp_path / "kit")
        assert config.resolved_install_dir == tmp_path / "kit"
        assert config.resolved_download_dir == tmp_path / "downloads"

    def test_substrate_default(self) -> None:
        assert AlloyKitConfig().substrate == SubstrateKind.CONTAINER


class TestResults:
    """BatchResult and CleanResult aggregation."""

    def test_batch_summary(self) -> None:
        result = BatchResult(action="stop", succeeded=["a", "b"], failed={"c": "boom"})
        assert result.summary() == "2 succeeded / 1 failed"
        assert not result.ok

    def test_batch_merge(self) -> None:
        merged = BatchResult(action="stop", succeeded=["a"]).merge(
            BatchResult(action="start", failed={"a": "boom"})
        )
        assert merged.action == "stop+start"
        assert merged.succeeded == ["a"]
        assert merged.failed == {"a": "boom"}

    def test_clean_result_ok(self) -> None:
        assert CleanResult().ok
        assert not CleanResult(failures={"obs_loki_data_x": "busy"}).ok


class TestComponentCatalog:
    """Static component facts."""

    def test_readiness_paths(self) -> None:
        assert get_spec(Component.PROMETHEUS).readiness_path == "/-/ready"
        assert get_spec(Component.LOKI).readiness_path == "/ready"
        assert get_spec(Component.GRAFANA).readiness_path == "/api/health"
        assert get_spec(Component.ALLOY).readiness_path == "/-/ready"

    def test_download_url(self) -> None:
        url = get_spec(Component.PROMETHEUS).download_url("linux", "amd64")
        assert url.endswith("/v3.4.2/prometheus-3.4.2.linux-amd64.tar.gz")

    def test_component_from_name(self) -> None:
        assert component_from_name("Alloy") == Component.ALLOY
        with pytest.raises(ValueError, match="Unknown component"):
            component_from_name("nginx")

    @pytest.mark.parametrize(
        "machine,expected",
        [("x86_64", "amd64"), ("aarch64", "arm64"), ("arm64", "arm64"), ("armv7l", "armv7")],
    )
    def test_normalize_arch(self, machine: str, expected: str) -> None:
        assert normalize_arch(machine) == expected

    def test_unsupported_arch(self) -> None:
        with pytest.raises(ValueError):
            normalize_arch("sparc64")
