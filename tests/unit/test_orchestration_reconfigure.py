"""Tests for live log-source registration."""

from datetime import datetime
from pathlib import Path
from unittest.mock import patch

import pytest

from alloykit.core.enums import ReconfigState, UnitState
from alloykit.core.errors import ConfigMutationError, LogPermissionError, SubstrateError
from alloykit.orchestration.fleet import FleetManager
from alloykit.orchestration.reconfigure import (
    LogSourceRegistrar,
    quote_string,
    section_label,
    unique_section_id,
)
from alloykit.utils.locking import exclusive_lock, instance_lock_path

BASE_CONFIG = """logging {
  level = "info"
}

loki.write "default" {
  endpoint {
    url = "http://localhost:3100/loki/api/v1/push"
  }
}
"""


class TestSectionHelpers:
    """Section identifiers in collector config."""

    def test_label_is_identifier_safe(self) -> None:
        assert section_label("api-v2") == "api_v2"
        assert section_label("2fa") == "log_2fa"

    def test_quote_string_escapes_quotes_and_backslashes(self) -> None:
        assert quote_string('/var/log/a"b\\c.log') == '/var/log/a\\"b\\\\c.log'
        assert quote_string("/var/log/plain.log") == "/var/log/plain.log"

    def test_unique_id_avoids_existing(self) -> None:
        existing = 'local.file_match "nginx_1" {}\nlocal.file_match "nginx_1_2" {}'
        assert unique_section_id(existing, "nginx_1") == "nginx_1_3"
        assert unique_section_id("", "nginx_1") == "nginx_1"


class TestLogSourceRegistrar:
    """Ordered registration with a running collector."""

    @pytest.fixture(autouse=True)
    def _prepare(self, tmp_path: Path, make_config, fake_substrate, fake_health) -> None:
        self.config = make_config("prod")
        self.substrate = fake_substrate
        self.health = fake_health
        self.substrate.add_unit("alloy", "prod")
        self.registrar = LogSourceRegistrar(
            self.config,
            FleetManager(fake_substrate, self.config.timeouts),
            fake_health,
            clock=lambda: datetime(2025, 3, 14, 9, 26, 53),
        )
        self.config_path = self.registrar.config_path
        self.config_path.parent.mkdir(parents=True)
        self.config_path.write_text(BASE_CONFIG)

        self.log_dir = tmp_path / "var" / "log" / "nginx"
        self.log_dir.mkdir(parents=True)
        (self.log_dir / "access.log").write_text("GET /\n")

    def _backups(self):
        return sorted(self.config_path.parent.glob("alloy.alloy.backup.*"))

    def test_appends_exactly_one_section(self) -> None:
        pattern = str(self.log_dir / "*.log")

        result = self.registrar.register(pattern, "nginx")

        content = self.config_path.read_text()
        assert content.startswith(BASE_CONFIG)
        assert content.count("// SECTION: Custom Log - nginx") == 1
        assert content.count("local.file_match") == 1
        assert content.count("loki.source.file") == 1
        assert f'__path__    = "/host/root{pattern}"' in content
        assert "// Added on 2025-03-14 09:26:53" in content
        assert result.state == ReconfigState.ACTIVE
        assert result.job_name == "nginx"
        assert result.unit == "obs-alloy-prod"
        assert result.collector_path == f"/host/root{pattern}"

    def test_path_with_quote_is_escaped(self) -> None:
        odd_dir = self.log_dir / 'we"ird\\dir'
        odd_dir.mkdir()
        (odd_dir / "app.log").write_text("line\n")

        result = self.registrar.register(str(odd_dir / "app.log"), "odd")

        content = self.config_path.read_text()
        escaped = str(odd_dir / "app.log").replace("\\", "\\\\").replace('"', '\\"')
        assert f'__path__    = "/host/root{escaped}",' in content
        assert result.collector_path == f"/host/root{odd_dir / 'app.log'}"

    def test_backup_holds_previous_content(self) -> None:
        result = self.registrar.register(str(self.log_dir / "access.log"))

        assert result.backup_path == self._backups()[0]
        assert result.backup_path.read_text() == BASE_CONFIG
        assert result.job_name == "access"

    def test_restarts_collector_then_polls_readiness(self) -> None:
        self.registrar.register(str(self.log_dir / "access.log"), "nginx")

        assert ("restart", "obs-alloy-prod") in self.substrate.calls
        assert self.health.urls == ["http://localhost:12345/-/ready"]

    def test_second_registration_gets_distinct_section(self) -> None:
        first = self.registrar.register(str(self.log_dir / "access.log"), "nginx")
        second = self.registrar.register(str(self.log_dir / "access.log"), "nginx")

        assert first.section_id != second.section_id
        assert self.config_path.read_text().count("local.file_match") == 2
        assert len(self._backups()) == 2

    def test_unreadable_path_changes_nothing(self) -> None:
        with patch("alloykit.orchestration.permissions.os.access", return_value=False):
            with pytest.raises(LogPermissionError):
                self.registrar.register(str(self.log_dir / "access.log"), "nginx")

        assert self.config_path.read_text() == BASE_CONFIG
        assert self._backups() == []
        assert self.substrate.calls == []

    def test_collector_not_running(self) -> None:
        self.substrate.units["obs-alloy-prod"] = UnitState.STOPPED

        with pytest.raises(SubstrateError, match="is not running"):
            self.registrar.register(str(self.log_dir / "access.log"))

        assert self.config_path.read_text() == BASE_CONFIG
        assert self._backups() == []

    def test_missing_config_file(self) -> None:
        self.config_path.unlink()
        with pytest.raises(ConfigMutationError, match="not found"):
            self.registrar.register(str(self.log_dir / "access.log"))

    def test_restart_failure_reports_backup(self) -> None:
        self.substrate.fail("restart", "obs-alloy-prod", "crashloop")

        with pytest.raises(SubstrateError) as exc_info:
            self.registrar.register(str(self.log_dir / "access.log"), "nginx")

        message = exc_info.value.message
        assert "restarting obs-alloy-prod failed" in message
        assert "Restart it manually" in message
        assert str(self._backups()[0]) in message
        assert "nginx" in self.config_path.read_text()

    def test_not_ready_is_degraded(self) -> None:
        self.health.ready = False

        result = self.registrar.register(str(self.log_dir / "access.log"), "nginx")

        assert result.state == ReconfigState.DEGRADED
        assert not result.ready
        assert any("did not report ready" in w for w in result.warnings)

    def test_missing_log_still_registers_with_warning(self) -> None:
        result = self.registrar.register(str(self.log_dir / "error.log"), "errors")

        assert result.state == ReconfigState.ACTIVE
        assert any("pick it up once created" in w for w in result.warnings)

    def test_invalid_job_name_falls_back(self) -> None:
        result = self.registrar.register(str(self.log_dir / "access.log"), "!!!")
        assert result.job_name == "custom"

    def test_concurrent_registration_times_out(self) -> None:
        lock = instance_lock_path(self.config_path.parent, "prod")
        with exclusive_lock(lock, timeout=1.0):
            with pytest.raises(ConfigMutationError, match="in progress"):
                self.registrar.register(str(self.log_dir / "access.log"), "nginx")

        assert self.config_path.read_text() == BASE_CONFIG
