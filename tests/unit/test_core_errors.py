"""Tests for the error hierarchy."""

from alloykit.core.errors import (
    AlloyKitError,
    AmbiguousUnitError,
    ConfigMutationError,
    ConfigurationError,
    DownloadError,
    FilesystemError,
    AtomicWriteError,
    InstallationError,
    LockTimeoutError,
    LogPermissionError,
    NetworkError,
    ProcessError,
    ProcessTimeoutError,
    SubstrateError,
    TransientNetworkError,
    UnitNotFoundError,
    ValidationError,
)


class TestBaseError:
    """AlloyKitError carries a message and details."""

    def test_basic_error_creation(self) -> None:
        error = AlloyKitError("Test error")
        assert str(error) == "Test error"
        assert error.message == "Test error"
        assert error.details == {}

    def test_error_with_details(self) -> None:
        error = AlloyKitError("Test error", {"code": 1})
        assert error.details == {"code": 1}

    def test_hierarchy(self) -> None:
        assert issubclass(ConfigurationError, ValidationError)
        assert issubclass(AmbiguousUnitError, ValidationError)
        assert issubclass(TransientNetworkError, NetworkError)
        assert issubclass(ProcessTimeoutError, ProcessError)
        assert issubclass(UnitNotFoundError, SubstrateError)
        assert issubclass(AtomicWriteError, FilesystemError)
        assert issubclass(LockTimeoutError, FilesystemError)
        assert issubclass(DownloadError, InstallationError)
        for cls in (ValidationError, NetworkError, ProcessError, SubstrateError,
                    LogPermissionError, ConfigMutationError, InstallationError):
            assert issubclass(cls, AlloyKitError)


class TestSpecializedErrors:
    """Errors carrying extra context."""

    def test_validation_error_collects_errors(self) -> None:
        error = ValidationError("2 problems", errors=["a", "b"])
        assert error.errors == ["a", "b"]
        assert ValidationError("single").errors == ["single"]

    def test_ambiguous_unit_candidates(self) -> None:
        error = AmbiguousUnitError("many", candidates=["obs-alloy-a", "obs-alloy-b"])
        assert error.candidates == ["obs-alloy-a", "obs-alloy-b"]

    def test_log_permission_remediation(self) -> None:
        error = LogPermissionError("denied", path="/var/log/x", remediation=["chmod +r"])
        assert error.path == "/var/log/x"
        assert error.remediation == ["chmod +r"]

    def test_substrate_error_unit(self) -> None:
        assert SubstrateError("failed", unit="obs-loki-a").unit == "obs-loki-a"

    def test_process_timeout(self) -> None:
        assert ProcessTimeoutError("slow", timeout=30.0).timeout == 30.0

    def test_download_error_failed_components(self) -> None:
        assert DownloadError("fetch failed", failed=["loki"]).failed == ["loki"]
