"""
Tests for primbench Error Handling
==================================
Tests the exception hierarchy, error codes and serialisation.
"""

import pytest

from primbench.exceptions import (
    ConfigurationError,
    ErrorCategory,
    FixtureSetupError,
    MeasurementError,
    PrimbenchError,
    ProbeError,
    ProbeTimeoutError,
)


class TestExceptionHierarchy:
    """Test the exception inheritance hierarchy."""

    def test_base_exception(self):
        exc = PrimbenchError("Test error")
        assert str(exc) == "Test error"
        assert exc.error_code == "PRIMBENCH_ERROR"
        assert exc.recoverable is True

    def test_base_exception_with_context(self):
        exc = PrimbenchError("Test error", context={"key": "value"})
        assert "key" in str(exc)
        assert exc.context == {"key": "value"}

    @pytest.mark.parametrize("cls", [FixtureSetupError, MeasurementError])
    def test_probe_errors(self, cls):
        exc = cls("sequential_disk_read", "disk full")
        assert isinstance(exc, ProbeError)
        assert isinstance(exc, PrimbenchError)
        assert exc.probe_name == "sequential_disk_read"
        assert exc.reason == "disk full"
        assert exc.message == "[sequential_disk_read] disk full"
        assert exc.recoverable is True

    def test_configuration_error_is_fatal(self):
        exc = ConfigurationError("measure_iterations", "must be positive")
        assert exc.recoverable is False
        assert exc.category is ErrorCategory.CONFIG
        assert "measure_iterations" in exc.message

    def test_timeout_error(self):
        exc = ProbeTimeoutError("network_round_trip", 1000, {"host": "10.0.0.1"})
        assert exc.timeout_ms == 1000
        assert exc.category is ErrorCategory.NETWORK
        assert exc.context["host"] == "10.0.0.1"
        assert "1000ms" in exc.message

    def test_error_codes_are_distinct(self):
        codes = {
            ConfigurationError.error_code,
            FixtureSetupError.error_code,
            MeasurementError.error_code,
            ProbeTimeoutError.error_code,
        }
        assert len(codes) == 4


class TestToDict:
    def test_to_dict(self):
        exc = MeasurementError("gzip_compression", "boom")
        data = exc.to_dict()
        assert data["code"] == "MEASUREMENT_ERROR"
        assert data["error"] == "[gzip_compression] boom"
        assert data["context"] == {"probe": "gzip_compression"}
        assert data["recoverable"] is True

    def test_to_dict_without_context(self):
        data = PrimbenchError("plain").to_dict()
        assert "context" not in data
