"""
primbench Exceptions
====================

Exception Hierarchy:
    PrimbenchError (base)
    ├── ConfigurationError   (fatal to the whole suite, raised at startup)
    ├── FixtureSetupError    (fatal to one probe, suite continues)
    ├── MeasurementError     (raised from a probe's invoke, fatal to one probe)
    └── ProbeTimeoutError    (network probe only, resolves to "unreachable")

Usage Guidelines:
    - A failing probe never aborts the other probes of a suite.
    - Always include context in error messages.
    - Use error_code for machine-readable reports.
"""

from enum import Enum
from typing import Optional


class ErrorCategory(Enum):
    """Categories for error classification."""
    CONFIG = "CONFIG"
    FIXTURE = "FIXTURE"
    MEASUREMENT = "MEASUREMENT"
    NETWORK = "NETWORK"
    SYSTEM = "SYSTEM"


class PrimbenchError(Exception):
    """
    Base exception for all primbench errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code for reports
        context: Additional context about the error
        recoverable: Whether the suite can carry on after this error
    """

    error_code: str = "PRIMBENCH_ERROR"
    recoverable: bool = True
    category: ErrorCategory = ErrorCategory.SYSTEM

    def __init__(
        self,
        message: str,
        context: Optional[dict] = None,
        error_code: Optional[str] = None,
        recoverable: Optional[bool] = None
    ):
        super().__init__(message)
        self.message = message
        self.context = context or {}
        if error_code is not None:
            self.error_code = error_code
        if recoverable is not None:
            self.recoverable = recoverable

    def __str__(self) -> str:
        if self.context:
            return f"{self.message} | context={self.context}"
        return self.message

    def to_dict(self) -> dict:
        """Convert exception to a dictionary for JSON reports."""
        result = {
            "error": self.message,
            "code": self.error_code,
            "recoverable": self.recoverable,
        }
        if self.context:
            result["context"] = self.context
        return result


class ConfigurationError(PrimbenchError):
    """Raised when configuration is invalid. Fatal to the entire suite."""
    error_code = "CONFIGURATION_ERROR"
    recoverable = False
    category = ErrorCategory.CONFIG

    def __init__(self, config_key: str, reason: str, context: Optional[dict] = None):
        ctx = {"config_key": config_key}
        if context:
            ctx.update(context)
        super().__init__(f"Configuration error for '{config_key}': {reason}", ctx)
        self.config_key = config_key


class ProbeError(PrimbenchError):
    """Base class for errors confined to a single probe."""
    error_code = "PROBE_ERROR"

    def __init__(self, probe_name: str, message: str, context: Optional[dict] = None):
        ctx = {"probe": probe_name}
        if context:
            ctx.update(context)
        super().__init__(f"[{probe_name}] {message}", ctx)
        self.probe_name = probe_name
        self.reason = message


class FixtureSetupError(ProbeError):
    """Raised when a probe's fixture cannot be prepared (disk full, permission denied...)."""
    error_code = "FIXTURE_SETUP_ERROR"
    category = ErrorCategory.FIXTURE


class MeasurementError(ProbeError):
    """Raised when a probe's measured call fails. Aborts the rest of that probe's trial."""
    error_code = "MEASUREMENT_ERROR"
    category = ErrorCategory.MEASUREMENT


class ProbeTimeoutError(ProbeError):
    """
    Raised when a bounded network operation exceeds its timeout.

    The network probe turns this into an "unreachable" observation; it is
    never reported as a probe failure.
    """
    error_code = "PROBE_TIMEOUT_ERROR"
    category = ErrorCategory.NETWORK

    def __init__(self, probe_name: str, timeout_ms: int, context: Optional[dict] = None):
        ctx = {"timeout_ms": timeout_ms}
        if context:
            ctx.update(context)
        super().__init__(probe_name, f"Operation timed out after {timeout_ms}ms", ctx)
        self.timeout_ms = timeout_ms


__all__ = [
    "ErrorCategory",
    "PrimbenchError",
    "ConfigurationError",
    "ProbeError",
    "FixtureSetupError",
    "MeasurementError",
    "ProbeTimeoutError",
]
