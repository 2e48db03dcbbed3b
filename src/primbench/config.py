"""
primbench Configuration
=======================
Validated benchmark configuration with YAML and environment variable overrides.

Priority: ENV (PRIMBENCH_<KEY>) > YAML (``primbench:`` section) > defaults.
"""

import os
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Optional

import yaml

from primbench.exceptions import ConfigurationError

NANOS_PER_UNIT = {
    "ns": 1,
    "us": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
}


@dataclass(frozen=True)
class BenchmarkConfig:
    """Configuration for a benchmark suite run."""

    # Warmup batches, each at least warmup_seconds long, results discarded
    warmup_iterations: int = 3
    warmup_seconds: float = 1.0

    # Measurement batches, each at least measure_seconds long
    measure_iterations: int = 5
    measure_seconds: float = 1.0

    # Run every probe's trial in a freshly started worker process
    fork_per_probe: bool = True

    # Output unit: ns, us, ms or s
    time_unit: str = "ns"

    # Lower bound on a batch's elapsed time, keeps relative clock error small
    min_batch_time_ns: int = 10_000_000

    # Network probe
    network_host: str = "localhost"
    network_timeout_ms: int = 1000

    # Seed for pseudo-random fixtures (None = OS entropy)
    seed: Optional[int] = None

    def __post_init__(self):
        validate_config(self)

    @property
    def unit_nanos(self) -> int:
        return NANOS_PER_UNIT[self.time_unit]

    def with_overrides(self, **overrides: Any) -> "BenchmarkConfig":
        """Return a copy with the non-None overrides applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes) if changes else self

    def to_dict(self) -> dict:
        return asdict(self)


def validate_config(config: BenchmarkConfig) -> None:
    """
    Check value ranges.

    Raises:
        ConfigurationError: On the first invalid value.
    """
    for key in ("warmup_iterations", "measure_iterations", "min_batch_time_ns", "network_timeout_ms"):
        value = getattr(config, key)
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigurationError(key, f"must be an integer, got {value!r}")
        if value < 0:
            raise ConfigurationError(key, f"must not be negative, got {value}")

    if config.measure_iterations < 1:
        raise ConfigurationError(
            "measure_iterations",
            f"at least one measurement batch is required, got {config.measure_iterations}",
        )
    if config.network_timeout_ms < 1:
        raise ConfigurationError("network_timeout_ms", "must be at least 1ms")

    for key in ("warmup_seconds", "measure_seconds"):
        value = getattr(config, key)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ConfigurationError(key, f"must be a number, got {value!r}")
        if value < 0:
            raise ConfigurationError(key, f"must not be negative, got {value}")

    if config.time_unit not in NANOS_PER_UNIT:
        raise ConfigurationError(
            "time_unit",
            f"must be one of {sorted(NANOS_PER_UNIT)}, got {config.time_unit!r}",
        )
    if not config.network_host:
        raise ConfigurationError("network_host", "must not be empty")


def _env_override(key: str, default, kind: Optional[type] = None):
    """Check for PRIMBENCH_<KEY> environment variable override."""
    kind = kind or type(default)
    env_key = f"PRIMBENCH_{key.upper()}"
    val = os.environ.get(env_key)
    if val is None:
        return default
    # Type coercion based on the default's type
    try:
        if kind is bool:
            return val.lower() in ("true", "1", "yes")
        if kind is int:
            return int(val)
        if kind is float:
            return float(val)
    except ValueError as e:
        raise ConfigurationError(key, f"invalid value in {env_key}: {val!r}") from e
    return val


def _coerce_seed(value) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError("seed", f"must be an integer, got {value!r}") from e


def load_config(path: Optional[Path] = None) -> BenchmarkConfig:
    """
    Load configuration from a YAML file with environment variable overrides.

    Args:
        path: Path to a YAML file. If None, searches ./primbench.yaml.

    Returns:
        Validated BenchmarkConfig instance.

    Raises:
        ConfigurationError: If a value is invalid or the file is malformed.
    """
    if path is None:
        candidate = Path("primbench.yaml")
        if candidate.exists():
            path = candidate

    raw = {}
    if path is not None and Path(path).exists():
        with open(path) as f:
            try:
                loaded = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigurationError("file", f"cannot parse {path}: {e}") from e
        if not isinstance(loaded, dict):
            raise ConfigurationError("file", f"{path} must contain a mapping")
        raw = loaded.get("primbench") or {}
        if not isinstance(raw, dict):
            raise ConfigurationError("primbench", "must be a mapping")

    known = {f.name for f in fields(BenchmarkConfig)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ConfigurationError("primbench", f"unknown keys: {', '.join(unknown)}")

    defaults = BenchmarkConfig()
    values = {}
    for name in known:
        if name == "seed":
            continue
        default = getattr(defaults, name)
        values[name] = _env_override(name, raw.get(name, default), type(default))
    values["seed"] = _coerce_seed(os.environ.get("PRIMBENCH_SEED", raw.get("seed")))

    return BenchmarkConfig(**values)


__all__ = [
    "BenchmarkConfig",
    "NANOS_PER_UNIT",
    "load_config",
    "validate_config",
]
