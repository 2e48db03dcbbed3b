"""
primbench - Latency floor of operating-system and runtime primitives
====================================================================

Measures the average latency of five primitives on the current machine:

    - mutex_lock_unlock       uncontended lock acquire + release
    - sequential_memory_read  checksum of a 1 MiB in-memory buffer
    - sequential_disk_read    read + checksum of a 1 MiB file
    - gzip_compression        gzip of a 1 KiB buffer
    - network_round_trip      loopback reachability check

Quick Start:
    from primbench import BenchmarkConfig, BenchmarkSuite, default_probes

    config = BenchmarkConfig(fork_per_probe=False)
    result = BenchmarkSuite(config, default_probes(config)).run()
"""

from primbench.config import BenchmarkConfig, load_config
from primbench.exceptions import (
    ConfigurationError,
    FixtureSetupError,
    MeasurementError,
    PrimbenchError,
    ProbeTimeoutError,
)
from primbench.fixtures import FixtureManager, FixtureScope
from primbench.measurement import Measurement, MeasurementLoop, ProbeOutcome, ProbeState
from primbench.probes import (
    CompressionProbe,
    DiskReadProbe,
    LockProbe,
    MemoryReadProbe,
    NetworkRoundTripProbe,
    Probe,
    default_probes,
    get_probe,
)
from primbench.suite import BenchmarkSuite, SuiteResult

__version__ = "1.0.0"

__all__ = [
    "BenchmarkConfig",
    "BenchmarkSuite",
    "CompressionProbe",
    "ConfigurationError",
    "DiskReadProbe",
    "FixtureManager",
    "FixtureScope",
    "FixtureSetupError",
    "LockProbe",
    "Measurement",
    "MeasurementError",
    "MeasurementLoop",
    "MemoryReadProbe",
    "NetworkRoundTripProbe",
    "PrimbenchError",
    "Probe",
    "ProbeOutcome",
    "ProbeState",
    "ProbeTimeoutError",
    "SuiteResult",
    "default_probes",
    "get_probe",
    "load_config",
]
