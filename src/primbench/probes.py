"""
Operation probes.

Each probe wraps exactly one primitive operation and returns a value that
forces the result to be observed:

- mutex_lock_unlock:       acquire and release an uncontended lock
- sequential_memory_read:  checksum a 1 MiB in-memory buffer
- sequential_disk_read:    read a 1 MiB file and checksum it
- gzip_compression:        gzip a 1 KiB pseudo-random buffer
- network_round_trip:      reachability check of the loopback host
"""

from __future__ import annotations

import gzip
import socket
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

import numpy as np
from loguru import logger

from primbench.config import BenchmarkConfig
from primbench.exceptions import ConfigurationError, FixtureSetupError, ProbeTimeoutError
from primbench.fixtures import (
    KIB,
    MIB,
    BufferFixture,
    Fixture,
    FixtureScope,
    LockFixture,
    TempFileFixture,
    create_temp_file,
    random_bytes,
)

# TCP echo port, the port InetAddress.isReachable falls back to without ICMP privileges
ECHO_PORT = 7


def checksum(data) -> int:
    """
    Sum of all bytes read as signed 8-bit values, wrapping at 64 bits.

    Args:
        data: bytes-like object.
    """
    return int(np.frombuffer(data, dtype=np.int8).sum(dtype=np.int64))


class Probe(ABC):
    """
    A named unit of measured work.

    Lifecycle, driven by the measurement loop:
        setup_trial()            once, returns the probe's fixture
        setup_iteration(fixture) before each measured call, ITERATION scope only
        invoke(fixture)          the measured call, returns an observable result
        teardown_trial(fixture)  once, on every exit path
    """

    name: str = ""
    description: str = ""
    scope: FixtureScope = FixtureScope.TRIAL

    @abstractmethod
    def setup_trial(self) -> Fixture:
        ...

    def setup_iteration(self, fixture: Fixture) -> None:
        pass

    @abstractmethod
    def invoke(self, fixture: Fixture) -> Any:
        ...

    def teardown_trial(self, fixture: Fixture) -> None:
        fixture.release()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, scope={self.scope.value})"


class LockProbe(Probe):
    """
    Uncontended lock acquire + release.

    The critical section is empty so only synchronisation overhead is
    measured. No contending thread is started.

    The reported time includes the harness's per-call cost (the ``invoke``
    call and handing its result to the blackhole), which is of the same
    order as the lock itself. Compare against an empty probe when the
    absolute floor matters.
    """

    name = "mutex_lock_unlock"
    description = "Acquire and immediately release an uncontended mutex"

    def setup_trial(self) -> LockFixture:
        return LockFixture()

    def invoke(self, fixture: LockFixture) -> None:
        with fixture.lock:
            pass


class MemoryReadProbe(Probe):
    """Sequential read of an in-memory buffer, CPU cache effects included."""

    name = "sequential_memory_read"
    description = "Checksum a 1 MiB in-memory buffer"

    def __init__(self, size: int = MIB, seed: Optional[int] = None):
        self.size = size
        self.seed = seed

    def setup_trial(self) -> BufferFixture:
        return BufferFixture(random_bytes(self.size, self.seed))

    def invoke(self, fixture: BufferFixture) -> int:
        return checksum(fixture.data)


class DiskReadProbe(Probe):
    """
    Sequential read of a file on disk.

    The whole file is read on every call. The OS page cache may serve later
    calls from memory; that is a known limitation of this probe. Use
    ``scope=FixtureScope.ITERATION`` to rewrite the file before each call.
    """

    name = "sequential_disk_read"
    description = "Read and checksum a 1 MiB file"

    def __init__(
        self,
        size: int = MIB,
        scope: FixtureScope = FixtureScope.TRIAL,
        directory: Optional[str] = None,
    ):
        self.size = size
        self.scope = scope
        self.directory = directory

    def setup_trial(self) -> TempFileFixture:
        try:
            return create_temp_file(self.size, directory=self.directory)
        except OSError as e:
            raise FixtureSetupError(self.name, f"cannot create fixture file: {e}") from e

    def setup_iteration(self, fixture: TempFileFixture) -> None:
        fixture.path.write_bytes(bytes(fixture.size))

    def invoke(self, fixture: TempFileFixture) -> int:
        return checksum(fixture.path.read_bytes())


class CompressionProbe(Probe):
    """gzip compression of a small buffer; returns the full compressed output."""

    name = "gzip_compression"
    description = "gzip a 1 KiB pseudo-random buffer"

    def __init__(self, size: int = KIB, seed: Optional[int] = None):
        self.size = size
        self.seed = seed

    def setup_trial(self) -> BufferFixture:
        return BufferFixture(random_bytes(self.size, self.seed))

    def invoke(self, fixture: BufferFixture) -> bytes:
        return gzip.compress(fixture.data)


class EndpointFixture(Fixture):
    """Target of the network probe. Holds no OS resources."""

    def __init__(self, host: str, port: int, timeout_ms: int):
        super().__init__()
        self.host = host
        self.port = port
        self.timeout_ms = timeout_ms

    def _release(self) -> None:
        pass


def connect(host: str, port: int, timeout_ms: int, probe_name: str = "network") -> None:
    """
    Open and close a TCP connection to the first address of ``host``.

    Raises:
        ProbeTimeoutError: If the connection is not established in time.
        OSError: For every other socket failure, including a refused connection.
    """
    family, socktype, proto, _, address = socket.getaddrinfo(
        host, port, type=socket.SOCK_STREAM
    )[0]
    sock = socket.socket(family, socktype, proto)
    try:
        sock.settimeout(timeout_ms / 1000.0)
        sock.connect(address)
    except socket.timeout as e:
        raise ProbeTimeoutError(probe_name, timeout_ms, {"host": host}) from e
    finally:
        sock.close()


def is_reachable(host: str, timeout_ms: int = 1000, port: int = ECHO_PORT) -> bool:
    """
    Check whether ``host`` answers within ``timeout_ms``.

    An accepted or actively refused connection both prove the host is up.
    Timeouts and other network errors mean unreachable; nothing is raised.
    """
    try:
        connect(host, port, timeout_ms)
    except ProbeTimeoutError:
        return False
    except ConnectionRefusedError:
        return True
    except OSError as e:
        logger.debug(f"{host} unreachable: {e}")
        return False
    return True


class NetworkRoundTripProbe(Probe):
    """
    Loopback reachability check with a bounded timeout.

    Only reachability is measured; no payload is transferred.
    """

    name = "network_round_trip"
    description = "Reachability check of localhost (1000 ms timeout)"

    def __init__(self, host: str = "localhost", timeout_ms: int = 1000, port: int = ECHO_PORT):
        self.host = host
        self.timeout_ms = timeout_ms
        self.port = port

    def setup_trial(self) -> EndpointFixture:
        return EndpointFixture(self.host, self.port, self.timeout_ms)

    def invoke(self, fixture: EndpointFixture) -> bool:
        return is_reachable(fixture.host, fixture.timeout_ms, fixture.port)


# Registry of built-in probes, in default run order
PROBES: Dict[str, Callable[[BenchmarkConfig], Probe]] = {
    LockProbe.name: lambda config: LockProbe(),
    MemoryReadProbe.name: lambda config: MemoryReadProbe(seed=config.seed),
    DiskReadProbe.name: lambda config: DiskReadProbe(),
    CompressionProbe.name: lambda config: CompressionProbe(seed=config.seed),
    NetworkRoundTripProbe.name: lambda config: NetworkRoundTripProbe(
        host=config.network_host, timeout_ms=config.network_timeout_ms
    ),
}


def get_probe(name: str, config: Optional[BenchmarkConfig] = None) -> Probe:
    """
    Build a built-in probe by name.

    Raises:
        ConfigurationError: If no probe has that name.
    """
    factory = PROBES.get(name)
    if factory is None:
        raise ConfigurationError(
            "probe", f"unknown probe {name!r}, expected one of {list(PROBES)}"
        )
    return factory(config or BenchmarkConfig())


def default_probes(config: Optional[BenchmarkConfig] = None) -> List[Probe]:
    """All five built-in probes in registration order."""
    return [get_probe(name, config) for name in PROBES]


__all__ = [
    "ECHO_PORT",
    "PROBES",
    "CompressionProbe",
    "DiskReadProbe",
    "EndpointFixture",
    "LockProbe",
    "MemoryReadProbe",
    "NetworkRoundTripProbe",
    "Probe",
    "checksum",
    "connect",
    "default_probes",
    "get_probe",
    "is_reachable",
]
