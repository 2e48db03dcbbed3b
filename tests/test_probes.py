"""
Operation probe tests.
"""

import gzip
import socket
import threading
import time

import pytest

from primbench import probes
from primbench.config import BenchmarkConfig
from primbench.exceptions import ConfigurationError, ProbeTimeoutError
from primbench.fixtures import BufferFixture, FixtureManager, FixtureScope, create_temp_file, random_bytes
from primbench.measurement import MeasurementLoop
from primbench.probes import (
    PROBES,
    CompressionProbe,
    DiskReadProbe,
    LockProbe,
    MemoryReadProbe,
    NetworkRoundTripProbe,
    checksum,
    default_probes,
    get_probe,
    is_reachable,
)

# TEST-NET-1 style unroutable address: connect either hangs or fails fast
UNREACHABLE_HOST = "10.255.255.1"


@pytest.fixture
def listening_port():
    """A TCP listener on loopback; yields its port."""
    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server.bind(("127.0.0.1", 0))
    server.listen(8)
    stop = threading.Event()

    def accept_loop():
        server.settimeout(0.1)
        while not stop.is_set():
            try:
                conn, _ = server.accept()
                conn.close()
            except OSError:
                continue

    thread = threading.Thread(target=accept_loop, daemon=True)
    thread.start()
    yield server.getsockname()[1]
    stop.set()
    thread.join(timeout=2)
    server.close()


class TestChecksum:
    def test_signed_bytes(self):
        assert checksum(bytes([255, 1, 2])) == 2
        assert checksum(bytes([128])) == -128
        assert checksum(b"") == 0

    def test_zero_file_content(self):
        assert checksum(bytes(1024)) == 0

    def test_accepts_memoryview(self):
        data = bytes([1, 2, 3, 250])
        assert checksum(memoryview(data)) == checksum(data)


class TestLockProbe:
    def test_lock_is_released_after_invoke(self):
        probe = LockProbe()
        fixture = probe.setup_trial()
        assert probe.invoke(fixture) is None
        assert fixture.lock.acquire(blocking=False)
        fixture.lock.release()

    def test_each_trial_gets_its_own_lock(self):
        probe = LockProbe()
        assert probe.setup_trial().lock is not probe.setup_trial().lock

    def test_reported_time_includes_call_overhead(self, fast_config):
        # An empty invoke still costs the harness's per-call work
        class EmptyProbe(LockProbe):
            name = "empty"

            def invoke(self, fixture):
                return None

        empty = MeasurementLoop(fast_config).run_trial(EmptyProbe()).measurement
        lock = MeasurementLoop(fast_config).run_trial(LockProbe()).measurement
        assert empty.average_ns > 0
        assert lock.average_ns > 0


class TestReadProbes:
    def test_memory_checksum_is_deterministic(self):
        probe = MemoryReadProbe(seed=3)
        fixture = probe.setup_trial()
        results = {probe.invoke(fixture) for _ in range(5)}
        assert len(results) == 1

    def test_memory_and_disk_agree_on_identical_content(self, tmp_path):
        data = random_bytes(1_048_576, seed=11)

        memory = MemoryReadProbe()
        memory_fixture = BufferFixture(data)

        disk = DiskReadProbe(directory=str(tmp_path))
        disk_fixture = create_temp_file(len(data), directory=str(tmp_path))
        disk_fixture.path.write_bytes(data)

        try:
            memory_results = [memory.invoke(memory_fixture) for _ in range(3)]
            disk_results = [disk.invoke(disk_fixture) for _ in range(3)]
        finally:
            disk_fixture.release()

        assert len(set(memory_results)) == 1
        assert memory_results == disk_results
        assert memory_results[0] == checksum(data)

    def test_disk_reads_current_content(self, tmp_path):
        probe = DiskReadProbe(size=4, directory=str(tmp_path))
        fixture = probe.setup_trial()
        try:
            assert probe.invoke(fixture) == 0
            fixture.path.write_bytes(bytes([1, 1, 1, 1]))
            assert probe.invoke(fixture) == 4
        finally:
            probe.teardown_trial(fixture)
        assert not fixture.path.exists()

    def test_disk_iteration_setup_rewrites_file(self, tmp_path):
        probe = DiskReadProbe(size=8, scope=FixtureScope.ITERATION, directory=str(tmp_path))
        fixture = probe.setup_trial()
        try:
            fixture.path.write_bytes(b"garbage!")
            probe.setup_iteration(fixture)
            assert fixture.path.read_bytes() == bytes(8)
        finally:
            probe.teardown_trial(fixture)


class TestCompressionProbe:
    def test_round_trip(self):
        probe = CompressionProbe(seed=5)
        fixture = probe.setup_trial()
        compressed = probe.invoke(fixture)
        assert isinstance(compressed, bytes)
        original = gzip.decompress(compressed)
        assert len(original) == 1024
        assert original == fixture.data

    def test_output_is_materialised_each_call(self):
        probe = CompressionProbe(seed=5)
        fixture = probe.setup_trial()
        first = probe.invoke(fixture)
        second = probe.invoke(fixture)
        assert gzip.decompress(first) == gzip.decompress(second)


class TestNetworkProbe:
    def test_listening_port_is_reachable(self, listening_port):
        assert is_reachable("127.0.0.1", 1000, port=listening_port) is True

    def test_refused_connection_counts_as_reachable(self, monkeypatch):
        def refuse(host, port, timeout_ms, probe_name="network"):
            raise ConnectionRefusedError("refused")

        monkeypatch.setattr(probes, "connect", refuse)
        assert is_reachable("localhost", 1000) is True

    def test_timeout_is_unreachable_not_error(self, monkeypatch):
        def hang(host, port, timeout_ms, probe_name="network"):
            raise ProbeTimeoutError(probe_name, timeout_ms)

        monkeypatch.setattr(probes, "connect", hang)
        assert is_reachable("localhost", 1000) is False

    def test_other_socket_errors_are_unreachable(self, monkeypatch):
        def unreachable(host, port, timeout_ms, probe_name="network"):
            raise OSError(101, "Network is unreachable")

        monkeypatch.setattr(probes, "connect", unreachable)
        assert is_reachable("localhost", 1000) is False

    def test_connect_converts_socket_timeout(self, monkeypatch):
        class HangingSocket:
            def __init__(self, *args):
                pass

            def settimeout(self, value):
                self.timeout = value

            def connect(self, address):
                raise socket.timeout("timed out")

            def close(self):
                pass

        monkeypatch.setattr(probes.socket, "socket", HangingSocket)
        with pytest.raises(ProbeTimeoutError) as exc_info:
            probes.connect("127.0.0.1", 7, 250, "network_round_trip")
        assert exc_info.value.timeout_ms == 250

    def test_unreachable_address_returns_false_within_timeout(self):
        probe = NetworkRoundTripProbe(host=UNREACHABLE_HOST, timeout_ms=1000)
        fixture = probe.setup_trial()
        start = time.monotonic()
        result = probe.invoke(fixture)
        elapsed = time.monotonic() - start
        assert result is False
        assert elapsed < 1.5

    def test_loopback_never_raises(self):
        probe = NetworkRoundTripProbe()
        fixture = probe.setup_trial()
        assert isinstance(probe.invoke(fixture), bool)


class TestRegistry:
    def test_default_order(self):
        names = [p.name for p in default_probes()]
        assert names == [
            "mutex_lock_unlock",
            "sequential_memory_read",
            "sequential_disk_read",
            "gzip_compression",
            "network_round_trip",
        ]
        assert names == list(PROBES)

    def test_config_reaches_probes(self):
        config = BenchmarkConfig(seed=9, network_host="127.0.0.1", network_timeout_ms=250)
        network = get_probe("network_round_trip", config)
        assert network.host == "127.0.0.1"
        assert network.timeout_ms == 250
        assert get_probe("gzip_compression", config).seed == 9

    def test_unknown_probe(self):
        with pytest.raises(ConfigurationError, match="unknown probe"):
            get_probe("quantum_tunnel")

    def test_probes_work_through_fixture_manager(self, tmp_path):
        manager = FixtureManager()
        for probe in default_probes(BenchmarkConfig(network_timeout_ms=200)):
            if isinstance(probe, DiskReadProbe):
                probe.directory = str(tmp_path)
            with manager.trial(probe) as fixture:
                probe.invoke(fixture)
            assert manager.releases(probe.name) == 1
        assert list(tmp_path.iterdir()) == []
