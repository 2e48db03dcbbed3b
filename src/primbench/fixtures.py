"""
Fixtures and the Fixture Manager.

A fixture is input state owned by exactly one probe for the duration of one
trial. The Fixture Manager guarantees that a fixture created by
``setup_trial`` is handed back to ``teardown_trial`` on every exit path,
including failures in the middle of measurement.
"""

from __future__ import annotations

import os
import tempfile
import threading
from abc import ABC, abstractmethod
from collections import Counter
from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Iterator, Optional

import numpy as np
from loguru import logger

from primbench.exceptions import FixtureSetupError

if TYPE_CHECKING:
    from primbench.probes import Probe

MIB = 1024 * 1024
KIB = 1024


class FixtureScope(Enum):
    """How often a probe's fixture is (re)prepared."""
    TRIAL = "trial"          # once before all iterations of the probe
    ITERATION = "iteration"  # setup_iteration() before every measured call


class Fixture(ABC):
    """State owned by a single probe. ``release`` is idempotent."""

    def __init__(self):
        self.released = False

    def release(self) -> None:
        if self.released:
            return
        self._release()
        self.released = True

    @abstractmethod
    def _release(self) -> None:
        ...


class BufferFixture(Fixture):
    """An in-memory byte buffer."""

    def __init__(self, data: bytes):
        super().__init__()
        self.data: Optional[bytes] = data

    @property
    def size(self) -> int:
        return len(self.data) if self.data is not None else 0

    def _release(self) -> None:
        self.data = None


class TempFileFixture(Fixture):
    """A temporary file on disk, deleted on release."""

    def __init__(self, path: Path, size: int):
        super().__init__()
        self.path = path
        self.size = size

    def _release(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
        logger.debug(f"Deleted fixture file {self.path}")


class LockFixture(Fixture):
    """A mutual-exclusion lock private to one probe."""

    def __init__(self):
        super().__init__()
        self.lock: Optional[threading.Lock] = threading.Lock()

    def _release(self) -> None:
        self.lock = None


def random_bytes(size: int, seed: Optional[int] = None) -> bytes:
    """Generate ``size`` pseudo-random bytes."""
    rng = np.random.default_rng(seed)
    return rng.integers(0, 256, size=size, dtype=np.uint8).tobytes()


def create_temp_file(
    size: int,
    prefix: str = "benchmark",
    suffix: str = ".dat",
    directory: Optional[str] = None,
) -> TempFileFixture:
    """Create a temporary file of ``size`` zero bytes."""
    fd, name = tempfile.mkstemp(prefix=prefix, suffix=suffix, dir=directory)
    path = Path(name)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(bytes(size))
    except BaseException:
        path.unlink(missing_ok=True)
        raise
    logger.debug(f"Created fixture file {path} ({size:,} bytes)")
    return TempFileFixture(path, size)


class FixtureManager:
    """
    Owns the trial-scoped fixture lifecycle of every probe.

    Usage:
        manager = FixtureManager()
        with manager.trial(probe) as fixture:
            probe.invoke(fixture)
    """

    def __init__(self):
        self._live: Dict[str, Fixture] = {}
        self._setups: Counter = Counter()
        self._releases: Counter = Counter()

    def setup_trial(self, probe: "Probe") -> Fixture:
        """
        Allocate the probe's fixture.

        Raises:
            FixtureSetupError: If setup raised, returned nothing, or the probe
                already holds a live fixture.
        """
        if probe.name in self._live:
            raise FixtureSetupError(probe.name, "probe already holds a live fixture")
        try:
            fixture = probe.setup_trial()
        except FixtureSetupError:
            raise
        except Exception as e:
            raise FixtureSetupError(probe.name, f"fixture setup failed: {e}") from e
        if fixture is None:
            raise FixtureSetupError(probe.name, "setup_trial returned no fixture")

        self._live[probe.name] = fixture
        self._setups[probe.name] += 1
        logger.debug(f"[{probe.name}] fixture ready: {type(fixture).__name__}")
        return fixture

    def teardown(self, probe: "Probe") -> None:
        """Release the probe's fixture. A no-op when it holds none."""
        fixture = self._live.pop(probe.name, None)
        if fixture is None:
            return
        try:
            probe.teardown_trial(fixture)
        finally:
            # A probe overriding teardown_trial still gets its resources freed
            fixture.release()
            self._releases[probe.name] += 1
            logger.debug(f"[{probe.name}] fixture released")

    @contextmanager
    def trial(self, probe: "Probe") -> Iterator[Fixture]:
        fixture = self.setup_trial(probe)
        try:
            yield fixture
        finally:
            self.teardown(probe)

    def fixture_for(self, probe: "Probe") -> Optional[Fixture]:
        return self._live.get(probe.name)

    def setups(self, probe_name: str) -> int:
        return self._setups[probe_name]

    def releases(self, probe_name: str) -> int:
        return self._releases[probe_name]


__all__ = [
    "KIB",
    "MIB",
    "BufferFixture",
    "Fixture",
    "FixtureManager",
    "FixtureScope",
    "LockFixture",
    "TempFileFixture",
    "create_temp_file",
    "random_bytes",
]
