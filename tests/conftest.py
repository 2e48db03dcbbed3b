import sys
from pathlib import Path
from typing import Any, List

import pytest
from loguru import logger


# Ensure local src/ package imports work without editable install.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from primbench.config import BenchmarkConfig  # noqa: E402
from primbench.fixtures import BufferFixture, Fixture, FixtureScope  # noqa: E402
from primbench.probes import Probe  # noqa: E402


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "slow: mark test as slow-running (use --run-slow to run)"
    )


def pytest_addoption(parser):
    """Add custom command-line options for pytest."""
    parser.addoption(
        "--run-slow",
        action="store_true",
        default=False,
        help="Run slow tests (full-length benchmark windows)"
    )


def pytest_collection_modifyitems(config, items):
    """Skip slow tests unless --run-slow is passed."""
    if config.getoption("--run-slow", default=False):
        return
    skip_slow = pytest.mark.skip(reason="Slow test skipped. Use --run-slow to run.")
    for item in items:
        if "slow" in item.keywords:
            item.add_marker(skip_slow)


@pytest.fixture(autouse=True)
def reset_logging():
    """Give every test loguru's default stderr handler back."""
    yield
    logger.remove()
    logger.add(sys.stderr, level="WARNING")


# =============================================================================
# Configs
# =============================================================================

@pytest.fixture
def fast_config() -> BenchmarkConfig:
    """Tiny windows, in-process: a full trial takes a few milliseconds."""
    return BenchmarkConfig(
        warmup_iterations=1,
        warmup_seconds=0,
        measure_iterations=3,
        measure_seconds=0,
        min_batch_time_ns=200_000,
        fork_per_probe=False,
        seed=1234,
    )


@pytest.fixture
def single_shot_config() -> BenchmarkConfig:
    """No warmup, one batch holding exactly one invocation."""
    return BenchmarkConfig(
        warmup_iterations=0,
        warmup_seconds=0,
        measure_iterations=1,
        measure_seconds=0,
        min_batch_time_ns=0,
        fork_per_probe=False,
    )


# =============================================================================
# Test probes
# =============================================================================

class CountingProbe(Probe):
    """Records every lifecycle call."""

    def __init__(self, name: str = "counting", scope: FixtureScope = FixtureScope.TRIAL):
        self.name = name
        self.scope = scope
        self.calls: List[str] = []
        self.invocations = 0
        self.fixtures: List[Fixture] = []

    def setup_trial(self) -> BufferFixture:
        self.calls.append("setup_trial")
        fixture = BufferFixture(b"\x01\x02\x03")
        self.fixtures.append(fixture)
        return fixture

    def setup_iteration(self, fixture) -> None:
        self.calls.append("setup_iteration")

    def invoke(self, fixture) -> Any:
        self.invocations += 1
        return sum(fixture.data)

    def teardown_trial(self, fixture) -> None:
        self.calls.append("teardown_trial")
        super().teardown_trial(fixture)


class ExplodingProbe(CountingProbe):
    """Raises on the n-th invocation."""

    def __init__(self, name: str = "exploding", fail_on: int = 1):
        super().__init__(name)
        self.fail_on = fail_on

    def invoke(self, fixture) -> Any:
        result = super().invoke(fixture)
        if self.invocations >= self.fail_on:
            raise RuntimeError("probe exploded")
        return result


class BrokenSetupProbe(CountingProbe):
    """Fails while preparing its fixture."""

    def __init__(self, name: str = "broken_setup", error: Exception = None):
        super().__init__(name)
        self.error = error or PermissionError("permission denied")

    def setup_trial(self):
        self.calls.append("setup_trial")
        raise self.error


@pytest.fixture
def counting_probe() -> CountingProbe:
    return CountingProbe()


@pytest.fixture
def exploding_probe() -> ExplodingProbe:
    return ExplodingProbe(fail_on=5)


@pytest.fixture
def broken_setup_probe() -> BrokenSetupProbe:
    return BrokenSetupProbe()
