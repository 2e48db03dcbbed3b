"""
Measurement loop.

Per probe the loop walks PENDING -> WARMUP -> MEASURING -> DONE, or FAILED
on an unrecoverable error. Warmup batches are discarded. Each measurement
batch keeps invoking the probe until both the configured window and the
minimum batch time have elapsed, so that clock resolution stays small
relative to the measured interval.
"""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from statistics import stdev
from typing import Any, Callable, Dict, List, Optional, Tuple

from loguru import logger

from primbench.config import NANOS_PER_UNIT, BenchmarkConfig
from primbench.exceptions import FixtureSetupError, MeasurementError, ProbeError
from primbench.fixtures import Fixture, FixtureManager, FixtureScope
from primbench.probes import Probe

# Upper bound for one uninterrupted run of invocations between clock reads
MAX_CHUNK = 1 << 20

# ITERATION-scoped batches stop once wall time reaches this multiple of the
# target, even if the summed per-call time is still below it
WALL_BUDGET_FACTOR = 8


class ProbeState(Enum):
    PENDING = "pending"
    WARMUP = "warmup"
    MEASURING = "measuring"
    DONE = "done"
    FAILED = "failed"


class Blackhole:
    """Sink for invocation results, so every measured call has an observer."""

    __slots__ = ("last", "consumed")

    def __init__(self):
        self.last: Any = None
        self.consumed = 0

    def consume(self, value: Any) -> None:
        self.last = value
        self.consumed += 1


@dataclass(frozen=True)
class Measurement:
    """Latency statistic for one probe's trial. Times are stored in nanoseconds."""

    probe_name: str
    operations: int
    batches: int
    total_elapsed_ns: int
    average_ns: float
    stdev_ns: float = 0.0
    time_unit: str = "ns"

    def average(self, unit: Optional[str] = None) -> float:
        return self.average_ns / NANOS_PER_UNIT[unit or self.time_unit]

    def error(self, unit: Optional[str] = None) -> float:
        return self.stdev_ns / NANOS_PER_UNIT[unit or self.time_unit]

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["average"] = self.average()
        data["error"] = self.error()
        return data


@dataclass
class ProbeOutcome:
    """One report row: the final state of a probe and its measurement or failure."""

    probe_name: str
    state: ProbeState
    measurement: Optional[Measurement] = None
    reason: Optional[str] = None
    error_code: Optional[str] = None
    fixture_setups: int = 0
    fixture_releases: int = 0
    states: List[ProbeState] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return self.state is not ProbeState.DONE

    @classmethod
    def failure(cls, probe_name: str, reason: str, error_code: Optional[str] = None) -> "ProbeOutcome":
        return cls(
            probe_name=probe_name,
            state=ProbeState.FAILED,
            reason=reason,
            error_code=error_code,
            states=[ProbeState.PENDING, ProbeState.FAILED],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "probe": self.probe_name,
            "state": self.state.value,
            "measurement": self.measurement.to_dict() if self.measurement else None,
            "reason": self.reason,
            "error_code": self.error_code,
        }


class MeasurementLoop:
    """
    Runs warmup and measurement batches for one probe at a time.

    Args:
        config: Batch counts, windows and minimum batch time.
        clock: Monotonic nanosecond clock.
    """

    def __init__(
        self,
        config: BenchmarkConfig,
        clock: Callable[[], int] = time.perf_counter_ns,
    ):
        self.config = config
        self.clock = clock
        self.reset()

    def reset(self) -> None:
        """Back to PENDING with an empty sink, ready for the next probe."""
        self.blackhole = Blackhole()
        self.state = ProbeState.PENDING
        self.history: List[ProbeState] = [ProbeState.PENDING]

    def _transition(self, probe: Probe, state: ProbeState) -> None:
        logger.debug(f"[{probe.name}] {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    def _batch_target_ns(self, seconds: float) -> int:
        return max(int(seconds * 1_000_000_000), self.config.min_batch_time_ns)

    def run_batch(self, probe: Probe, fixture: Fixture, seconds: float) -> Tuple[int, int]:
        """
        Invoke the probe until the batch target is reached.

        Returns:
            (operations, elapsed_ns) for the batch. At least one operation.
        """
        target = self._batch_target_ns(seconds)
        if probe.scope is FixtureScope.ITERATION:
            return self._run_batch_per_call(probe, fixture, target)

        invoke = probe.invoke
        consume = self.blackhole.consume
        clock = self.clock

        operations = 0
        chunk = 1
        start = clock()
        while True:
            for _ in range(chunk):
                consume(invoke(fixture))
            operations += chunk
            elapsed = clock() - start
            if elapsed >= target:
                return operations, elapsed
            # Grow geometrically but aim to land just past the target
            if elapsed > 0:
                remaining = (target - elapsed) * operations // elapsed + 1
                chunk = max(1, min(chunk * 2, remaining, MAX_CHUNK))
            else:
                chunk = min(chunk * 2, MAX_CHUNK)

    def _run_batch_per_call(self, probe: Probe, fixture: Fixture, target: int) -> Tuple[int, int]:
        # setup_iteration stays outside the timed region
        invoke = probe.invoke
        consume = self.blackhole.consume
        clock = self.clock

        operations = 0
        elapsed = 0
        wall_start = clock()
        while True:
            probe.setup_iteration(fixture)
            t0 = clock()
            result = invoke(fixture)
            elapsed += clock() - t0
            consume(result)
            operations += 1
            if elapsed >= target:
                break
            if clock() - wall_start >= target * WALL_BUDGET_FACTOR:
                break
        return operations, elapsed

    def run(self, probe: Probe, fixture: Fixture) -> Measurement:
        """
        Run warmup and measurement against an already prepared fixture.

        Raises:
            MeasurementError: If an invocation raised. Remaining batches are skipped.
        """
        cfg = self.config
        try:
            self._transition(probe, ProbeState.WARMUP)
            for i in range(cfg.warmup_iterations):
                ops, elapsed = self.run_batch(probe, fixture, cfg.warmup_seconds)
                logger.debug(
                    f"[{probe.name}] warmup {i + 1}/{cfg.warmup_iterations}: "
                    f"{ops:,} ops, {elapsed / ops:.1f} ns/op"
                )

            self._transition(probe, ProbeState.MEASURING)
            batches: List[Tuple[int, int]] = []
            for i in range(cfg.measure_iterations):
                ops, elapsed = self.run_batch(probe, fixture, cfg.measure_seconds)
                batches.append((ops, elapsed))
                logger.debug(
                    f"[{probe.name}] measurement {i + 1}/{cfg.measure_iterations}: "
                    f"{ops:,} ops, {elapsed / ops:.1f} ns/op"
                )
        except ProbeError:
            self._transition(probe, ProbeState.FAILED)
            raise
        except Exception as e:
            self._transition(probe, ProbeState.FAILED)
            raise MeasurementError(
                probe.name, f"{type(e).__name__}: {e}", {"phase": self.history[-2].value}
            ) from e
        except BaseException:
            self._transition(probe, ProbeState.FAILED)
            raise

        measurement = summarize(probe.name, batches, cfg.time_unit)
        self._transition(probe, ProbeState.DONE)
        return measurement

    def run_trial(self, probe: Probe, fixtures: Optional[FixtureManager] = None) -> ProbeOutcome:
        """
        Full trial: fixture setup, warmup, measurement, teardown.

        Probe-level errors are captured in the returned outcome. Anything that
        is not an Exception (KeyboardInterrupt) propagates after teardown.
        """
        self.reset()
        fixtures = fixtures or FixtureManager()
        measurement = None
        reason = None
        error_code = None

        try:
            with fixtures.trial(probe) as fixture:
                measurement = self.run(probe, fixture)
        except FixtureSetupError as e:
            if self.state is not ProbeState.FAILED:
                self._transition(probe, ProbeState.FAILED)
            reason, error_code = e.reason, e.error_code
        except ProbeError as e:
            reason, error_code = e.reason, e.error_code
        except Exception as e:
            # Raised by teardown after a successful measurement
            if self.state is not ProbeState.FAILED:
                self._transition(probe, ProbeState.FAILED)
            measurement = None
            reason, error_code = f"teardown failed: {type(e).__name__}: {e}", "TEARDOWN_ERROR"

        if reason is not None:
            logger.error(f"[{probe.name}] FAILED: {reason}")
        else:
            logger.info(
                f"[{probe.name}] {measurement.average():.3f} {measurement.time_unit}/op "
                f"over {measurement.operations:,} ops"
            )

        return ProbeOutcome(
            probe_name=probe.name,
            state=self.state,
            measurement=measurement,
            reason=reason,
            error_code=error_code,
            fixture_setups=fixtures.setups(probe.name),
            fixture_releases=fixtures.releases(probe.name),
            states=list(self.history),
        )


def summarize(probe_name: str, batches: List[Tuple[int, int]], time_unit: str = "ns") -> Measurement:
    """Aggregate (operations, elapsed_ns) batches into a Measurement."""
    operations = sum(ops for ops, _ in batches)
    total = sum(elapsed for _, elapsed in batches)
    per_batch = [elapsed / ops for ops, elapsed in batches]
    return Measurement(
        probe_name=probe_name,
        operations=operations,
        batches=len(batches),
        total_elapsed_ns=total,
        average_ns=total / operations,
        stdev_ns=stdev(per_batch) if len(per_batch) > 1 else 0.0,
        time_unit=time_unit,
    )


__all__ = [
    "Blackhole",
    "Measurement",
    "MeasurementLoop",
    "ProbeOutcome",
    "ProbeState",
    "summarize",
]
