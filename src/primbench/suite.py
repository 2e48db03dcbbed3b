"""
Benchmark suite.

Holds the ordered probes and the configuration for one run, measures the
probes one after another and collects one outcome per registered probe.
"""

from __future__ import annotations

import multiprocessing
import threading
import time
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from loguru import logger

from primbench.config import BenchmarkConfig
from primbench.exceptions import ConfigurationError
from primbench.logging_config import configure_logging, current_level
from primbench.measurement import MeasurementLoop, ProbeOutcome
from primbench.probes import Probe
from primbench.system import SystemMetrics, describe_system

# Fresh interpreter per probe, nothing inherited from the parent's heap
ISOLATION_START_METHOD = "spawn"


def _run_trial_worker(
    probe: Probe, config: BenchmarkConfig, log_level: Optional[str] = None
) -> ProbeOutcome:
    """Module-level worker for ProcessPoolExecutor (must be picklable)."""
    if log_level is not None:
        configure_logging(log_level)
    return MeasurementLoop(config).run_trial(probe)


@dataclass
class SuiteResult:
    """Result of running a complete suite."""

    name: str
    timestamp: str
    duration_sec: float
    config: Dict[str, Any]
    outcomes: List[ProbeOutcome] = field(default_factory=list)
    system: Dict[str, Any] = field(default_factory=dict)
    cancelled: bool = False

    @property
    def passed(self) -> bool:
        return all(not o.failed for o in self.outcomes)

    @property
    def time_unit(self) -> str:
        return self.config.get("time_unit", "ns")

    def outcome(self, probe_name: str) -> ProbeOutcome:
        for o in self.outcomes:
            if o.probe_name == probe_name:
                return o
        raise KeyError(probe_name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "timestamp": self.timestamp,
            "duration_sec": self.duration_sec,
            "config": self.config,
            "system": self.system,
            "cancelled": self.cancelled,
            "passed": self.passed,
            "results": [o.to_dict() for o in self.outcomes],
        }


class BenchmarkSuite:
    """
    Ordered set of probes plus the configuration they run under.

    Probes can only be registered before ``run`` starts. Probes execute in
    registration order, one at a time. A failing probe never stops the
    others; every registered probe gets exactly one outcome.
    """

    def __init__(
        self,
        config: Optional[BenchmarkConfig] = None,
        probes: Iterable[Probe] = (),
        name: str = "primitives",
    ):
        self.config = config or BenchmarkConfig()
        self.name = name
        self._probes: List[Probe] = []
        self._sealed = False
        self._cancel = threading.Event()
        for probe in probes:
            self.register(probe)

    @property
    def probes(self) -> Tuple[Probe, ...]:
        return tuple(self._probes)

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def register(self, probe: Probe) -> Probe:
        """
        Add a probe to the end of the run order.

        Raises:
            ConfigurationError: If the suite already ran, the probe has no
                name, or the name is taken.
        """
        if self._sealed:
            raise ConfigurationError("probes", "cannot register probes once the suite has started")
        if not probe.name:
            raise ConfigurationError("probes", f"{type(probe).__name__} has no name")
        if any(p.name == probe.name for p in self._probes):
            raise ConfigurationError("probes", f"duplicate probe name {probe.name!r}")
        self._probes.append(probe)
        logger.debug(f"Registered probe {probe.name}")
        return probe

    def cancel(self) -> None:
        """Stop before the next probe. The probe being measured completes."""
        if not self._cancel.is_set():
            logger.warning("Suite cancellation requested")
        self._cancel.set()

    def _run_in_process(self, probe: Probe) -> ProbeOutcome:
        return _run_trial_worker(probe, self.config)

    def _run_isolated(self, probe: Probe) -> ProbeOutcome:
        ctx = multiprocessing.get_context(ISOLATION_START_METHOD)
        try:
            with ProcessPoolExecutor(max_workers=1, mp_context=ctx) as executor:
                future = executor.submit(_run_trial_worker, probe, self.config, current_level())
                return future.result()
        except Exception as e:
            logger.error(f"[{probe.name}] worker process failed: {e}")
            return ProbeOutcome.failure(
                probe.name, f"worker process failed: {type(e).__name__}: {e}", "WORKER_ERROR"
            )

    def run_probe(self, probe: Probe) -> ProbeOutcome:
        if self.config.fork_per_probe:
            return self._run_isolated(probe)
        return self._run_in_process(probe)

    def run(self, on_outcome: Optional[Callable[[ProbeOutcome], None]] = None) -> SuiteResult:
        """
        Measure every registered probe in order.

        Args:
            on_outcome: Called with each outcome as soon as its probe finishes.
        """
        self._sealed = True
        mode = "isolated" if self.config.fork_per_probe else "in-process"
        logger.info(f"Running {len(self._probes)} probe(s) {mode}")
        start = time.perf_counter()
        metrics = SystemMetrics()

        outcomes: List[ProbeOutcome] = []
        for index, probe in enumerate(self._probes, start=1):
            if self._cancel.is_set():
                outcome = ProbeOutcome.failure(probe.name, "cancelled", "CANCELLED")
            else:
                logger.info("-" * 72)
                logger.info(f"[{index}/{len(self._probes)}] {probe.name}")
                try:
                    outcome = self.run_probe(probe)
                except KeyboardInterrupt:
                    self.cancel()
                    outcome = ProbeOutcome.failure(probe.name, "interrupted", "INTERRUPTED")
            outcomes.append(outcome)
            if on_outcome is not None:
                on_outcome(outcome)

        duration = time.perf_counter() - start
        system = describe_system()
        system["harness_memory_mb"] = round(metrics.get_memory_mb(), 1)

        result = SuiteResult(
            name=self.name,
            timestamp=datetime.now(timezone.utc).isoformat(),
            duration_sec=duration,
            config=self.config.to_dict(),
            outcomes=outcomes,
            system=system,
            cancelled=self._cancel.is_set(),
        )
        failed = sum(1 for o in outcomes if o.failed)
        logger.info(f"Suite finished in {duration:.2f}s: {len(outcomes) - failed} ok, {failed} failed")
        return result


__all__ = [
    "BenchmarkSuite",
    "ISOLATION_START_METHOD",
    "SuiteResult",
]
