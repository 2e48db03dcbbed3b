"""
Reporting sink.

Turns a SuiteResult into text rows, a table or JSON. Rows keep the probe
registration order and failed probes always get an explicit FAILED row.

Text format, one line per probe:
    <probeName>  <avgTime> <timeUnit>[  (± <error>)]
    <probeName>  FAILED: <reason>
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from loguru import logger
from tabulate import tabulate

from primbench.config import NANOS_PER_UNIT
from primbench.measurement import Measurement, ProbeOutcome, ProbeState
from primbench.suite import SuiteResult

FORMATS = ("text", "table", "json")


def format_value(value: float) -> str:
    return f"{value:.3f}"


def format_row(outcome: ProbeOutcome, time_unit: str = "ns", width: int = 0) -> str:
    """Format a single outcome as a text row."""
    name = outcome.probe_name.ljust(width)
    if outcome.failed or outcome.measurement is None:
        # Multi-line exception messages would split the row
        reason = " ".join((outcome.reason or "unknown error").split())
        return f"{name}  FAILED: {reason}"
    m = outcome.measurement
    row = f"{name}  {format_value(m.average(time_unit))} {time_unit}"
    error = m.error(time_unit)
    if error > 0:
        row += f"  (± {format_value(error)})"
    return row


def format_text(result: SuiteResult, time_unit: Optional[str] = None) -> str:
    unit = time_unit or result.time_unit
    width = max((len(o.probe_name) for o in result.outcomes), default=0)
    return "\n".join(format_row(o, unit, width) for o in result.outcomes)


def format_table(result: SuiteResult, time_unit: Optional[str] = None) -> str:
    unit = time_unit or result.time_unit
    rows: List[list] = []
    for o in result.outcomes:
        m = o.measurement
        if o.failed or m is None:
            rows.append([o.probe_name, "FAILED", "", "", o.reason or ""])
        else:
            rows.append([
                o.probe_name,
                format_value(m.average(unit)),
                format_value(m.error(unit)),
                f"{m.operations:,}",
                "",
            ])
    headers = ["Probe", f"Avg ({unit}/op)", f"Error ({unit})", "Ops", "Failure"]

    sys_info = result.system
    header = (
        f"{sys_info.get('platform', '?')} | Python {sys_info.get('python', '?')} | "
        f"{sys_info.get('cpu_count_logical', '?')} CPUs"
    )
    return header + "\n" + tabulate(rows, headers=headers, tablefmt="simple")


def format_json(result: SuiteResult, indent: int = 2) -> str:
    return json.dumps(result.to_dict(), indent=indent)


def render(result: SuiteResult, fmt: str = "text", time_unit: Optional[str] = None) -> str:
    """Render a suite result in one of FORMATS."""
    if fmt == "text":
        return format_text(result, time_unit)
    if fmt == "table":
        return format_table(result, time_unit)
    if fmt == "json":
        return format_json(result)
    raise ValueError(f"Unknown report format {fmt!r}, expected one of {FORMATS}")


def parse_row(line: str) -> dict:
    """
    Parse a text row back into {probe, average, unit} or {probe, failed, reason}.

    Raises:
        ValueError: If the line is not a report row.
    """
    name, sep, rest = line.strip().partition("  ")
    rest = rest.strip()
    if not sep or not rest:
        raise ValueError(f"Not a report row: {line!r}")
    if rest.startswith("FAILED:"):
        return {"probe": name, "failed": True, "reason": rest[len("FAILED:"):].strip()}
    parts = rest.split()
    if len(parts) < 2 or parts[1] not in NANOS_PER_UNIT:
        raise ValueError(f"Not a report row: {line!r}")
    return {"probe": name, "failed": False, "average": float(parts[0]), "unit": parts[1]}


def save_report(result: SuiteResult, output_dir: str) -> str:
    """Save a suite result to a timestamped JSON file."""
    Path(output_dir).mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    filepath = Path(output_dir) / f"suite_{result.name}_{timestamp}.json"

    with open(filepath, "w") as f:
        f.write(format_json(result))

    logger.info(f"Saved suite result to {filepath}")
    return str(filepath)


def load_report(filepath: str) -> SuiteResult:
    """Load a suite result written by save_report."""
    with open(filepath, "r") as f:
        data = json.load(f)

    outcomes = []
    for row in data.get("results", []):
        m = row.get("measurement")
        measurement = None
        if m:
            measurement = Measurement(
                probe_name=m["probe_name"],
                operations=m["operations"],
                batches=m["batches"],
                total_elapsed_ns=m["total_elapsed_ns"],
                average_ns=m["average_ns"],
                stdev_ns=m["stdev_ns"],
                time_unit=m["time_unit"],
            )
        outcomes.append(ProbeOutcome(
            probe_name=row["probe"],
            state=ProbeState(row["state"]),
            measurement=measurement,
            reason=row.get("reason"),
            error_code=row.get("error_code"),
        ))

    return SuiteResult(
        name=data["name"],
        timestamp=data["timestamp"],
        duration_sec=data["duration_sec"],
        config=data.get("config", {}),
        outcomes=outcomes,
        system=data.get("system", {}),
        cancelled=data.get("cancelled", False),
    )


__all__ = [
    "FORMATS",
    "format_json",
    "format_row",
    "format_table",
    "format_text",
    "load_report",
    "parse_row",
    "render",
    "save_report",
]
