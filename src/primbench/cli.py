"""
primbench CLI

Usage:
    primbench run                                  # all five probes, defaults
    primbench run -p mutex_lock_unlock --no-fork   # one probe, in-process
    primbench run --time-unit us --format table
    primbench run --output benchmark_results       # also save a JSON report
    primbench list                                 # show available probes
"""

import sys
from pathlib import Path
from typing import Optional, Tuple

import click
from loguru import logger

from primbench.config import NANOS_PER_UNIT, load_config
from primbench.exceptions import ConfigurationError
from primbench.logging_config import configure_logging
from primbench.probes import PROBES, get_probe
from primbench.reporting import FORMATS, format_row, render, save_report
from primbench.suite import BenchmarkSuite


@click.group()
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable debug logging",
)
@click.pass_context
def cli(ctx, verbose: bool):
    """
    primbench - latency floor of OS and runtime primitives

    Measures lock acquisition, memory and disk reads, compression and a
    loopback round trip, and reports the average time per operation.
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    configure_logging(level="DEBUG" if verbose else "INFO")


@cli.command(name="run")
@click.option("--probe", "-p", "probe_names", multiple=True,
              type=click.Choice(list(PROBES)), help="Probe to run (repeatable, default: all)")
@click.option("--config", "-c", "config_path", type=click.Path(exists=True, dir_okay=False),
              help="Path to a YAML config file")
@click.option("--warmup-iterations", type=int, help="Warmup batches per probe")
@click.option("--warmup-seconds", type=float, help="Minimum length of a warmup batch")
@click.option("--measure-iterations", type=int, help="Measurement batches per probe")
@click.option("--measure-seconds", type=float, help="Minimum length of a measurement batch")
@click.option("--fork/--no-fork", "fork_per_probe", default=None,
              help="Run each probe in a fresh process (default: fork)")
@click.option("--time-unit", "-u", type=click.Choice(list(NANOS_PER_UNIT)), help="Output time unit")
@click.option("--seed", type=int, help="Seed for pseudo-random fixtures")
@click.option("--format", "-f", "fmt", type=click.Choice(FORMATS), default="text", show_default=True,
              help="Report format")
@click.option("--output", "-o", type=click.Path(file_okay=False), help="Directory for a JSON report")
@click.pass_context
def run_command(
    ctx,
    probe_names: Tuple[str, ...],
    config_path: Optional[str],
    warmup_iterations: Optional[int],
    warmup_seconds: Optional[float],
    measure_iterations: Optional[int],
    measure_seconds: Optional[float],
    fork_per_probe: Optional[bool],
    time_unit: Optional[str],
    seed: Optional[int],
    fmt: str,
    output: Optional[str],
):
    """Run the benchmark suite and print one row per probe."""
    try:
        config = load_config(Path(config_path) if config_path else None).with_overrides(
            warmup_iterations=warmup_iterations,
            warmup_seconds=warmup_seconds,
            measure_iterations=measure_iterations,
            measure_seconds=measure_seconds,
            fork_per_probe=fork_per_probe,
            time_unit=time_unit,
            seed=seed,
        )
        names = list(dict.fromkeys(probe_names)) or list(PROBES)
        suite = BenchmarkSuite(config, [get_probe(name, config) for name in names])
    except ConfigurationError as e:
        click.echo(f"Error: {e.message}", err=True)
        sys.exit(2)

    on_outcome = None
    if fmt == "text":
        # Stream rows as probes finish
        width = max(len(name) for name in names)

        def on_outcome(outcome):
            click.echo(format_row(outcome, config.time_unit, width))

    result = suite.run(on_outcome=on_outcome)

    if fmt != "text":
        click.echo(render(result, fmt))

    if output:
        save_report(result, output)

    if not result.passed:
        logger.warning("One or more probes failed")
        sys.exit(1)


@cli.command(name="list")
def list_command():
    """List the available probes in run order."""
    for name in PROBES:
        click.echo(f"{name:<24} {get_probe(name).description}")


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
