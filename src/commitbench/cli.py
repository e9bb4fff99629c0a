import logging
import logging.handlers
import sys
from dataclasses import replace
from pathlib import Path

import click
from dotenv import load_dotenv

from .config import (
    DEFAULT_CONFIG_FILENAME,
    FILE_LOGGING,
    LOG_LEVEL,
    LOG_PATH,
    MAX_LOG_SIZE_BYTES,
    MAX_ROTATED_LOGS,
    load_config,
)
from .runner.errors import BenchError, ConfigError
from .runner.git import resolve_reference
from .runner.models import SHORT_ID_LENGTH, BenchmarkResult
from .runner.pipeline import BenchmarkPipeline, CommitRun, Stage

logger = logging.getLogger(__name__)

_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else getattr(logging, LOG_LEVEL, logging.INFO)
    logging.basicConfig(level=level, format=_LOG_FORMAT)

    if FILE_LOGGING:
        try:
            LOG_PATH.parent.mkdir(parents=True, exist_ok=True)
            handler = logging.handlers.RotatingFileHandler(
                LOG_PATH,
                maxBytes=MAX_LOG_SIZE_BYTES,
                backupCount=MAX_ROTATED_LOGS,
                encoding="utf-8",
            )
        except OSError as exc:
            logger.warning("File logging disabled, cannot open %s: %s", LOG_PATH, exc)
            return
        handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        logging.getLogger().addHandler(handler)


def format_result(result: BenchmarkResult) -> list[str]:
    samples = ", ".join(f"{s:.2f}" for s in result.samples)
    return [
        f"Runtimes (n={result.run_count}): {{ {samples} }}",
        f"Average runtime: {result.mean:.2f}ms (σ={result.standard_deviation:.3f})",
    ]


def _echo_stage(run: CommitRun) -> None:
    if run.stage == Stage.BENCHMARKING and run.resolved is not None:
        click.echo(f"Benchmarking {run.resolved.short_id}... ({run.spec.label})")
    elif run.stage == Stage.BUILDING and run.resolved is not None:
        click.echo(f"Checking build of {run.resolved.short_id} ({run.spec.label})")


def _echo_result(run: CommitRun, result: BenchmarkResult) -> None:
    for line in format_result(result):
        click.echo(line)


@click.command()
@click.option(
    "--config",
    "config_path",
    default=DEFAULT_CONFIG_FILENAME,
    show_default=True,
    type=click.Path(dir_okay=False, path_type=Path),
    help="Config file (JSON, or YAML by .yaml/.yml extension)",
)
@click.option(
    "--workspace",
    "workspace_root",
    default=None,
    type=click.Path(file_okay=False, path_type=Path),
    help="Workspace root, one checkout per commit (default: config or BENCH_WORKSPACE_DIR)",
)
@click.option(
    "--two-pass/--single-pass",
    "two_pass",
    default=None,
    help="Build every commit before timing any (default: from config or BENCH_TWO_PASS)",
)
@click.option("--dry-run", is_flag=True, help="Only resolve references, don't clone, build or run")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def main(
    config_path: Path,
    workspace_root: Path | None,
    two_pass: bool | None,
    dry_run: bool,
    verbose: bool,
) -> None:
    """Build and benchmark the commits listed in a config file."""
    load_dotenv()
    _configure_logging(verbose)

    try:
        config = load_config(config_path, workspace_root=workspace_root)
    except ConfigError as e:
        click.echo(f"Error loading config: {e}", err=True)
        sys.exit(1)
    if two_pass is not None:
        config = replace(config, two_pass=two_pass)

    click.echo(f"Remote:    {config.remote_url}")
    click.echo(f"Workspace: {config.workspace_root}")
    click.echo(f"Commits:   {len(config.commits)}")

    if dry_run:
        click.echo("\n[Dry Run] Resolved commits:")
        for spec in config.commits:
            try:
                concrete_id = resolve_reference(
                    spec.reference, config.remote_url, timeout=config.remote_timeout
                )
            except BenchError as e:
                click.echo(f"Error resolving '{spec.label}': {e}", err=True)
                sys.exit(1)
            click.echo(f"  - {spec.label}: {spec.reference} -> {concrete_id[:SHORT_ID_LENGTH]}")
        return

    pipeline = BenchmarkPipeline(config, on_result=_echo_result, on_stage=_echo_stage)
    try:
        pipeline.run()
    except BenchError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(f"\nBenchmarked {len(pipeline.results)} commit(s)")


if __name__ == "__main__":
    main()
