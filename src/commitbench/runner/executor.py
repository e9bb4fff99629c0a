import logging
import statistics
import string
import subprocess  # nosec B404
import time
from collections.abc import Sequence
from pathlib import Path

from ..config.settings import ARTIFACT_DIR, SHELL, Settings
from .errors import NotBuiltError, RunError, format_output_detail
from .models import BenchmarkResult

logger = logging.getLogger(__name__)

DEPTH_PARAMETER = "depth"
# Older configs spell the depth placeholder as %p
DEPTH_ALIASES = ("p",)


class RunCommandTemplate(string.Template):
    """Run command with a single ``%{depth}`` parameter, also written ``%depth`` or ``%p``.

    ``%%`` is a literal ``%``; any other ``%name`` is left as written.
    """

    delimiter = "%"


def render_run_command(template: str, depth: int) -> str:
    value = str(int(depth))
    mapping = {DEPTH_PARAMETER: value, **dict.fromkeys(DEPTH_ALIASES, value)}
    return RunCommandTemplate(template).safe_substitute(mapping)


def _run_once(command: str, workspace_path: Path, *, shell: str) -> tuple[int, str]:
    completed = subprocess.run(  # nosec B603
        [shell, "-c", command],
        cwd=workspace_path,
        check=False,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.PIPE,
        text=True,
    )
    return completed.returncode, completed.stderr or ""


def _check_built(workspace_path: Path, artifact_dir: str) -> None:
    if not workspace_path.is_dir():
        raise NotBuiltError(f"Failed to locate workspace {workspace_path}")
    if artifact_dir and not (workspace_path / artifact_dir).exists():
        raise NotBuiltError(f"Failed to locate {artifact_dir} directory in {workspace_path}")


def summarize(
    label: str,
    samples: Sequence[float],
    *,
    commit_id: str | None = None,
) -> BenchmarkResult:
    """Mean and sample standard deviation (n - 1) of ``samples`` in ms.

    A single sample has a standard deviation of 0.0.
    """
    if not samples:
        raise ValueError("cannot summarize an empty sample list")
    mean = statistics.fmean(samples)
    stdev = statistics.stdev(samples) if len(samples) > 1 else 0.0
    return BenchmarkResult(
        label=label,
        samples=tuple(samples),
        mean=mean,
        standard_deviation=stdev,
        commit_id=commit_id,
    )


def benchmark(
    workspace_path: Path,
    settings: Settings,
    label: str,
    *,
    artifact_dir: str = ARTIFACT_DIR,
    shell: str = SHELL,
    commit_id: str | None = None,
) -> BenchmarkResult:
    """Run the command once untimed, then ``settings.run_count`` times timed.

    Runs are strictly sequential. Each sample spans process spawn to exit and
    is kept at microsecond resolution, expressed in milliseconds.

    Raises:
        NotBuiltError: Workspace or build output is missing.
        RunError: Warm-up or any timed run failed; no partial samples survive.
    """
    workspace_path = Path(workspace_path)
    _check_built(workspace_path, artifact_dir)
    command = render_run_command(settings.run_command, settings.sample_depth)
    logger.debug("Run command for %s: %s", label, command)

    try:
        returncode, stderr = _run_once(command, workspace_path, shell=shell)
    except OSError as exc:
        raise RunError(f"Failed to start warm-up run: {exc}") from exc
    if returncode != 0:
        detail = format_output_detail("", stderr)
        raise RunError(
            f"Warm-up run exited with code {returncode}" + (f": {detail}" if detail else ""),
            returncode=returncode,
            detail=detail,
        )

    samples: list[float] = []
    for i in range(1, settings.run_count + 1):
        start = time.perf_counter_ns()
        try:
            returncode, stderr = _run_once(command, workspace_path, shell=shell)
        except OSError as exc:
            raise RunError(f"Failed to start run {i}: {exc}", run_index=i) from exc
        elapsed_us = (time.perf_counter_ns() - start) // 1000
        if returncode != 0:
            detail = format_output_detail("", stderr)
            raise RunError(
                f"Run {i} exited with code {returncode}" + (f": {detail}" if detail else ""),
                run_index=i,
                returncode=returncode,
                detail=detail,
            )
        samples.append(elapsed_us / 1000.0)
        logger.debug("%s run %d/%d: %.3fms", label, i, settings.run_count, samples[-1])

    return summarize(label, samples, commit_id=commit_id)
