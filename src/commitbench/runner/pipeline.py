import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import NoReturn

from ..config.settings import BenchConfig, CommitSpec
from .build import build_if_needed
from .errors import BenchError, PipelineError
from .executor import benchmark
from .git import ensure_workspace, resolve_reference
from .models import BenchmarkResult, ResolvedCommit

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    PENDING = "pending"
    RESOLVING = "resolving"
    MATERIALIZING = "materializing"
    BUILDING = "building"
    BENCHMARKING = "benchmarking"
    DONE = "done"
    FAILED = "failed"


@dataclass
class CommitRun:
    spec: CommitSpec
    stage: Stage = Stage.PENDING
    resolved: ResolvedCommit | None = None
    workspace_path: Path | None = None
    rebuilt: bool | None = None
    result: BenchmarkResult | None = None
    failed_stage: Stage | None = None


ResultCallback = Callable[[CommitRun, BenchmarkResult], None]
StageCallback = Callable[[CommitRun], None]


class BenchmarkPipeline:
    """Drive every configured commit through resolve, checkout, build and timing.

    In two-pass mode all commits are built before any is timed; otherwise each
    commit finishes before the next starts. The first failure stops the run.
    """

    def __init__(
        self,
        config: BenchConfig,
        *,
        on_result: ResultCallback | None = None,
        on_stage: StageCallback | None = None,
    ):
        self.config = config
        self.on_result = on_result
        self.on_stage = on_stage
        self.runs = [CommitRun(spec) for spec in config.commits]

    @property
    def results(self) -> list[BenchmarkResult]:
        return [r.result for r in self.runs if r.result is not None]

    def run(self) -> list[BenchmarkResult]:
        logger.info(
            "Benchmarking %d commit(s) of %s (%s)",
            len(self.runs),
            self.config.remote_url,
            "two-pass" if self.config.two_pass else "single-pass",
        )
        if self.config.two_pass:
            for run in self.runs:
                self.prepare(run)
            for run in self.runs:
                self.measure(run)
        else:
            for run in self.runs:
                self.prepare(run)
                self.measure(run)
        return self.results

    def prepare(self, run: CommitRun) -> None:
        """Resolve, check out and (if needed) build one commit."""
        spec = run.spec

        self._transition(run, Stage.RESOLVING)
        try:
            concrete_id = resolve_reference(
                spec.reference, self.config.remote_url, timeout=self.config.remote_timeout
            )
        except BenchError as exc:
            self._fail(run, exc)
        run.resolved = ResolvedCommit(reference=spec.reference, concrete_id=concrete_id)

        self._transition(run, Stage.MATERIALIZING)
        try:
            run.workspace_path = ensure_workspace(
                concrete_id, self.config.remote_url, self.config.workspace_root
            )
        except BenchError as exc:
            self._fail(run, exc)

        self._transition(run, Stage.BUILDING)
        try:
            run.rebuilt = build_if_needed(
                run.workspace_path,
                spec.settings,
                artifact_dir=self.config.artifact_dir,
                shell=self.config.shell,
            )
        except BenchError as exc:
            self._fail(run, exc)

    def measure(self, run: CommitRun) -> BenchmarkResult:
        if run.resolved is None or run.workspace_path is None:
            raise RuntimeError(f"commit '{run.spec.label}' was not prepared")

        self._transition(run, Stage.BENCHMARKING)
        try:
            result = benchmark(
                run.workspace_path,
                run.spec.settings,
                run.spec.label,
                artifact_dir=self.config.artifact_dir,
                shell=self.config.shell,
                commit_id=run.resolved.concrete_id,
            )
        except BenchError as exc:
            self._fail(run, exc)

        run.result = result
        self._transition(run, Stage.DONE)
        if self.on_result is not None:
            self.on_result(run, result)
        return result

    def _transition(self, run: CommitRun, stage: Stage) -> None:
        run.stage = stage
        logger.debug("%s -> %s", run.spec.label, stage.value)
        if self.on_stage is not None:
            self.on_stage(run)

    def _fail(self, run: CommitRun, exc: BenchError) -> NoReturn:
        stage = run.stage
        run.failed_stage = stage
        self._transition(run, Stage.FAILED)
        logger.error("%s failed for %s: %s", stage.value, run.spec.label, exc)
        raise PipelineError(
            stage=stage.value,
            label=run.spec.label,
            reference=run.spec.reference,
            cause=exc,
        ) from exc


def run_pipeline(
    config: BenchConfig,
    *,
    on_result: ResultCallback | None = None,
    on_stage: StageCallback | None = None,
) -> list[BenchmarkResult]:
    return BenchmarkPipeline(config, on_result=on_result, on_stage=on_stage).run()
