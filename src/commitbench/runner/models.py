from dataclasses import dataclass

SHORT_ID_LENGTH = 7


@dataclass(frozen=True)
class ResolvedCommit:
    reference: str
    concrete_id: str

    @property
    def short_id(self) -> str:
        return self.concrete_id[:SHORT_ID_LENGTH]


@dataclass(frozen=True)
class BenchmarkResult:
    label: str
    samples: tuple[float, ...]
    mean: float
    standard_deviation: float
    commit_id: str | None = None

    @property
    def run_count(self) -> int:
        return len(self.samples)
