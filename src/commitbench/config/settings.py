import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from platformdirs import user_state_dir

from ..runner.errors import ConfigError
from .compat import env_bool

logger = logging.getLogger(__name__)

__all__ = [
    "ARTIFACT_DIR",
    "HEAD_REFERENCE",
    "REMOTE_TIMEOUT_SECONDS",
    "SHELL",
    "TWO_PASS",
    "WORKSPACE_DIR",
    "BenchConfig",
    "CommitSpec",
    "Settings",
]

# Symbolic reference resolved against the remote on every invocation
HEAD_REFERENCE = "HEAD"

# Workspace root (relative paths are resolved against the current directory)
WORKSPACE_DIR = os.getenv("BENCH_WORKSPACE_DIR", "") or "build"
# Bound on the remote ref listing used to resolve HEAD
REMOTE_TIMEOUT_SECONDS = float(os.getenv("BENCH_REMOTE_TIMEOUT_SECONDS", "") or "10.0")
# Build output directory inside each workspace; its absence means "not built"
ARTIFACT_DIR = os.getenv("BENCH_ARTIFACT_DIR", "") or "bin"
# Shell used for build and run commands, invoked as `<shell> -c <command>`
SHELL = os.getenv("BENCH_SHELL", "") or "bash"
# Build every commit before timing any of them
TWO_PASS = env_bool("BENCH_TWO_PASS", default=True)

LOG_LEVEL = os.getenv("BENCH_LOG_LEVEL", "INFO").strip().upper() or "INFO"
FILE_LOGGING = env_bool("BENCH_FILE_LOGGING", default=False)

# Logging - Cross-platform state directory:
# - Linux: ~/.local/state/commitbench
# - macOS: ~/Library/Application Support/commitbench
# - Windows: %LOCALAPPDATA%\commitbench
# Note: Directory is created lazily by the CLI when file logging is enabled
LOG_DIR = Path(user_state_dir("commitbench", appauthor=False))
LOG_PATH = LOG_DIR / "commitbench.log"
MAX_LOG_SIZE_BYTES = 10 * 1024 * 1024
MAX_ROTATED_LOGS = 5


@dataclass(frozen=True)
class Settings:
    run_count: int = 0
    sample_depth: int = 0
    build_command: str = ""
    run_command: str = ""

    def merged_with(self, base: "Settings") -> "Settings":
        """Fill unset fields (zero or empty) from ``base``."""
        return Settings(
            run_count=self.run_count or base.run_count,
            sample_depth=self.sample_depth or base.sample_depth,
            build_command=self.build_command or base.build_command,
            run_command=self.run_command or base.run_command,
        )

    def validate(self, label: str = "") -> None:
        where = f" for commit '{label}'" if label else ""
        if self.run_count < 1:
            raise ConfigError(f"run count must be a positive integer{where}, got {self.run_count}")
        if self.sample_depth < 0:
            raise ConfigError(f"sample depth must not be negative{where}, got {self.sample_depth}")
        if not self.run_command.strip():
            raise ConfigError(f"run command is empty{where}")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class CommitSpec:
    reference: str
    label: str
    settings: Settings

    @property
    def is_symbolic(self) -> bool:
        return self.reference == HEAD_REFERENCE


@dataclass(frozen=True)
class BenchConfig:
    remote_url: str
    base_settings: Settings = field(default_factory=Settings)
    commits: tuple[CommitSpec, ...] = ()
    workspace_root: Path = field(default_factory=lambda: Path(WORKSPACE_DIR).resolve())
    artifact_dir: str = ARTIFACT_DIR
    shell: str = SHELL
    remote_timeout: float = REMOTE_TIMEOUT_SECONDS
    two_pass: bool = TWO_PASS
