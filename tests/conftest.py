import subprocess
from dataclasses import dataclass
from pathlib import Path

import pytest

from commitbench.config import BenchConfig, CommitSpec, Settings


@dataclass
class GitRemote:
    path: Path
    commits: list[str]

    @property
    def url(self) -> str:
        return str(self.path)

    @property
    def head(self) -> str:
        return self.commits[-1]


def _git(repo: Path, *args: str) -> str:
    completed = subprocess.run(
        [
            "git",
            "-c",
            "user.name=Bench Test",
            "-c",
            "user.email=bench@example.com",
            "-c",
            "commit.gpgsign=false",
            *args,
        ],
        cwd=repo,
        capture_output=True,
        text=True,
        check=True,
    )
    return completed.stdout.strip()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        run_count=3,
        sample_depth=4,
        build_command="mkdir -p bin",
        run_command="test %{depth} -eq 4",
    )


@pytest.fixture
def git_remote(tmp_path: Path) -> GitRemote:
    """Local repository with two commits, usable as a clone remote."""
    repo = tmp_path / "remote"
    repo.mkdir()
    _git(repo, "init", "--quiet")

    commits: list[str] = []
    for i in range(2):
        (repo / "version.txt").write_text(f"{i}\n", encoding="utf-8")
        _git(repo, "add", "version.txt")
        _git(repo, "commit", "--quiet", "-m", f"commit {i}")
        commits.append(_git(repo, "rev-parse", "HEAD"))
    return GitRemote(path=repo, commits=commits)


@pytest.fixture
def make_config(tmp_path: Path):
    def _make(
        commits: list[CommitSpec],
        *,
        remote_url: str = "https://example.invalid/repo.git",
        two_pass: bool = True,
    ) -> BenchConfig:
        return BenchConfig(
            remote_url=remote_url,
            commits=tuple(commits),
            workspace_root=tmp_path / "build",
            artifact_dir="bin",
            shell="bash",
            remote_timeout=5.0,
            two_pass=two_pass,
        )

    return _make
