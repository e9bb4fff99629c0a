import shutil
from dataclasses import replace
from pathlib import Path
from unittest.mock import patch

import pytest

from commitbench.config import SHELL, Settings
from commitbench.runner.build import (
    MARKER_FILENAME,
    build_if_needed,
    read_marker,
    settings_fingerprint,
)
from commitbench.runner.errors import BuildError


def _fake_build(workspace_path, build_command, *, shell):
    (Path(workspace_path) / "bin").mkdir(exist_ok=True)


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    path = tmp_path / "abcdef1234567890abcdef1234567890abcdef12"
    path.mkdir()
    return path


# ── fingerprint ──────────────────────────────────────────────────────────────


def test_fingerprint_is_deterministic(settings: Settings) -> None:
    copy = Settings(**settings.to_dict())
    assert settings_fingerprint(settings) == settings_fingerprint(copy)
    assert len(settings_fingerprint(settings)) == 32


@pytest.mark.parametrize(
    "changes",
    [
        {"run_count": 4},
        {"sample_depth": 5},
        {"build_command": "make -j2"},
        {"run_command": "./bin/app %{depth}"},
    ],
)
def test_fingerprint_changes_with_any_field(settings: Settings, changes) -> None:
    assert settings_fingerprint(settings) != settings_fingerprint(replace(settings, **changes))


# ── build_if_needed ──────────────────────────────────────────────────────────


def test_first_build_writes_marker(workspace: Path, settings: Settings) -> None:
    with patch("commitbench.runner.build.run_build", side_effect=_fake_build) as mock_build:
        assert build_if_needed(workspace, settings) is True

    mock_build.assert_called_once_with(workspace, settings.build_command, shell=SHELL)
    assert (workspace / MARKER_FILENAME).read_bytes() == settings_fingerprint(settings)


def test_unchanged_settings_build_once(workspace: Path, settings: Settings) -> None:
    with patch("commitbench.runner.build.run_build", side_effect=_fake_build) as mock_build:
        first = build_if_needed(workspace, settings)
        second = build_if_needed(workspace, settings)

    assert (first, second) == (True, False)
    assert mock_build.call_count == 1


def test_changed_settings_rebuild(workspace: Path, settings: Settings) -> None:
    changed = replace(settings, sample_depth=9)
    with patch("commitbench.runner.build.run_build", side_effect=_fake_build) as mock_build:
        build_if_needed(workspace, settings)
        assert build_if_needed(workspace, changed) is True

    assert mock_build.call_count == 2
    assert read_marker(workspace) == settings_fingerprint(changed)


def test_failed_build_leaves_no_marker(workspace: Path, settings: Settings) -> None:
    with patch(
        "commitbench.runner.build.run_build",
        side_effect=BuildError("Build command exited with code 2", returncode=2),
    ):
        with pytest.raises(BuildError):
            build_if_needed(workspace, settings)

    assert read_marker(workspace) is None

    with patch("commitbench.runner.build.run_build", side_effect=_fake_build) as mock_build:
        assert build_if_needed(workspace, settings) is True
    mock_build.assert_called_once()


def test_failed_rebuild_invalidates_previous_marker(workspace: Path, settings: Settings) -> None:
    with patch("commitbench.runner.build.run_build", side_effect=_fake_build):
        build_if_needed(workspace, settings)

    with patch("commitbench.runner.build.run_build", side_effect=BuildError("boom")):
        with pytest.raises(BuildError):
            build_if_needed(workspace, replace(settings, run_count=7))

    # Reverting to the old settings must not trust the half-rebuilt output
    with patch("commitbench.runner.build.run_build", side_effect=_fake_build) as mock_build:
        assert build_if_needed(workspace, settings) is True
    mock_build.assert_called_once()


def test_marker_without_artifact_rebuilds(workspace: Path, settings: Settings) -> None:
    with patch("commitbench.runner.build.run_build", side_effect=_fake_build) as mock_build:
        build_if_needed(workspace, settings)
        shutil.rmtree(workspace / "bin")
        assert build_if_needed(workspace, settings) is True

    assert mock_build.call_count == 2


def test_empty_artifact_dir_disables_output_check(workspace: Path, settings: Settings) -> None:
    with patch("commitbench.runner.build.run_build") as mock_build:
        build_if_needed(workspace, settings, artifact_dir="")
        assert build_if_needed(workspace, settings, artifact_dir="") is False

    mock_build.assert_called_once()



def test_unreadable_marker_raises_build_error(workspace: Path, settings: Settings) -> None:
    (workspace / MARKER_FILENAME).mkdir()
    with patch("commitbench.runner.build.run_build") as mock_build:
        with pytest.raises(BuildError, match="build marker"):
            build_if_needed(workspace, settings)

    mock_build.assert_not_called()


def test_marker_write_failure_raises_build_error(workspace: Path, settings: Settings) -> None:
    with (
        patch("commitbench.runner.build.run_build", side_effect=_fake_build),
        patch("commitbench.runner.build.write_marker", side_effect=OSError(28, "No space left")),
    ):
        with pytest.raises(BuildError, match="Cannot write build marker"):
            build_if_needed(workspace, settings)

    assert read_marker(workspace) is None

# ── real shell ───────────────────────────────────────────────────────────────


@pytest.mark.skipif(shutil.which("bash") is None, reason="bash not available")
def test_build_runs_in_workspace_directory(workspace: Path, settings: Settings) -> None:
    cmd_settings = replace(settings, build_command="mkdir -p bin && pwd > bin/where")
    assert build_if_needed(workspace, cmd_settings) is True
    where = (workspace / "bin" / "where").read_text().strip()
    assert Path(where).resolve() == workspace.resolve()


@pytest.mark.skipif(shutil.which("bash") is None, reason="bash not available")
def test_nonzero_build_raises_with_output(workspace: Path, settings: Settings) -> None:
    failing = replace(settings, build_command="echo 'missing header' >&2; exit 3")
    with pytest.raises(BuildError, match="missing header") as exc_info:
        build_if_needed(workspace, failing)
    assert exc_info.value.returncode == 3
    assert read_marker(workspace) is None


def test_unstartable_shell_raises_build_error(workspace: Path, settings: Settings) -> None:
    with pytest.raises(BuildError, match="Failed to start build"):
        build_if_needed(workspace, settings, shell="/nonexistent/shell")
