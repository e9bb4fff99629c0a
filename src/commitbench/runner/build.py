import hashlib
import json
import logging
import os
import subprocess  # nosec B404
import tempfile
from pathlib import Path

from ..config.settings import ARTIFACT_DIR, SHELL, Settings
from .errors import BuildError, format_output_detail

logger = logging.getLogger(__name__)

MARKER_FILENAME = "__bench"


def settings_fingerprint(settings: Settings) -> bytes:
    """SHA-256 digest of the canonical JSON form of ``settings``."""
    payload = json.dumps(settings.to_dict(), sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(payload.encode("utf-8")).digest()


def read_marker(workspace_path: Path) -> bytes | None:
    try:
        return (Path(workspace_path) / MARKER_FILENAME).read_bytes()
    except FileNotFoundError:
        return None


def write_marker(workspace_path: Path, fingerprint: bytes) -> None:
    marker = Path(workspace_path) / MARKER_FILENAME
    fd, tmp_name = tempfile.mkstemp(prefix=f"{MARKER_FILENAME}.", dir=workspace_path)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(fingerprint)
        os.replace(tmp_name, marker)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def run_build(workspace_path: Path, build_command: str, *, shell: str = SHELL) -> None:
    try:
        completed = subprocess.run(  # nosec B603
            [shell, "-c", build_command],
            cwd=workspace_path,
            check=False,
            capture_output=True,
            text=True,
        )
    except OSError as exc:
        raise BuildError(f"Failed to start build in {workspace_path}: {exc}") from exc

    if completed.returncode != 0:
        detail = format_output_detail(completed.stdout or "", completed.stderr or "")
        suffix = f": {detail}" if detail else ""
        raise BuildError(
            f"Build command exited with code {completed.returncode}{suffix}",
            returncode=completed.returncode,
            detail=detail,
        )
    if completed.stdout:
        logger.debug("Build output:\n%s", completed.stdout.rstrip())


def build_if_needed(
    workspace_path: Path,
    settings: Settings,
    *,
    artifact_dir: str = ARTIFACT_DIR,
    shell: str = SHELL,
) -> bool:
    """Build the workspace unless its marker matches ``settings`` and output exists.

    The marker is removed before building and rewritten only after the build
    command succeeds, so a failed build never looks cached.

    Returns:
        True if the build command ran, False on a cache hit.

    Raises:
        BuildError: The build command failed or could not be started, or the
            marker could not be read or written.
    """
    workspace_path = Path(workspace_path)
    marker = workspace_path / MARKER_FILENAME
    fingerprint = settings_fingerprint(settings)
    try:
        stored = read_marker(workspace_path)
    except OSError as exc:
        raise BuildError(f"Cannot read build marker {marker}: {exc}") from exc
    artifact_present = not artifact_dir or (workspace_path / artifact_dir).exists()

    if stored == fingerprint and artifact_present:
        logger.info("Settings fingerprint verified for %s, skipping build", workspace_path.name)
        return False

    if stored is None:
        logger.info("No build marker in %s, building", workspace_path.name)
    elif stored != fingerprint:
        logger.info("Settings changed for %s, rebuilding", workspace_path.name)
    else:
        logger.warning(
            "Build output %s missing in %s despite matching marker, rebuilding",
            artifact_dir,
            workspace_path.name,
        )

    try:
        marker.unlink(missing_ok=True)
    except OSError as exc:
        raise BuildError(f"Cannot remove stale build marker {marker}: {exc}") from exc
    run_build(workspace_path, settings.build_command, shell=shell)
    try:
        write_marker(workspace_path, fingerprint)
    except OSError as exc:
        raise BuildError(f"Cannot write build marker {marker}: {exc}") from exc
    logger.info("Build complete for %s", workspace_path.name)
    return True
