import logging
import os
import re
import shutil
import subprocess  # nosec B404
import tempfile
from pathlib import Path

from ..config.settings import HEAD_REFERENCE, REMOTE_TIMEOUT_SECONDS
from .errors import (
    GitCommandError,
    MaterializationError,
    ResolutionError,
    ResolutionTimeoutError,
    format_output_detail,
)
from .models import SHORT_ID_LENGTH

logger = logging.getLogger(__name__)

COMMIT_ID_LENGTH = 40
ZERO_COMMIT_ID = "0" * COMMIT_ID_LENGTH
_COMMIT_ID_RE = re.compile(rf"^[0-9a-fA-F]{{{COMMIT_ID_LENGTH}}}$")
_SYMREF_PREFIX = "ref: "


def _git_env() -> dict[str, str]:
    env = dict(os.environ)
    # Fail on missing credentials instead of blocking on a prompt
    env["GIT_TERMINAL_PROMPT"] = "0"
    return env


def _run_git(repo_path: Path | None, args: list[str], *, timeout: float | None = None) -> str:
    cmd = ["git"]
    if repo_path is not None:
        cmd.extend(["-C", str(repo_path)])
    cmd.extend(args)
    logger.debug("Running %s", " ".join(cmd))
    try:
        completed = subprocess.run(  # nosec B603 B607
            cmd,
            check=False,
            capture_output=True,
            text=True,
            timeout=timeout,
            env=_git_env(),
        )
    except FileNotFoundError as exc:
        raise GitCommandError(args, returncode=None, detail=f"git not found: {exc}") from exc
    except OSError as exc:
        raise GitCommandError(args, returncode=None, detail=str(exc)) from exc
    if completed.returncode == 0:
        return completed.stdout or ""
    detail = format_output_detail(completed.stdout or "", completed.stderr or "")
    raise GitCommandError(args, returncode=completed.returncode, detail=detail)


def parse_ls_remote(output: str) -> tuple[dict[str, str], dict[str, str]]:
    """Split `git ls-remote --symref` output into direct and symbolic refs.

    Returns:
        ``(direct, symbolic)`` where ``direct`` maps ref name to commit id and
        ``symbolic`` maps ref name to the ref it points at.
    """
    direct: dict[str, str] = {}
    symbolic: dict[str, str] = {}
    for line in output.splitlines():
        if "\t" not in line:
            continue
        value, name = line.split("\t", 1)
        name = name.strip()
        value = value.strip()
        if value.startswith(_SYMREF_PREFIX):
            symbolic[name] = value[len(_SYMREF_PREFIX) :].strip()
        elif name not in direct:
            direct[name] = value.lower()
    return direct, symbolic


def _head_from_refs(direct: dict[str, str], symbolic: dict[str, str]) -> str | None:
    target = symbolic.get(HEAD_REFERENCE)
    if target is None:
        return direct.get(HEAD_REFERENCE)
    # One level of indirection only
    if target in symbolic:
        raise ResolutionError(
            f"HEAD points at symbolic ref {target} -> {symbolic[target]}; "
            "chained symbolic refs are not supported",
            reference=HEAD_REFERENCE,
        )
    return direct.get(target)


def list_remote_refs(remote_url: str, *, timeout: float = REMOTE_TIMEOUT_SECONDS) -> str:
    try:
        return _run_git(None, ["ls-remote", "--symref", remote_url], timeout=timeout)
    except subprocess.TimeoutExpired as exc:
        raise ResolutionTimeoutError(
            f"Listing refs of {remote_url} timed out after {timeout:g}s",
            reference=HEAD_REFERENCE,
        ) from exc
    except GitCommandError as exc:
        raise ResolutionError(
            f"Failed to list refs of {remote_url}: {exc}", reference=HEAD_REFERENCE
        ) from exc


def is_commit_id(reference: str) -> bool:
    return bool(_COMMIT_ID_RE.match(reference))


def resolve_reference(
    reference: str,
    remote_url: str,
    *,
    timeout: float = REMOTE_TIMEOUT_SECONDS,
) -> str:
    """Turn ``HEAD`` or an explicit commit id into a lowercase 40-char commit id.

    ``HEAD`` is looked up on the remote (bounded by ``timeout``); explicit ids
    are only checked for shape and never touch the network.

    Raises:
        ResolutionTimeoutError: The remote listing exceeded ``timeout``.
        ResolutionError: Malformed id, or the remote has no resolvable HEAD.
    """
    if reference == HEAD_REFERENCE:
        direct, symbolic = parse_ls_remote(list_remote_refs(remote_url, timeout=timeout))
        concrete_id = _head_from_refs(direct, symbolic)
        if not concrete_id or concrete_id == ZERO_COMMIT_ID:
            raise ResolutionError(
                f"Failed to find HEAD commit id on {remote_url}", reference=reference
            )
        logger.info("Resolved %s on %s to %s", reference, remote_url, concrete_id)
        return concrete_id

    if not is_commit_id(reference):
        raise ResolutionError(
            f"Failed to parse commit id {reference!r}: expected {COMMIT_ID_LENGTH} hex characters",
            reference=reference,
        )
    return reference.lower()


def ensure_workspace(concrete_id: str, remote_url: str, workspace_root: Path) -> Path:
    """Return ``workspace_root/concrete_id``, cloning and checking it out if absent.

    An existing directory is trusted as-is. New checkouts are built in a
    staging directory and renamed into place only after checkout succeeds.

    Raises:
        MaterializationError: Clone, checkout or the final rename failed.
    """
    workspace_root = Path(workspace_root)
    workspace_path = workspace_root / concrete_id
    if workspace_path.is_dir():
        logger.debug("Workspace %s already present", workspace_path)
        return workspace_path

    short_id = concrete_id[:SHORT_ID_LENGTH]
    try:
        workspace_root.mkdir(parents=True, exist_ok=True)
        staging = Path(
            tempfile.mkdtemp(prefix=f".{short_id}-", suffix=".partial", dir=workspace_root)
        )
    except OSError as exc:
        raise MaterializationError(
            f"Cannot create workspace under {workspace_root}: {exc}", commit_id=concrete_id
        ) from exc

    logger.info("Cloning %s into %s", remote_url, workspace_path)
    try:
        _run_git(None, ["clone", "--quiet", "--no-checkout", remote_url, str(staging)])
        _run_git(staging, ["checkout", "--quiet", "--detach", concrete_id])
        staging.rename(workspace_path)
    except (GitCommandError, OSError) as exc:
        shutil.rmtree(staging, ignore_errors=True)
        raise MaterializationError(
            f"Failed to materialize {short_id}: {exc}", commit_id=concrete_id
        ) from exc

    logger.info("Checked out %s", short_id)
    return workspace_path
