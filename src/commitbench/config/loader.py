import json
import logging
from pathlib import Path
from typing import Any

import yaml

from ..runner.errors import ConfigError
from .settings import (
    ARTIFACT_DIR,
    REMOTE_TIMEOUT_SECONDS,
    SHELL,
    TWO_PASS,
    WORKSPACE_DIR,
    BenchConfig,
    CommitSpec,
    Settings,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILENAME = "config.json"

# Settings keys: file spelling -> Settings field
_SETTINGS_KEYS: dict[str, str] = {
    "runs": "run_count",
    "run_count": "run_count",
    "depth": "sample_depth",
    "sample_depth": "sample_depth",
    "buildCmd": "build_command",
    "build_command": "build_command",
    "runCmd": "run_command",
    "run_command": "run_command",
}
_INT_FIELDS = frozenset({"run_count", "sample_depth"})


def _first(data: dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def parse_settings(data: Any, *, where: str) -> Settings:
    if data is None:
        return Settings()
    if not isinstance(data, dict):
        raise ConfigError(f"{where}: settings must be a mapping, got {type(data).__name__}")

    values: dict[str, Any] = {}
    for key, value in data.items():
        field_name = _SETTINGS_KEYS.get(key)
        if field_name is None:
            raise ConfigError(f"{where}: unknown settings key {key!r}")
        if value is None:
            continue
        if field_name in _INT_FIELDS:
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigError(f"{where}: {key} must be an integer, got {value!r}")
        elif not isinstance(value, str):
            raise ConfigError(f"{where}: {key} must be a string, got {value!r}")
        values[field_name] = value
    return Settings(**values)


def parse_commit(data: Any, base: Settings, *, index: int) -> CommitSpec:
    where = f"commits[{index}]"
    if not isinstance(data, dict):
        raise ConfigError(f"{where}: commit entry must be a mapping")

    reference = str(_first(data, "hash", "reference", default="")).strip()
    if not reference:
        raise ConfigError(f"{where}: missing commit reference ('hash')")
    label = str(_first(data, "label", default=reference))

    settings = parse_settings(data.get("settings"), where=where).merged_with(base)
    settings.validate(label)
    return CommitSpec(reference=reference, label=label, settings=settings)


def parse_config(
    data: Any,
    *,
    base_dir: Path | None = None,
    workspace_root: Path | None = None,
) -> BenchConfig:
    """Build a BenchConfig from an already-decoded config mapping.

    Relative workspace paths are resolved against ``base_dir`` (default: cwd).
    An explicit ``workspace_root`` wins over the file and the environment.
    """
    if not isinstance(data, dict):
        raise ConfigError("config root must be a mapping")

    remote_url = str(_first(data, "remote", "remote_url", default="")).strip()
    if not remote_url:
        raise ConfigError("missing remote repository URL ('remote')")

    base = parse_settings(_first(data, "baseSettings", "base_settings"), where="baseSettings")

    raw_commits = data.get("commits") or []
    if not isinstance(raw_commits, list):
        raise ConfigError("'commits' must be a list")
    commits = tuple(parse_commit(c, base, index=i) for i, c in enumerate(raw_commits))
    if not commits:
        logger.warning("Config lists no commits")

    root_dir = base_dir or Path.cwd()
    if workspace_root is None:
        workspace_root = Path(str(_first(data, "workspace", default=WORKSPACE_DIR)))
    workspace_root = Path(workspace_root).expanduser()
    if not workspace_root.is_absolute():
        workspace_root = root_dir / workspace_root

    timeout = _first(data, "remoteTimeout", "remote_timeout", default=REMOTE_TIMEOUT_SECONDS)
    try:
        remote_timeout = float(timeout)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"remoteTimeout must be a number, got {timeout!r}") from exc
    if remote_timeout <= 0:
        raise ConfigError(f"remoteTimeout must be positive, got {remote_timeout}")

    two_pass = _first(data, "twoPass", "two_pass", default=TWO_PASS)
    if not isinstance(two_pass, bool):
        raise ConfigError(f"twoPass must be true or false, got {two_pass!r}")

    return BenchConfig(
        remote_url=remote_url,
        base_settings=base,
        commits=commits,
        workspace_root=workspace_root.resolve(),
        artifact_dir=str(_first(data, "artifactDir", "artifact_dir", default=ARTIFACT_DIR)),
        shell=str(_first(data, "shell", default=SHELL)),
        remote_timeout=remote_timeout,
        two_pass=two_pass,
    )


def load_config(path: Path | str, *, workspace_root: Path | None = None) -> BenchConfig:
    """Load a JSON (or YAML, by extension) config file.

    Raises:
        ConfigError: File missing, undecodable or semantically invalid.
    """
    config_path = Path(path).expanduser()
    try:
        text = config_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Cannot read config file {config_path}: {exc}") from exc

    try:
        if config_path.suffix.lower() in (".yaml", ".yml"):
            data = yaml.safe_load(text)
        else:
            data = json.loads(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigError(f"Cannot parse config file {config_path}: {exc}") from exc

    logger.debug("Loaded config from %s", config_path)
    return parse_config(
        data,
        base_dir=config_path.resolve().parent,
        workspace_root=workspace_root,
    )
