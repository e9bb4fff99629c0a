"""Configuration module for commitbench."""

from .loader import DEFAULT_CONFIG_FILENAME, load_config, parse_config
from .settings import (
    ARTIFACT_DIR,
    FILE_LOGGING,
    HEAD_REFERENCE,
    LOG_DIR,
    LOG_LEVEL,
    LOG_PATH,
    MAX_LOG_SIZE_BYTES,
    MAX_ROTATED_LOGS,
    REMOTE_TIMEOUT_SECONDS,
    SHELL,
    TWO_PASS,
    WORKSPACE_DIR,
    BenchConfig,
    CommitSpec,
    Settings,
)

__all__ = [
    # Settings
    "ARTIFACT_DIR",
    "FILE_LOGGING",
    "HEAD_REFERENCE",
    "LOG_DIR",
    "LOG_LEVEL",
    "LOG_PATH",
    "MAX_LOG_SIZE_BYTES",
    "MAX_ROTATED_LOGS",
    "REMOTE_TIMEOUT_SECONDS",
    "SHELL",
    "TWO_PASS",
    "WORKSPACE_DIR",
    "BenchConfig",
    "CommitSpec",
    "Settings",
    # Loading
    "DEFAULT_CONFIG_FILENAME",
    "load_config",
    "parse_config",
]
