import os

_TRUTHY = frozenset({"1", "true", "yes", "y", "on"})
_FALSY = frozenset({"0", "false", "no", "n", "off"})


def env_bool(name: str, *, default: bool) -> bool:
    """Read a boolean environment variable.

    Unset, empty or unrecognized values fall back to ``default``.
    """
    raw = os.getenv(name, "").strip().lower()
    if raw in _TRUTHY:
        return True
    if raw in _FALSY:
        return False
    return default
