"""Load ``.env`` files into a process environment.

Parsing is delegated to python-dotenv with interpolation disabled:
- ``KEY=VALUE`` and ``export KEY=VALUE``
- Surrounding single or double quotes are stripped
- ``#`` comment lines and blank lines are ignored
- Lines without ``=`` are ignored

Keys already present in the target environment are left alone unless
``override`` is set.
"""

import logging
import os
import re
from collections.abc import MutableMapping
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import dotenv_values

from opskit.log_sanitizer import LogSanitizer

logger = logging.getLogger(__name__)

ENV_KEY_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

SECRET_PATTERNS = [
    re.compile(r"api[_-]?key", re.IGNORECASE),
    re.compile(r"secret", re.IGNORECASE),
    re.compile(r"password|passwd|pwd", re.IGNORECASE),
    re.compile(r"token", re.IGNORECASE),
    re.compile(r"connection[_-]?string", re.IGNORECASE),
    re.compile(r"credential", re.IGNORECASE),
]


class EnvLoaderError(Exception):
    """Raised when an env file cannot be read or contains invalid keys."""

    pass


@dataclass
class EnvLoadResult:
    """Keys set and keys skipped by one load."""

    applied: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


def is_secret_key(key: str) -> bool:
    return any(pattern.search(key) for pattern in SECRET_PATTERNS)


def read_env_file(path: str | Path) -> dict[str, str]:
    """Parse an env file into an ordered mapping.

    Raises:
        EnvLoaderError: If the file is missing or a key name is invalid
    """
    env_path = Path(path).expanduser()
    if not env_path.is_file():
        raise EnvLoaderError(f"Env file not found: {env_path}")

    try:
        values = dotenv_values(env_path, interpolate=False, encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise EnvLoaderError(f"Failed to read {env_path}: {e}") from e

    parsed: dict[str, str] = {}
    for key, value in values.items():
        if value is None:
            # Bare "KEY" line without '='
            continue
        if not ENV_KEY_PATTERN.match(key):
            raise EnvLoaderError(
                f"Invalid environment variable name '{key}' in {env_path}. "
                "Must start with a letter or underscore and contain only "
                "letters, numbers, and underscores."
            )
        parsed[key] = value
    return parsed


def load_env_file(
    path: str | Path,
    override: bool = False,
    environ: MutableMapping[str, str] | None = None,
) -> EnvLoadResult:
    """Apply an env file to ``environ`` (``os.environ`` by default).

    Returns:
        EnvLoadResult: keys applied and keys skipped because they existed
    """
    target = os.environ if environ is None else environ
    result = EnvLoadResult()

    for key, value in read_env_file(path).items():
        if key in target and not override:
            result.skipped.append(key)
            continue
        target[key] = value
        result.applied.append(key)

    logger.debug(
        f"Loaded {path}: {len(result.applied)} applied, {len(result.skipped)} skipped"
    )
    return result


def masked_items(values: dict[str, str]) -> list[tuple[str, str]]:
    """Return (key, display value) pairs with values masked for display."""
    items = []
    for key, value in values.items():
        if is_secret_key(key):
            items.append((key, LogSanitizer.MASKED))
        else:
            items.append((key, LogSanitizer.mask_value(value)))
    return items


__all__ = [
    "EnvLoadResult",
    "EnvLoaderError",
    "is_secret_key",
    "load_env_file",
    "masked_items",
    "read_env_file",
]
