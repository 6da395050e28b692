"""Configuration management module.

This module handles persistent configuration storage using TOML format.
Stores operator defaults like subscription, resource group, Kusto cluster
and the shaping options for query results.

Security:
- Config file permissions: 0600 (owner read/write only)
- Path validation
"""

import logging
import os
import tempfile
import tomllib
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any

import tomlkit

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised when configuration operations fail."""

    pass


@dataclass
class OpskitConfig:
    """opskit configuration data."""

    subscription_id: str | None = None
    default_resource_group: str | None = None
    tenant_id: str | None = None
    kusto_cluster: str | None = None
    kusto_database: str | None = None
    expected_upn: str | None = None
    auto_fix_outbound_snat: bool = True
    remove_empty_columns: bool = True
    dedupe_columns: bool = True
    throttle_limit: int = 10
    poll_interval: float = 2.0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary, excluding None values."""
        # TOML has no null
        return {k: v for k, v in asdict(self).items() if v is not None}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OpskitConfig":
        """Create from dictionary, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            logger.debug(f"Ignoring unknown config keys: {sorted(unknown)}")
        return cls(**{k: v for k, v in data.items() if k in known})


class ConfigManager:
    """Manage opskit configuration file.

    Configuration is stored at ~/.opskit/config.toml with secure permissions.
    """

    DEFAULT_CONFIG_DIR = Path.home() / ".opskit"
    DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.toml"

    @classmethod
    def _validate_config_path(cls, path: Path) -> Path:
        """Ensure a custom config path is within allowed directories.

        Allowed: ~/.opskit/, the current working directory and the system
        temporary directory.

        Raises:
            ConfigError: If path is outside allowed directories
        """
        resolved_path = path.resolve()
        allowed_dirs = [
            cls.DEFAULT_CONFIG_DIR.resolve(),
            Path.cwd().resolve(),
            Path(tempfile.gettempdir()).resolve(),
        ]

        for allowed_dir in allowed_dirs:
            try:
                resolved_path.relative_to(allowed_dir)
                return resolved_path
            except ValueError:
                continue

        raise ConfigError(
            f"Config path outside allowed directories: {resolved_path}\n"
            f"Allowed directories:\n"
            f"  - {cls.DEFAULT_CONFIG_DIR}\n"
            f"  - {Path.cwd()}"
        )

    @classmethod
    def get_config_path(cls, custom_path: str | None = None) -> Path:
        """Get configuration file path.

        Raises:
            ConfigError: If custom path is invalid or missing
        """
        if custom_path:
            path = cls._validate_config_path(Path(custom_path).expanduser())
            if not path.exists():
                raise ConfigError(f"Config file not found: {path}")
            return path

        return cls.DEFAULT_CONFIG_FILE

    @classmethod
    def ensure_config_dir(cls) -> Path:
        """Ensure config directory exists with secure permissions."""
        try:
            cls.DEFAULT_CONFIG_DIR.mkdir(parents=True, exist_ok=True)
            os.chmod(cls.DEFAULT_CONFIG_DIR, 0o700)
            return cls.DEFAULT_CONFIG_DIR
        except OSError as e:
            raise ConfigError(f"Failed to create config directory: {e}") from e

    @classmethod
    def load_config(cls, custom_path: str | None = None) -> OpskitConfig:
        """Load configuration from file.

        Returns defaults when no file exists.

        Raises:
            ConfigError: If loading fails
        """
        config_path = cls.get_config_path(custom_path)

        if not config_path.exists():
            logger.debug("Config file not found, using defaults")
            return OpskitConfig()

        try:
            mode = config_path.stat().st_mode & 0o777
            if mode & 0o077:
                logger.warning(
                    f"Config file has insecure permissions: {oct(mode)}. Fixing to 0600..."
                )
                os.chmod(config_path, 0o600)

            with open(config_path, "rb") as f:
                data = tomllib.load(f)

            logger.debug(f"Loaded config from: {config_path}")
            return OpskitConfig.from_dict(data)

        except (OSError, tomllib.TOMLDecodeError, TypeError) as e:
            raise ConfigError(f"Failed to load config: {e}") from e

    @classmethod
    def save_config(cls, config: OpskitConfig, custom_path: str | None = None) -> None:
        """Save configuration to file atomically.

        Existing comments and formatting are preserved by tomlkit.

        Raises:
            ConfigError: If saving fails
        """
        temp_path: Path | None = None
        try:
            if custom_path:
                config_path = cls._validate_config_path(Path(custom_path).expanduser())
                config_path.parent.mkdir(parents=True, exist_ok=True)
            else:
                cls.ensure_config_dir()
                config_path = cls.DEFAULT_CONFIG_FILE

            temp_path = config_path.with_suffix(".tmp")

            if config_path.exists():
                with open(config_path) as f:
                    doc = tomlkit.load(f)
            else:
                doc = tomlkit.document()

            for key, value in config.to_dict().items():
                doc[key] = value

            with open(temp_path, "w") as f:
                tomlkit.dump(doc, f)

            os.chmod(temp_path, 0o600)
            temp_path.replace(config_path)
            logger.debug(f"Saved config to: {config_path}")

        except ConfigError:
            raise
        except Exception as e:
            if temp_path and temp_path.exists():
                temp_path.unlink()
            raise ConfigError(f"Failed to save config: {e}") from e

    @classmethod
    def update_config(cls, custom_path: str | None = None, **updates: Any) -> OpskitConfig:
        """Update selected configuration values and save.

        Raises:
            ConfigError: If a key is unknown or saving fails
        """
        config = cls.load_config(custom_path)
        for key, value in updates.items():
            if not hasattr(config, key):
                raise ConfigError(f"Unknown config key: {key}")
            setattr(config, key, value)
        cls.save_config(config, custom_path)
        return config

    @classmethod
    def coerce_value(cls, key: str, raw: str) -> Any:
        """Convert a command-line string to the type of config field ``key``.

        Raises:
            ConfigError: If the key is unknown or the value does not parse
        """
        defaults = OpskitConfig()
        if not hasattr(defaults, key):
            raise ConfigError(f"Unknown config key: {key}")
        default = getattr(defaults, key)
        try:
            if isinstance(default, bool):
                lowered = raw.strip().lower()
                if lowered in ("true", "yes", "1", "on"):
                    return True
                if lowered in ("false", "no", "0", "off"):
                    return False
                raise ValueError(f"not a boolean: {raw}")
            if isinstance(default, int):
                return int(raw)
            if isinstance(default, float):
                return float(raw)
        except ValueError as e:
            raise ConfigError(f"Invalid value for {key}: {e}") from e
        return raw

    @classmethod
    def get_resource_group(
        cls, cli_value: str | None = None, custom_path: str | None = None
    ) -> str | None:
        """Resolve resource group: CLI value, then config."""
        if cli_value:
            return cli_value
        return cls.load_config(custom_path).default_resource_group

    @classmethod
    def get_subscription_id(
        cls, cli_value: str | None = None, custom_path: str | None = None
    ) -> str | None:
        """Resolve subscription: CLI value, then config, then AZURE_SUBSCRIPTION_ID."""
        if cli_value:
            return cli_value
        configured = cls.load_config(custom_path).subscription_id
        if configured:
            return configured
        return os.environ.get("AZURE_SUBSCRIPTION_ID")


__all__ = ["ConfigError", "ConfigManager", "OpskitConfig"]
