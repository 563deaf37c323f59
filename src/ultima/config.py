"""
Ultima - Configuration Management

This module handles loading, merging, and managing configuration from
TOML files and environment variables. Supports default values and
runtime configuration updates.

Nothing secret is required in the file: a PERSONAL passphrase may be
stored there, but is usually typed into the setup screen instead.
"""

import copy
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

# Python 3.11+ has tomllib built-in, older versions need tomli
if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from .constants import (
    CONFIG_FILENAME,
    DEFAULT_DATA_DIR,
    DEFAULT_STUN_SERVERS,
    DOWNLOADS_DIR,
    FILE_CHUNK_SIZE,
)
from .crypto import CryptoConfig, EncLevel
from .errors import ConfigError, ErrorCode

# Default configuration dictionary
DEFAULT_CONFIG: Dict[str, Any] = {
    "security": {
        "enc_level": EncLevel.STANDARD.value,
        "passphrase": "",
        "use_mic": False,
    },
    "network": {
        "stun_servers": list(DEFAULT_STUN_SERVERS),
        # 0 waits for path enumeration indefinitely
        "gather_timeout": 0.0,
    },
    "transfer": {
        "chunk_size": FILE_CHUNK_SIZE,
        "downloads_dir": "",
    },
    "ui": {
        "theme": "dark",
        "language": "en",
    },
    "logging": {
        "level": "INFO",
        "file_logging": True,
    },
}


class Config:
    """Configuration manager for Ultima.

    Loads configuration from TOML files, merges with defaults,
    and applies environment variable overrides.

    Attributes:
        config_path: Path to the configuration file
        data: Configuration dictionary
    """

    def __init__(self, config_path: Optional[Path] = None, data_dir: Optional[Path] = None):
        """Initialize configuration manager.

        Args:
            config_path: Path to configuration file (optional)
                If not provided, uses <data_dir>/config.toml
            data_dir: Application data directory (optional)
        """
        self.data_dir = Path(data_dir or DEFAULT_DATA_DIR).expanduser()
        if config_path is None:
            config_path = self.data_dir / CONFIG_FILENAME

        self.config_path = Path(config_path)
        self.data = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from file and merge with defaults.

        Returns:
            Merged configuration dictionary

        Raises:
            ConfigError: If configuration loading or parsing fails
        """
        config = copy.deepcopy(DEFAULT_CONFIG)

        if self.config_path.exists():
            try:
                with open(self.config_path, "rb") as f:
                    file_config = tomllib.load(f)
            except (OSError, tomllib.TOMLDecodeError) as e:
                raise ConfigError(
                    ErrorCode.E704_CONFIG_PARSE_ERROR,
                    f"Failed to parse configuration file: {e}",
                    {"path": str(self.config_path), "error": str(e)},
                )

            config = self._merge_config(config, file_config)

        return self._apply_env_overrides(config)

    def _merge_config(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively merge override config into base config.

        Args:
            base: Base configuration dictionary
            override: Override configuration dictionary

        Returns:
            Merged configuration dictionary
        """
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_config(result[key], value)
            else:
                result[key] = value

        return result

    def _apply_env_overrides(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Apply environment variable overrides to configuration.

        Environment variables follow the pattern: ULTIMA_SECTION_KEY
        For example: ULTIMA_SECURITY_ENC_LEVEL=personal
        List values are comma-separated.

        Args:
            config: Base configuration dictionary

        Returns:
            Configuration with environment overrides applied
        """
        result = config

        for section, settings in config.items():
            if not isinstance(settings, dict):
                continue

            for key in settings:
                env_var = f"ULTIMA_{section.upper()}_{key.upper()}"
                env_value = os.environ.get(env_var)

                if env_value is None:
                    continue

                original_type = type(settings[key])
                try:
                    if original_type == bool:
                        result[section][key] = env_value.lower() in ("true", "1", "yes")
                    elif original_type == int:
                        result[section][key] = int(env_value)
                    elif original_type == float:
                        result[section][key] = float(env_value)
                    elif original_type == list:
                        result[section][key] = [v.strip() for v in env_value.split(",") if v.strip()]
                    else:
                        result[section][key] = env_value
                except ValueError:
                    # Keep original value if conversion fails
                    pass

        return result

    def get(self, section: str, key: str, default: Any = None) -> Any:
        """Get a configuration value.

        Args:
            section: Configuration section name
            key: Configuration key name
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        return self.data.get(section, {}).get(key, default)

    def set(self, section: str, key: str, value: Any) -> None:
        """Set a configuration value.

        Args:
            section: Configuration section name
            key: Configuration key name
            value: Value to set
        """
        if section not in self.data:
            self.data[section] = {}

        self.data[section][key] = value

    def crypto_config(self) -> CryptoConfig:
        """Build the security choices for a connection attempt.

        Raises:
            ConfigError: If the level is unknown or PERSONAL lacks a passphrase
        """
        level_name = str(self.get("security", "enc_level", EncLevel.STANDARD.value)).lower()
        try:
            level = EncLevel(level_name)
        except ValueError:
            raise ConfigError(
                ErrorCode.E703_INVALID_CONFIG,
                f"Unknown protection level: {level_name}",
                {"choices": [lvl.value for lvl in EncLevel]},
            )

        config = CryptoConfig(
            enc_level=level,
            passphrase=self.get("security", "passphrase") or None,
            use_mic=bool(self.get("security", "use_mic", False)),
        )
        config.validate()
        return config

    def stun_servers(self) -> List[str]:
        return list(self.get("network", "stun_servers", DEFAULT_STUN_SERVERS))

    def gather_timeout(self) -> Optional[float]:
        """Path enumeration timeout in seconds, None to wait indefinitely."""
        timeout = float(self.get("network", "gather_timeout", 0) or 0)
        return timeout if timeout > 0 else None

    def downloads_dir(self) -> Path:
        configured = self.get("transfer", "downloads_dir")
        if configured:
            return Path(configured).expanduser()
        return self.data_dir / DOWNLOADS_DIR

    def save(self) -> None:
        """Save current configuration to file.

        Raises:
            ConfigError: If saving fails
        """
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)

            with open(self.config_path, "w") as f:
                self._write_toml(f, self.data)

        except OSError as e:
            raise ConfigError(
                ErrorCode.E702_CONFIG_SAVE_FAILED,
                f"Failed to save configuration: {e}",
                {"path": str(self.config_path), "error": str(e)},
            )

    @staticmethod
    def _toml_value(value: Any) -> str:
        if isinstance(value, bool):
            return str(value).lower()
        if isinstance(value, (int, float)):
            return f"{value}"
        if isinstance(value, list):
            return "[" + ", ".join(Config._toml_value(v) for v in value) + "]"
        escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'

    @classmethod
    def _write_toml(cls, file, data: Dict[str, Any]) -> None:
        """Write configuration data as TOML format.

        Args:
            file: File object to write to
            data: Configuration data to write
        """
        for section, settings in data.items():
            if isinstance(settings, dict):
                file.write(f"[{section}]\n")
                for key, value in settings.items():
                    file.write(f"{key} = {cls._toml_value(value)}\n")
                file.write("\n")

    def to_dict(self) -> Dict[str, Any]:
        """Get configuration as dictionary.

        Returns:
            Configuration dictionary
        """
        return copy.deepcopy(self.data)

    @classmethod
    def create_example(cls, path: Path) -> None:
        """Create an example configuration file.

        Args:
            path: Path where to create the example config

        Raises:
            ConfigError: If file creation fails
        """
        try:
            path.parent.mkdir(parents=True, exist_ok=True)

            with open(path, "w") as f:
                f.write("# Ultima Configuration File\n")
                f.write("# enc_level: open | standard | personal\n\n")
                cls._write_toml(f, DEFAULT_CONFIG)

        except OSError as e:
            raise ConfigError(
                ErrorCode.E702_CONFIG_SAVE_FAILED,
                f"Failed to create example configuration: {e}",
                {"path": str(path), "error": str(e)},
            )
