"""
Cipherlink - Configuration Management

Settings come from three layers, lowest priority first: the built-in
defaults below, an optional TOML file in the data directory, and
CIPHERLINK_<SECTION>_<KEY> environment variables.

Author: orpheus497
Version: 1.0.0
"""

import copy
import os
import sys
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

# tomllib joined the standard library in 3.11
if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from .constants import (
    CONFIG_FILENAME,
    DEFAULT_DATA_DIR,
    ENV_PREFIX,
    MAX_HISTORY,
    RSA_DEFAULT_KEY_SIZE,
    SESSION_FILENAME,
)
from .errors import ConfigError, ErrorCode

DEFAULT_CONFIG: Dict[str, Any] = {
    "crypto": {
        "rsa_key_size": RSA_DEFAULT_KEY_SIZE,
    },
    "limits": {
        "max_history": MAX_HISTORY,
    },
    "storage": {
        "session_filename": SESSION_FILENAME,
    },
    "logging": {
        "level": "INFO",
        "file_logging": True,
        "console_logging": False,
    },
}

_TRUTHY = ("true", "1", "yes", "on")


def _deep_merge(base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for name, value in overlay.items():
        existing = merged.get(name)
        if isinstance(existing, dict) and isinstance(value, dict):
            merged[name] = _deep_merge(existing, value)
        else:
            merged[name] = value
    return merged


def _coerce(raw: str, like: Any) -> Any:
    """Convert an environment string to the type of the value it replaces."""
    if isinstance(like, bool):
        return raw.strip().lower() in _TRUTHY
    if isinstance(like, int):
        return int(raw)
    if isinstance(like, float):
        return float(raw)
    return raw


def _toml_value(value: Any) -> Optional[str]:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return repr(value)
    if isinstance(value, str):
        escaped = value.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    return None


def _toml_lines(data: Dict[str, Any]) -> Iterator[str]:
    """Render flat sections as TOML; nested or unsupported values are skipped."""
    for section_name, section in data.items():
        if not isinstance(section, dict):
            continue
        yield f"[{section_name}]"
        for name, value in section.items():
            rendered = _toml_value(value)
            if rendered is not None:
                yield f"{name} = {rendered}"
        yield ""


class Config:
    """Layered settings for the CLI and library.

    Attributes:
        config_path: Location of the TOML file (may not exist yet)
        data: Effective settings, keyed by section then key
    """

    def __init__(self, config_path: Optional[Path] = None):
        """
        Args:
            config_path: TOML file to read; defaults to config.toml
                inside the default data directory
        """
        if config_path is None:
            config_path = Path(DEFAULT_DATA_DIR).expanduser() / CONFIG_FILENAME

        self.config_path = Path(config_path)
        self.data = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """Build the effective settings from all three layers.

        Raises:
            ConfigError: E704 if the file exists but is not valid TOML
        """
        settings = copy.deepcopy(DEFAULT_CONFIG)

        if self.config_path.exists():
            try:
                with open(self.config_path, "rb") as handle:
                    from_file = tomllib.load(handle)
            except (OSError, tomllib.TOMLDecodeError) as e:
                raise ConfigError(
                    ErrorCode.E704_CONFIG_PARSE_ERROR,
                    f"Could not read {self.config_path.name}: {e}",
                    {"path": str(self.config_path), "error": str(e)},
                ) from e
            settings = _deep_merge(settings, from_file)

        self._apply_env_overrides(settings)
        self._validate(settings)
        return settings

    def _validate(self, settings: Dict[str, Any]) -> None:
        """
        Raises:
            ConfigError: E703 if limits.max_history is not a positive integer
        """
        limits = settings.get("limits")
        max_history = limits.get("max_history") if isinstance(limits, dict) else None
        if isinstance(max_history, bool) or not isinstance(max_history, int) or max_history < 1:
            raise ConfigError(
                ErrorCode.E703_INVALID_CONFIG,
                f"limits.max_history must be a positive integer, got {max_history!r}",
                {"path": str(self.config_path), "key": "limits.max_history"},
            )

    @staticmethod
    def _apply_env_overrides(settings: Dict[str, Any]) -> None:
        """Overlay CIPHERLINK_<SECTION>_<KEY> variables onto known keys.

        A value that cannot be converted to the type of the key it
        replaces (e.g. CIPHERLINK_CRYPTO_RSA_KEY_SIZE=big) is ignored.
        """
        for section_name, section in settings.items():
            if not isinstance(section, dict):
                continue
            for name in list(section):
                variable = f"{ENV_PREFIX}_{section_name}_{name}".upper()
                raw = os.environ.get(variable)
                if raw is None:
                    continue
                try:
                    section[name] = _coerce(raw, section[name])
                except ValueError:
                    continue

    def get(self, section: str, key: str, default: Any = None) -> Any:
        return self.data.get(section, {}).get(key, default)

    def set(self, section: str, key: str, value: Any) -> None:
        self.data.setdefault(section, {})[key] = value

    def to_dict(self) -> Dict[str, Any]:
        """Return a deep copy of the effective settings."""
        return copy.deepcopy(self.data)

    def save(self) -> None:
        """Write the effective settings back to config_path.

        Raises:
            ConfigError: E702 on any filesystem error
        """
        self._write(self.config_path, self.data)

    @classmethod
    def create_example(cls, path: Path) -> None:
        """Write the built-in defaults to path as a commented starting point."""
        cls._write(
            Path(path),
            DEFAULT_CONFIG,
            header="# Cipherlink Configuration File\n# Edit and save as config.toml in your data directory\n\n",
        )

    @staticmethod
    def _write(path: Path, data: Dict[str, Any], header: str = "") -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(header + "\n".join(_toml_lines(data)), encoding="utf-8")
        except OSError as e:
            raise ConfigError(
                ErrorCode.E702_CONFIG_SAVE_FAILED,
                f"Could not write configuration to {path}: {e}",
                {"path": str(path), "error": str(e)},
            ) from e
