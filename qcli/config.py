"""
Configuration management for qcli.
Loads defaults, the user config file and the nearest project ``.qrc``,
later sources overriding earlier ones key by key.
"""
import json
import logging
import os
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Any, Optional

from .errors import ConfigError
from .constants import (
    CONFIG_FILE,
    DEFAULT_MAX_INPUT_SIZE,
    DEFAULT_MODEL,
    RC_FILE_NAME,
)


logger = logging.getLogger(__name__)

COLOR_MODES = ("auto", "always", "never")


@dataclass
class ContextConfig:
    """Which environment details go into the system prompt."""
    git: bool = True
    cwd: bool = True


@dataclass
class SafetyConfig:
    """Guards applied before any tool is allowed to run."""
    blocked_commands: list = field(default_factory=list)
    max_input_size: int = DEFAULT_MAX_INPUT_SIZE


@dataclass
class UIConfig:
    """UI-specific configuration."""
    color: str = "auto"


@dataclass
class AppConfig:
    """Main application configuration."""
    model: str = DEFAULT_MODEL
    system_prompt: Optional[str] = None
    prompts: dict = field(default_factory=dict)
    context: ContextConfig = field(default_factory=ContextConfig)
    safety: SafetyConfig = field(default_factory=SafetyConfig)
    ui: UIConfig = field(default_factory=UIConfig)


_SECTION_TYPES = {
    "context": {"git": bool, "cwd": bool},
    "safety": {"blocked_commands": list, "max_input_size": int},
    "ui": {"color": str},
}


def find_rc_file(start: Optional[Path] = None) -> Optional[Path]:
    """
    Find the nearest project config file.

    Args:
        start: Directory to start from (defaults to the cwd)

    Returns:
        Path of the first ``.qrc`` found walking up, or None
    """
    current = (start or Path.cwd()).resolve()
    for directory in (current, *current.parents):
        candidate = directory / RC_FILE_NAME
        if candidate.is_file():
            return candidate
    return None


def merge_config(base: dict, override: dict) -> dict:
    """
    Merge two raw config dictionaries.

    Nested dictionaries are merged key by key; any other value in
    ``override`` replaces the one in ``base``.
    """
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = value
    return merged


def _read_json(path: Path) -> dict:
    """Read one JSON config file."""
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config in {path} must be a JSON object")
    return data


def _check_type(value: Any, expected: Any, where: str) -> None:
    # bool is an int subclass; keep them apart
    if expected is bool:
        ok = isinstance(value, bool)
    elif expected is int:
        ok = isinstance(value, int) and not isinstance(value, bool)
    else:
        ok = isinstance(value, expected)
    if not ok:
        raise ConfigError(f"{where} must be {expected.__name__}, got {type(value).__name__}")


def build_config(data: dict, source: str = "config") -> AppConfig:
    """
    Build an AppConfig from a merged raw dictionary.

    Args:
        data: Raw configuration values
        source: Description used in error messages

    Returns:
        AppConfig

    Raises:
        ConfigError: If a value has the wrong type
    """
    config = AppConfig()
    scalars = {
        "model": str,
        "system_prompt": str,
        "prompts": dict,
    }

    for key, value in data.items():
        if key in _SECTION_TYPES:
            _check_type(value, dict, f"{source}: {key}")
            section = getattr(config, key)
            for sub_key, sub_value in value.items():
                if sub_key not in _SECTION_TYPES[key]:
                    logger.warning("Ignoring unknown config key %s.%s", key, sub_key)
                    continue
                expected = _SECTION_TYPES[key][sub_key]
                _check_type(sub_value, expected, f"{source}: {key}.{sub_key}")
                setattr(section, sub_key, sub_value)
        elif key in scalars:
            if value is None and key == "system_prompt":
                continue
            _check_type(value, scalars[key], f"{source}: {key}")
            setattr(config, key, value)
        else:
            logger.warning("Ignoring unknown config key %s", key)

    if config.ui.color not in COLOR_MODES:
        raise ConfigError(
            f"{source}: ui.color must be one of {', '.join(COLOR_MODES)}"
        )
    for alias, text in config.prompts.items():
        _check_type(text, str, f"{source}: prompts.{alias}")
    return config


def expand_alias(prompts: dict, prompt: str) -> str:
    """Replace a leading prompt alias with its configured text."""
    head, _, rest = prompt.strip().partition(" ")
    rest = rest.strip()
    template = prompts.get(head)
    if template is None:
        return prompt
    return f"{template} {rest}".strip() if rest else template


class ConfigManager:
    """
    Manages application configuration from JSON files.

    Sources, later wins: built-in defaults, the user config file, the
    nearest ``.qrc``. Setting ``Q_CONFIG_SKIP=1`` keeps the defaults only.
    """

    def __init__(
        self,
        config_file: Optional[Path] = None,
        cwd: Optional[Path] = None,
    ) -> None:
        self._config_file = Path(config_file) if config_file else CONFIG_FILE
        self._cwd = cwd
        self._sources: list[Path] = []
        self._config: AppConfig = AppConfig()
        self._load_config()

    def _load_config(self) -> None:
        """Load and merge every config source."""
        self._sources = []
        if os.environ.get("Q_CONFIG_SKIP") == "1":
            self._config = AppConfig()
            return

        data: dict = {}
        for path in (self._config_file, find_rc_file(self._cwd)):
            if path is None or not path.is_file():
                continue
            logger.debug("Loading config from %s", path)
            data = merge_config(data, _read_json(path))
            self._sources.append(path)

        source = ", ".join(str(p) for p in self._sources) or "defaults"
        self._config = build_config(data, source)

    @property
    def config(self) -> AppConfig:
        """Get the current configuration."""
        return self._config

    @property
    def sources(self) -> list[Path]:
        """Files that contributed to the current configuration."""
        return list(self._sources)

    def expand_alias(self, prompt: str) -> str:
        """
        Replace a leading prompt alias with its configured text.

        Args:
            prompt: The user's query

        Returns:
            The query with its first word expanded when it names an alias
        """
        return expand_alias(self._config.prompts, prompt)

    def to_dict(self) -> dict:
        """Plain-dict view of the configuration."""
        return asdict(self._config)

    def reload(self) -> None:
        """Reload configuration from disk."""
        self._load_config()


_config_manager: Optional[ConfigManager] = None


def get_config() -> ConfigManager:
    """Get the global configuration manager instance."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager
