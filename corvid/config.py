"""
Config system - Layered typed configuration for the ODM.

Merge order (later overrides earlier):
    1. ODMConfig defaults
    2. Config files (YAML or JSON); ``corvid.yaml`` / ``corvid.json`` auto-detected
    3. .env file (python-dotenv)
    4. Environment variables (``CORVID_*``; ``__`` nests: CORVID_OPTIONS__TLS=true)
    5. Manual overrides

Settings may sit at the top level of a file or under a ``corvid:`` section.
"""

from typing import Any, Dict, Optional, Union, get_args, get_origin, get_type_hints
from dataclasses import dataclass, field, fields, MISSING
from pathlib import Path
import json
import logging
import os

from dotenv import dotenv_values

from .faults.domains import ConfigFault, ConfigInvalidFault

logger = logging.getLogger("corvid.config")

__all__ = ["ODMConfig", "ConfigLoader", "get_settings", "configure", "reset_settings"]


@dataclass
class ODMConfig:
    """Settings for connection and validation defaults."""

    database_url: str = "memory://"
    strict_documents: bool = False
    auto_index: bool = True
    connect_retries: int = 3
    connect_retry_delay: float = 0.5
    options: Dict[str, Any] = field(default_factory=dict)


class ConfigLoader:
    """
    Merged view of every settings source, highest precedence first:
    overrides > environment variables > .env file > config files > defaults
    """

    def __init__(self, env_prefix: str = "CORVID_"):
        self.env_prefix = env_prefix
        self.config_data: Dict[str, Any] = {}

    @classmethod
    def load(
        cls,
        paths: Optional[list] = None,
        env_prefix: str = "CORVID_",
        env_file: Optional[str] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> "ConfigLoader":
        """
        Load configuration from every source.

        Args:
            paths: Config file paths (.yaml/.yml/.json); auto-detected if omitted
            env_prefix: Prefix for environment variables
            env_file: Path to .env file
            overrides: Manual overrides (highest precedence)
        """
        loader = cls(env_prefix=env_prefix)

        if paths is None:
            paths = [p for p in ("corvid.yaml", "corvid.yml", "corvid.json") if Path(p).exists()]

        for path in paths:
            loader._load_file(Path(path))

        if env_file:
            loader._load_env_file(env_file)

        loader._load_from_env()

        if overrides:
            loader._merge_dict(loader.config_data, overrides)

        return loader

    def _load_file(self, path: Path):
        if not path.exists():
            raise ConfigFault("CONFIG_FILE_MISSING", f"Config file not found: {path}")
        if path.suffix in (".yaml", ".yml"):
            self._load_yaml_file(path)
        elif path.suffix == ".json":
            self._load_json_file(path)
        else:
            raise ConfigFault("CONFIG_FILE_UNSUPPORTED", f"Unsupported config file type: {path}")
        logger.debug(f"Loaded config file {path}")

    def _load_json_file(self, path: Path):
        with open(path) as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as exc:
                raise ConfigFault("CONFIG_FILE_INVALID", f"Config file {path} is not valid JSON: {exc}") from exc
        self._merge_section(data, path)

    def _load_yaml_file(self, path: Path):
        """PyYAML is imported on first use."""
        import yaml
        with open(path) as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as exc:
                raise ConfigFault("CONFIG_FILE_INVALID", f"Config file {path} is not valid YAML: {exc}") from exc
        if data:
            self._merge_section(data, path)

    def _merge_section(self, data: Any, path: Path):
        if not isinstance(data, dict):
            raise ConfigFault("CONFIG_FILE_INVALID", f"Config file {path} must contain a mapping")
        section = data.get("corvid", data)
        if not isinstance(section, dict):
            raise ConfigFault("CONFIG_FILE_INVALID", f"'corvid' section in {path} must be a mapping")
        self._merge_dict(self.config_data, section)

    def _load_env_file(self, path: str):
        """Load prefixed keys from a .env file."""
        if not Path(path).exists():
            logger.warning(f".env file {path} not found; skipping")
            return
        for key, value in dotenv_values(path).items():
            if key.startswith(self.env_prefix) and value is not None:
                self._set_nested(key, value)

    def _load_from_env(self):
        """Layer prefixed variables from ``os.environ``."""
        for key, value in os.environ.items():
            if key.startswith(self.env_prefix):
                self._set_nested(key, value)

    def _set_nested(self, key: str, value: str):
        """Convert CORVID_OPTIONS__TLS to nested dict."""
        # Remove prefix
        key = key[len(self.env_prefix):]

        # "__" separates nesting levels
        parts = key.lower().split("__")

        current = self.config_data
        for part in parts[:-1]:
            if not isinstance(current.get(part), dict):
                current[part] = {}
            current = current[part]

        current[parts[-1]] = self._parse_value(value)

    def _parse_value(self, value: str) -> Any:
        """Best-effort typing of a string from the environment: bool, int, float, JSON, else str."""
        # Boolean
        if value.lower() in ("true", "yes", "on"):
            return True
        if value.lower() in ("false", "no", "off"):
            return False

        # Number
        try:
            if "." in value:
                return float(value)
            return int(value)
        except ValueError:
            pass

        # JSON
        if value.startswith(("{", "[")):
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                pass

        return value

    def _merge_dict(self, target: dict, source: dict):
        """Recursively merge ``source`` into ``target`` (nested dicts merge, other values replace)."""
        for key, value in source.items():
            if key in target and isinstance(target[key], dict) and isinstance(value, dict):
                self._merge_dict(target[key], value)
            else:
                target[key] = value

    def get(self, path: str, default: Any = None) -> Any:
        """Merged value at a dotted path such as ``"options.tls"``."""
        parts = path.split(".")
        current = self.config_data

        for part in parts:
            if isinstance(current, dict) and part in current:
                current = current[part]
            else:
                return default

        return current

    def to_settings(self) -> ODMConfig:
        """Validate the merged data into an ``ODMConfig``."""
        hints = get_type_hints(ODMConfig)
        known = {f.name for f in fields(ODMConfig)}
        for key in self.config_data:
            if key not in known:
                logger.warning(f"Ignoring unknown config key '{key}'")

        kwargs = {}
        for field_info in fields(ODMConfig):
            name = field_info.name
            if name in self.config_data:
                value = self.config_data[name]
                expected = hints[name]
                if not self._check_type(value, expected):
                    raise ConfigInvalidFault(
                        name,
                        f"expected {getattr(expected, '__name__', expected)}, got {type(value).__name__}",
                    )
                if expected is float:
                    value = float(value)
                kwargs[name] = value
            elif field_info.default is not MISSING:
                kwargs[name] = field_info.default
            else:
                kwargs[name] = field_info.default_factory()

        settings = ODMConfig(**kwargs)
        if settings.connect_retries < 1:
            raise ConfigInvalidFault("connect_retries", "must be at least 1")
        if settings.connect_retry_delay < 0:
            raise ConfigInvalidFault("connect_retry_delay", "must not be negative")
        return settings

    def _check_type(self, value: Any, expected_type: Any) -> bool:
        """True if ``value`` fits the ``ODMConfig`` annotation ``expected_type``."""
        origin = get_origin(expected_type)
        if origin is Union:
            if value is None:
                return True
            return any(self._check_type(value, arg) for arg in get_args(expected_type))

        # Dict[str, Any] and friends
        if origin:
            return isinstance(value, origin)

        if expected_type is float:
            return isinstance(value, (int, float)) and not isinstance(value, bool)
        if expected_type is int:
            return isinstance(value, int) and not isinstance(value, bool)
        return isinstance(value, expected_type)

    def to_dict(self) -> dict:
        return dict(self.config_data)


# ── Active settings ──────────────────────────────────────────────────────────

_settings: Optional[ODMConfig] = None


def get_settings() -> ODMConfig:
    """Active settings; loaded from files and environment on first use."""
    global _settings
    if _settings is None:
        _settings = ConfigLoader.load().to_settings()
    return _settings


def configure(settings: Union[ODMConfig, Dict[str, Any], None] = None, **overrides: Any) -> ODMConfig:
    """
    Replace the active settings.

    Usage:
        configure(ODMConfig(database_url="nedb:///tmp/data"))
        configure(strict_documents=True)   # layered over files and environment
    """
    global _settings
    if isinstance(settings, ODMConfig):
        if overrides:
            loader = ConfigLoader(env_prefix="")
            loader.config_data = {**settings.__dict__, **overrides}
            settings = loader.to_settings()
        _settings = settings
    else:
        merged = dict(settings or {})
        merged.update(overrides)
        _settings = ConfigLoader.load(overrides=merged).to_settings()
    return _settings


def reset_settings() -> None:
    """Forget the active settings (for testing)."""
    global _settings
    _settings = None
