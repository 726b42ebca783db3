"""
Licensing configuration.

Configuration sources (in order of precedence):
    1. Environment variables (LICENSING_*)
    2. Values set at runtime or loaded from a YAML file
    3. Default values

Example licensing.yaml:

    keys:
      private_key_path: keys/issuer.key.pem
      public_key_path: keys/issuer.pub.pem
    output:
      pretty: true
    observability:
      log_level: info

The passphrase for the private key is best supplied as LICENSING_PASSPHRASE.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar, Union

import yaml

from licensing.errors import ConfigError

T = TypeVar("T")

DEFAULT_CONFIG_PATHS = (
    Path("licensing.yaml"),
    Path.home() / ".licensing" / "config.yaml",
)

_LOG_LEVELS = ("debug", "info", "warning", "error", "critical")


@dataclass
class ConfigValue(Generic[T]):
    """
    A single configuration value with metadata.

    Supports a default value, environment variable binding and validation.
    """
    default: T
    env_var: Optional[str] = None
    description: str = ""
    validator: Optional[Callable[[T], bool]] = None
    secret: bool = False  # Don't print if True
    _value: Optional[T] = field(default=None, repr=False)

    def get(self) -> T:
        """Get the current value."""
        if self.env_var and self.env_var in os.environ:
            return self._coerce(os.environ[self.env_var])
        return self._value if self._value is not None else self.default

    def set(self, value: T) -> None:
        """Set the value with validation."""
        if self.validator and not self.validator(value):
            raise ConfigError(f"Invalid value for config: {value!r}")
        self._value = value

    def _coerce(self, value: str) -> T:
        """Coerce an environment string to the type of the default."""
        target_type = type(self.default)
        if target_type == bool:
            return value.lower() in ("true", "1", "yes", "on")  # type: ignore
        elif target_type == int:
            return int(value)  # type: ignore
        return value  # type: ignore


@dataclass
class KeyConfig:
    """Key material locations."""
    private_key_path: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="",
        env_var="LICENSING_PRIVATE_KEY",
        description="Path to the PEM private key used for signing",
    ))
    public_key_path: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="",
        env_var="LICENSING_PUBLIC_KEY",
        description="Path to the PEM public key used for verification",
    ))
    passphrase: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="",
        env_var="LICENSING_PASSPHRASE",
        description="Passphrase protecting the private key",
        secret=True,
    ))


@dataclass
class OutputConfig:
    """Persisted document formatting."""
    pretty: ConfigValue[bool] = field(default_factory=lambda: ConfigValue(
        default=True,
        env_var="LICENSING_PRETTY",
        description="Indent written license documents",
    ))


@dataclass
class ObservabilityConfig:
    """Logging."""
    log_level: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="warning",
        env_var="LICENSING_LOG_LEVEL",
        description="Log level (debug, info, warning, error, critical)",
        validator=lambda x: x in _LOG_LEVELS,
    ))

    def python_level(self) -> int:
        return getattr(logging, self.log_level.get().upper(), logging.WARNING)


@dataclass
class LicensingConfig:
    """Root configuration."""
    keys: KeyConfig = field(default_factory=KeyConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def load(cls, path: Optional[Union[str, Path]] = None) -> "LicensingConfig":
        """Load configuration from `path`, or the first default file that exists."""
        config = cls()
        if path is not None:
            config.load_from_file(path)
            return config
        for candidate in DEFAULT_CONFIG_PATHS:
            if candidate.exists():
                config.load_from_file(candidate)
                break
        return config

    def load_from_file(self, path: Union[str, Path]) -> None:
        """Load configuration from a YAML file."""
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Configuration file not found: {path}")
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except yaml.YAMLError as ex:
            raise ConfigError(f"Invalid YAML in {path}: {ex}") from ex
        if data is None:
            return
        if not isinstance(data, dict):
            raise ConfigError(f"Configuration root must be a mapping: {path}")
        self._apply_dict(data)

    def _apply_dict(self, data: Dict[str, Any]) -> None:
        """Apply dictionary values to configuration."""
        def apply_to_config(config_obj: Any, values: Dict[str, Any], prefix: str) -> None:
            for key, value in values.items():
                dotted = f"{prefix}{key}"
                if not hasattr(config_obj, key):
                    raise ConfigError(f"Unknown configuration key: {dotted}", key=dotted)
                attr = getattr(config_obj, key)
                if isinstance(attr, ConfigValue):
                    attr.set(value)
                elif hasattr(attr, "__dataclass_fields__") and isinstance(value, dict):
                    apply_to_config(attr, value, f"{dotted}.")
                else:
                    raise ConfigError(f"Invalid configuration section: {dotted}", key=dotted)

        apply_to_config(self, data, "")

    def get(self, path: str) -> Any:
        """
        Get a configuration value by path.

        Example: config.get("keys.private_key_path")
        """
        obj: Any = self
        for part in path.split("."):
            if not hasattr(obj, part):
                raise ConfigError(f"Invalid config path: {path}", key=path)
            obj = getattr(obj, part)
        if isinstance(obj, ConfigValue):
            return obj.get()
        return obj

    def set(self, path: str, value: Any) -> None:
        """Set a configuration value by path."""
        parts = path.split(".")
        obj: Any = self
        for part in parts[:-1]:
            obj = getattr(obj, part, None)
        attr = getattr(obj, parts[-1], None)
        if not isinstance(attr, ConfigValue):
            raise ConfigError(f"Invalid config path: {path}", key=path)
        attr.set(value)

    def validate(self) -> List[str]:
        """
        Validate all configuration values.

        Returns list of validation errors.
        """
        errors: List[str] = []

        def validate_config(obj: Any, path: str = "") -> None:
            if isinstance(obj, ConfigValue):
                try:
                    value = obj.get()
                    if obj.validator and not obj.validator(value):
                        errors.append(f"{path}: validation failed for value {value!r}")
                except ValueError as e:
                    errors.append(f"{path}: {e}")
            elif hasattr(obj, "__dataclass_fields__"):
                for field_name in obj.__dataclass_fields__:
                    field_path = f"{path}.{field_name}" if path else field_name
                    validate_config(getattr(obj, field_name), field_path)

        validate_config(self)
        return errors

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary; secret values are masked."""
        def extract_values(obj: Any) -> Any:
            if isinstance(obj, ConfigValue):
                value = obj.get()
                return "***" if obj.secret and value else value
            elif hasattr(obj, "__dataclass_fields__"):
                return {k: extract_values(getattr(obj, k)) for k in obj.__dataclass_fields__}
            return obj

        return extract_values(self)

    def to_yaml(self) -> str:
        """Convert to YAML string."""
        return yaml.dump(self.to_dict(), default_flow_style=False)


__all__ = [
    "ConfigValue",
    "KeyConfig",
    "LicensingConfig",
    "ObservabilityConfig",
    "OutputConfig",
]
