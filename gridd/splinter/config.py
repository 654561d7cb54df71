"""
Daemon Configuration

Configuration with YAML files, environment variables and validation.

Configuration Sources (in order of precedence):
    1. Environment variables (GRIDD_*)
    2. Runtime overrides (CLI flags)
    3. Config file passed with --config
    4. Default values

The loader resolves every value once and hands out an immutable
``DaemonConfig`` snapshot. Components receive the section they need at
construction and never read configuration afterwards.
"""

from __future__ import annotations

import os
import pathlib
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar, Union

import yaml

from gridd.core import load_yaml
from gridd.splinter.errors import ConfigError

T = TypeVar("T")

_LOG_LEVELS = ("debug", "info", "warning", "error", "critical")


@dataclass
class ConfigValue(Generic[T]):
    """
    A single configuration value with metadata.

    Supports default values, environment variable binding and validation.
    """
    default: T
    env_var: Optional[str] = None
    description: str = ""
    validator: Optional[Callable[[T], bool]] = None
    _value: Optional[T] = field(default=None, repr=False)

    def get(self) -> T:
        """Get the current value."""
        if self.env_var and self.env_var in os.environ:
            return self._coerce(os.environ[self.env_var])
        return self._value if self._value is not None else self.default

    def set(self, value: Any) -> None:
        """Set the value, coercing strings from YAML or flags to the default's type."""
        if isinstance(value, str) and not isinstance(self.default, str):
            value = self._coerce(value)
        self._value = value

    def _coerce(self, value: str) -> T:
        """Coerce string value to target type."""
        target_type = type(self.default)

        try:
            if target_type == bool:
                return value.strip().lower() in ("true", "1", "yes", "on")  # type: ignore
            elif target_type == int:
                return int(value)  # type: ignore
            elif target_type == float:
                return float(value)  # type: ignore
            else:
                return value  # type: ignore
        except ValueError as exc:
            raise ConfigError(
                f"Cannot convert {value!r} to {target_type.__name__}", cause=exc
            ) from exc


# =============================================================================
# SECTIONS (mutable, loader side)
# =============================================================================

@dataclass
class SplinterSection:
    url: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="http://localhost:8085",
        env_var="GRIDD_SPLINTERD_URL",
        description="Base URL of the splinterd REST API",
        validator=lambda x: bool(x),
    ))


@dataclass
class KeysSection:
    key_name: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="gridd",
        env_var="GRIDD_KEY_NAME",
        description="Name of the scabbard admin key pair ({key_dir}/{key_name}.priv|.pub)",
        validator=lambda x: bool(x),
    ))
    key_dir: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="/etc/grid/keys",
        env_var="GRIDD_KEY_DIR",
        description="Directory holding key files",
    ))


@dataclass
class ContractsSection:
    scar_dir: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="/usr/share/scar",
        env_var="GRIDD_SCAR_DIR",
        description="Directory holding the .scar contract artifacts",
    ))


@dataclass
class ListenerSection:
    reconnect: ConfigValue[bool] = field(default_factory=lambda: ConfigValue(
        default=True,
        env_var="GRIDD_RECONNECT",
        description="Reconnect when the admin event connection is lost",
    ))
    reconnect_limit: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=10,
        env_var="GRIDD_RECONNECT_LIMIT",
        description="Consecutive failed reconnection attempts before closing",
        validator=lambda x: x >= 0,
    ))
    idle_timeout_seconds: ConfigValue[float] = field(default_factory=lambda: ConfigValue(
        default=60.0,
        env_var="GRIDD_IDLE_TIMEOUT",
        description="Seconds without a message before the connection counts as failed",
        validator=lambda x: x > 0,
    ))
    reconnect_base_delay_seconds: ConfigValue[float] = field(default_factory=lambda: ConfigValue(
        default=1.0,
        env_var="GRIDD_RECONNECT_BASE_DELAY",
        description="Delay before the first reconnection attempt",
        validator=lambda x: x >= 0,
    ))
    reconnect_max_delay_seconds: ConfigValue[float] = field(default_factory=lambda: ConfigValue(
        default=30.0,
        env_var="GRIDD_RECONNECT_MAX_DELAY",
        description="Upper bound of the reconnection backoff",
        validator=lambda x: x >= 0,
    ))


@dataclass
class SubmitterSection:
    timeout_seconds: ConfigValue[float] = field(default_factory=lambda: ConfigValue(
        default=30.0,
        env_var="GRIDD_SUBMIT_TIMEOUT",
        description="HTTP timeout of batch submission",
        validator=lambda x: x > 0,
    ))


@dataclass
class LoggingSection:
    level: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="info",
        env_var="GRIDD_LOG_LEVEL",
        description="Root log level",
        validator=lambda x: str(x).lower() in _LOG_LEVELS,
    ))
    json: ConfigValue[bool] = field(default_factory=lambda: ConfigValue(
        default=False,
        env_var="GRIDD_LOG_JSON",
        description="Emit one JSON object per log record",
    ))


@dataclass
class DaemonSettings:
    """Root of the configuration tree."""
    splinter: SplinterSection = field(default_factory=SplinterSection)
    keys: KeysSection = field(default_factory=KeysSection)
    contracts: ContractsSection = field(default_factory=ContractsSection)
    listener: ListenerSection = field(default_factory=ListenerSection)
    submitter: SubmitterSection = field(default_factory=SubmitterSection)
    logging: LoggingSection = field(default_factory=LoggingSection)

    def to_dict(self) -> Dict[str, Any]:
        def extract_values(obj: Any) -> Any:
            if isinstance(obj, ConfigValue):
                return obj.get()
            elif hasattr(obj, "__dataclass_fields__"):
                return {k: extract_values(getattr(obj, k)) for k in obj.__dataclass_fields__}
            return obj

        return extract_values(self)


# =============================================================================
# SNAPSHOT (immutable, component side)
# =============================================================================

@dataclass(frozen=True)
class ListenerConfig:
    reconnect: bool = True
    reconnect_limit: int = 10
    idle_timeout_seconds: float = 60.0
    reconnect_base_delay_seconds: float = 1.0
    reconnect_max_delay_seconds: float = 30.0


@dataclass(frozen=True)
class DaemonConfig:
    splinterd_url: str
    key_name: str
    key_dir: pathlib.Path
    scar_dir: pathlib.Path
    listener: ListenerConfig
    submit_timeout_seconds: float
    log_level: str
    log_json: bool


class ConfigLoader:
    """Builds a ``DaemonConfig`` from defaults, a YAML file, overrides and env."""

    def __init__(self):
        self._settings = DaemonSettings()

    @property
    def settings(self) -> DaemonSettings:
        return self._settings

    def load_from_file(self, path: Union[str, pathlib.Path]) -> None:
        """Load configuration from a YAML file."""
        path = pathlib.Path(path)
        if not path.exists():
            raise ConfigError(f"Configuration file not found: {path}")

        try:
            data = load_yaml(path)
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigError(f"Failed to read configuration file {path}", cause=exc) from exc

        if data is None:
            return
        if not isinstance(data, dict):
            raise ConfigError(f"Configuration file must hold a mapping: {path}")
        self._apply_dict(data)

    def _apply_dict(self, data: Dict[str, Any]) -> None:
        def apply_to_config(config_obj: Any, values: Dict[str, Any], prefix: str) -> None:
            for key, value in values.items():
                path = f"{prefix}{key}"
                if not hasattr(config_obj, key):
                    raise ConfigError(f"Unknown configuration key: {path}")
                attr = getattr(config_obj, key)
                if isinstance(attr, ConfigValue):
                    attr.set(value)
                elif hasattr(attr, "__dataclass_fields__") and isinstance(value, dict):
                    apply_to_config(attr, value, f"{path}.")
                else:
                    raise ConfigError(f"Configuration key {path} must be a mapping")

        apply_to_config(self._settings, data, "")

    def set(self, path: str, value: Any) -> None:
        """
        Set a configuration value by path.

        Example: loader.set("listener.reconnect_limit", 3)
        """
        obj: Any = self._settings
        for part in path.split("."):
            if not hasattr(obj, part):
                raise ConfigError(f"Invalid config path: {path}")
            obj = getattr(obj, part)
        if not isinstance(obj, ConfigValue):
            raise ConfigError(f"Invalid config path: {path}")
        obj.set(value)

    def validate(self) -> List[str]:
        """Return a list of validation errors (empty when valid)."""
        errors: List[str] = []

        def validate_config(obj: Any, path: str = "") -> None:
            if isinstance(obj, ConfigValue):
                try:
                    value = obj.get()
                    if obj.validator and not obj.validator(value):
                        errors.append(f"{path}: validation failed for value {value!r}")
                except (ConfigError, TypeError, ValueError) as e:
                    errors.append(f"{path}: {e}")
            elif hasattr(obj, "__dataclass_fields__"):
                for field_name in obj.__dataclass_fields__:
                    field_path = f"{path}.{field_name}" if path else field_name
                    validate_config(getattr(obj, field_name), field_path)

        validate_config(self._settings)
        return errors

    def snapshot(self) -> DaemonConfig:
        """Resolve every value and return the immutable configuration."""
        errors = self.validate()
        if errors:
            raise ConfigError("Invalid configuration: " + "; ".join(errors))

        s = self._settings
        return DaemonConfig(
            splinterd_url=str(s.splinter.url.get()),
            key_name=str(s.keys.key_name.get()),
            key_dir=pathlib.Path(s.keys.key_dir.get()),
            scar_dir=pathlib.Path(s.contracts.scar_dir.get()),
            listener=ListenerConfig(
                reconnect=bool(s.listener.reconnect.get()),
                reconnect_limit=int(s.listener.reconnect_limit.get()),
                idle_timeout_seconds=float(s.listener.idle_timeout_seconds.get()),
                reconnect_base_delay_seconds=float(s.listener.reconnect_base_delay_seconds.get()),
                reconnect_max_delay_seconds=float(s.listener.reconnect_max_delay_seconds.get()),
            ),
            submit_timeout_seconds=float(s.submitter.timeout_seconds.get()),
            log_level=str(s.logging.level.get()).lower(),
            log_json=bool(s.logging.json.get()),
        )


def load_config(
    path: Optional[Union[str, pathlib.Path]] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> DaemonConfig:
    """Load configuration from ``path`` (optional) and dotted-path ``overrides``.

    Overrides whose value is None are ignored, so argparse namespaces can be
    passed through without filtering.
    """
    loader = ConfigLoader()
    if path is not None:
        loader.load_from_file(path)
    for dotted, value in (overrides or {}).items():
        if value is not None:
            loader.set(dotted, value)
    return loader.snapshot()
