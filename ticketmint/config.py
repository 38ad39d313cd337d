"""
Ticketmint Configuration

Layered configuration with YAML files, environment variables, validation and
runtime updates.

Configuration Sources (in order of precedence):
    1. Environment variables (TICKETMINT_*)
    2. Runtime overrides (`ConfigManager.set`)
    3. Config file (--config, ./ticketmint.yaml, ~/.ticketmint/config.yaml)
    4. Default values

Files are validated against ``schemas/config.schema.json`` and every value is
checked by its validator before any is applied; a file with one bad entry
changes nothing.

Copyright (c) 2026 The Ticketmint Authors. All rights reserved.
"""

from __future__ import annotations

import json
import os
import threading
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Callable, Dict, Generic, List, Optional, Tuple, TypeVar, Union

import yaml
from jsonschema import Draft202012Validator
from referencing import Registry, Resource
from referencing.jsonschema import DRAFT202012

from ticketmint.keys import DEFAULT_PROGRAM_ID, Keypair, Pubkey

T = TypeVar("T")

SCHEMAS_DIR = Path(__file__).resolve().parent / "schemas"
CONFIG_SCHEMA = "config.schema.json"
SECRET_MASK = "***"


class ConfigError(Exception):
    """Configuration error."""
    pass


class ConfigValidationError(ConfigError):
    """Configuration validation error."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        self.errors = errors or []
        super().__init__(message)


# =============================================================================
# VALUE VALIDATORS
# =============================================================================


def _is_pubkey_text(value: Any, allow_empty: bool = False) -> bool:
    if value in (None, ""):
        return allow_empty
    try:
        Pubkey.from_string(str(value))
    except ValueError:
        return False
    return True


def _is_secret_key_text(value: Any) -> bool:
    if value in (None, ""):
        return True
    try:
        Keypair.from_base58(str(value))
    except ValueError:
        return False
    return True


# =============================================================================
# CONFIG VALUES
# =============================================================================


@dataclass
class ConfigValue(Generic[T]):
    """
    A single configuration value with metadata.

    Supports default values, environment variable binding,
    validation, and change callbacks.
    """
    default: T
    env_var: Optional[str] = None
    description: str = ""
    validator: Optional[Callable[[T], bool]] = None
    secret: bool = False  # masked in to_dict() and never logged
    _value: Optional[T] = field(default=None, repr=False)
    _callbacks: List[Callable[[T, T], None]] = field(default_factory=list, repr=False)

    def get(self) -> T:
        if self.env_var and self.env_var in os.environ:
            return self._coerce(os.environ[self.env_var])
        return self._value if self._value is not None else self.default

    def set(self, value: T) -> None:
        """Set the value with validation."""
        if self.validator and not self.validator(value):
            shown = SECRET_MASK if self.secret else value
            raise ConfigValidationError(f"Invalid value for config: {shown}")

        old_value = self._value
        self._value = value

        for callback in self._callbacks:
            callback(old_value, value)

    def reset(self) -> None:
        self._value = None

    def _coerce(self, value: str) -> T:
        """Coerce string value to target type."""
        target_type = type(self.default)

        if target_type == bool:
            return value.lower() in ("true", "1", "yes", "on")  # type: ignore
        elif target_type == int:
            return int(value)  # type: ignore
        else:
            return value  # type: ignore

    def on_change(self, callback: Callable[[T, T], None]) -> None:
        self._callbacks.append(callback)


@dataclass
class ProgramConfig:
    """Which deployment of the ticket program to address."""
    program_id: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default=str(DEFAULT_PROGRAM_ID),
        env_var="TICKETMINT_PROGRAM_ID",
        description="Ticket program address (base58)",
        validator=_is_pubkey_text,
    ))


@dataclass
class SigningConfig:
    """Off-ledger proof issuance keys."""
    private_key: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="",
        env_var="TICKETMINT_SIGNING_PRIVATE_KEY",
        description="Claim signer secret key (base58, 64 bytes)",
        validator=_is_secret_key_text,
        secret=True,
    ))
    public_key: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="",
        env_var="TICKETMINT_SIGNING_PUBLIC_KEY",
        description="Expected claim signer public key (base58)",
        validator=lambda x: _is_pubkey_text(x, allow_empty=True),
    ))


@dataclass
class LedgerConfig:
    collection_address: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="",
        env_var="TICKETMINT_COLLECTION",
        description="Default collection address for CLI commands (base58)",
        validator=lambda x: _is_pubkey_text(x, allow_empty=True),
    ))


@dataclass
class ObservabilityConfig:
    """Configuration for Observability."""
    log_level: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="info",
        env_var="TICKETMINT_LOG_LEVEL",
        description="Log level (debug, info, warning, error)",
        validator=lambda x: x in ("debug", "info", "warning", "error", "critical"),
    ))
    log_format: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="json",
        env_var="TICKETMINT_LOG_FORMAT",
        description="Log format (json, text)",
        validator=lambda x: x in ("json", "text"),
    ))


@dataclass
class TicketmintConfig:
    """Root configuration."""
    program: ProgramConfig = field(default_factory=ProgramConfig)
    signing: SigningConfig = field(default_factory=SigningConfig)
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    def to_dict(self, redact_secrets: bool = True) -> Dict[str, Any]:
        def extract_values(obj: Any) -> Any:
            if isinstance(obj, ConfigValue):
                value = obj.get()
                if obj.secret and redact_secrets and value:
                    return SECRET_MASK
                return value
            elif hasattr(obj, "__dataclass_fields__"):
                return {k: extract_values(getattr(obj, k)) for k in obj.__dataclass_fields__}
            return obj

        return extract_values(self)

    def to_yaml(self, redact_secrets: bool = True) -> str:
        return yaml.dump(self.to_dict(redact_secrets), default_flow_style=False)


# =============================================================================
# SCHEMA VALIDATION
# =============================================================================


@lru_cache(maxsize=1)
def _schema_registry() -> Registry:
    """Registry of every bundled schema, keyed by its $id."""
    resources = []
    for schema_path in sorted(SCHEMAS_DIR.glob("*.schema.json")):
        schema = json.loads(schema_path.read_text(encoding="utf-8"))
        resource = Resource.from_contents(schema, default_specification=DRAFT202012)
        resources.append((schema["$id"], resource))
    return Registry().with_resources(resources)


def schema_validator(name: str = CONFIG_SCHEMA) -> Draft202012Validator:
    schema = json.loads((SCHEMAS_DIR / name).read_text(encoding="utf-8"))
    return Draft202012Validator(schema, registry=_schema_registry())


def validate_document(data: Any) -> List[str]:
    """Schema errors for a parsed config document (empty when valid)."""
    validator = schema_validator()
    return [
        f"{error.json_path}: {error.message}"
        for error in sorted(validator.iter_errors(data), key=lambda e: e.json_path)
    ]


# =============================================================================
# MANAGER
# =============================================================================


class ConfigManager:
    """
    Configuration manager with file loading and environment binding.

    Thread-safe singleton that manages configuration lifecycle.
    """

    _instance: Optional["ConfigManager"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "ConfigManager":
        with cls._lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._initialized = False
            return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._config = TicketmintConfig()
        self._config_paths: List[Path] = []
        self._initialized = True

    @classmethod
    def reset(cls) -> None:
        """Drop the singleton; the next ConfigManager() starts from defaults."""
        with cls._lock:
            cls._instance = None

    @property
    def config(self) -> TicketmintConfig:
        return self._config

    @property
    def loaded_paths(self) -> List[Path]:
        return list(self._config_paths)

    def load_from_file(self, path: Union[str, Path]) -> None:
        """Load configuration from a YAML file."""
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Configuration file not found: {path}")

        with open(path, encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {path}: {e}") from e

        if not data:
            return
        errors = validate_document(data)
        if errors:
            raise ConfigValidationError(f"Invalid configuration file {path}", errors)

        try:
            self._apply_dict(data)
        except ConfigValidationError as e:
            raise ConfigValidationError(f"Invalid configuration file {path}", e.errors) from e
        self._config_paths.append(path)

    def load_defaults(self) -> None:
        """Load the first default configuration file that exists."""
        default_paths = [
            Path("ticketmint.yaml"),
            Path.home() / ".ticketmint" / "config.yaml",
        ]
        for path in default_paths:
            if path.exists():
                self.load_from_file(path)
                return

    def _assignments(self, data: Dict[str, Any]) -> List[Tuple[str, ConfigValue, Any]]:
        """Flatten a document into (path, value holder, new value) triples."""
        found: List[Tuple[str, ConfigValue, Any]] = []

        def collect(config_obj: Any, values: Dict[str, Any], prefix: str) -> None:
            for key, value in values.items():
                if hasattr(config_obj, key):
                    attr = getattr(config_obj, key)
                    path = f"{prefix}{key}"
                    if isinstance(attr, ConfigValue):
                        found.append((path, attr, "" if value is None else value))
                    elif hasattr(attr, "__dataclass_fields__") and isinstance(value, dict):
                        collect(attr, value, f"{path}.")

        collect(self._config, data, "")
        return found

    def _apply_dict(self, data: Dict[str, Any]) -> None:
        assignments = self._assignments(data)
        errors = [
            f"{path}: validation failed for value {SECRET_MASK if attr.secret else value}"
            for path, attr, value in assignments
            if attr.validator and not attr.validator(value)
        ]
        if errors:
            raise ConfigValidationError("Invalid configuration values", errors)
        for _, attr, value in assignments:
            attr.set(value)

    def _resolve(self, path: str) -> Any:
        obj: Any = self._config
        for part in path.split("."):
            if not hasattr(obj, part):
                raise ConfigError(f"Invalid config path: {path}")
            obj = getattr(obj, part)
        return obj

    def set(self, path: str, value: Any) -> None:
        """
        Set a configuration value by path.

        Example: config.set("program.program_id", "6mfz...")
        """
        attr = self._resolve(path)
        if not isinstance(attr, ConfigValue):
            raise ConfigError(f"Invalid config path: {path}")
        attr.set(value)

    def get(self, path: str) -> Any:
        obj = self._resolve(path)
        if isinstance(obj, ConfigValue):
            return obj.get()
        return obj

    def validate(self) -> List[str]:
        """Validate all effective values, environment included."""
        errors: List[str] = []

        def validate_config(obj: Any, path: str = "") -> None:
            if isinstance(obj, ConfigValue):
                try:
                    value = obj.get()
                except ValueError as e:
                    errors.append(f"{path}: {e}")
                    return
                if obj.validator and not obj.validator(value):
                    shown = SECRET_MASK if obj.secret else value
                    errors.append(f"{path}: validation failed for value {shown}")
            elif hasattr(obj, "__dataclass_fields__"):
                for field_name in obj.__dataclass_fields__:
                    field_path = f"{path}.{field_name}" if path else field_name
                    validate_config(getattr(obj, field_name), field_path)

        validate_config(self._config)
        return errors

    def export_schema(self) -> Dict[str, Any]:
        """Describe every value: type, default, description, environment variable."""
        schema: Dict[str, Any] = {"properties": {}}

        def extract_schema(obj: Any, properties: Dict[str, Any]) -> None:
            if isinstance(obj, ConfigValue):
                properties["type"] = type(obj.default).__name__
                properties["default"] = str(obj.default)
                properties["description"] = obj.description
                if obj.env_var:
                    properties["env_var"] = obj.env_var
            elif hasattr(obj, "__dataclass_fields__"):
                for field_name in obj.__dataclass_fields__:
                    properties[field_name] = {}
                    extract_schema(getattr(obj, field_name), properties[field_name])

        extract_schema(self._config, schema["properties"])
        return schema


def get_config() -> TicketmintConfig:
    return ConfigManager().config


def get_config_manager() -> ConfigManager:
    return ConfigManager()
