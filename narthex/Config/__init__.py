"""
Narthex Configuration Manager.

Centralized configuration with:
- Schema-driven validation
- .env loading
- JSON file fallback
"""

import json
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from dotenv import load_dotenv

from narthex.shared.gate import GateLogger

from narthex.Config.schema import (
    CONFIG_SCHEMA,
    ConfigField,
    ConfigType,
    ConfigCategory,
    get_schema_by_key,
    get_required_fields,
    schema_to_dict,
)

_log = GateLogger.get("Config")


def _env_file() -> Path:
    return Path(os.environ.get("NARTHEX_ENV_FILE", Path.cwd() / ".env"))


def _config_json() -> Path:
    return Path(os.environ.get("NARTHEX_CONFIG_JSON", Path.cwd() / "data" / "config.json"))


class ConfigManager:
    """
    Manages Narthex configuration.

    Priority order:
    1. Environment variables (including .env)
    2. config.json
    3. Schema defaults
    """

    def __init__(self):
        self._cache: Dict[str, Any] = {}
        self._loaded = False
        self._load()

    def _load(self):
        """Load configuration from all sources."""
        load_dotenv(_env_file())

        json_config = {}
        config_json = _config_json()
        if config_json.exists():
            try:
                with open(config_json, encoding="utf-8") as f:
                    json_config = json.load(f)
            except (json.JSONDecodeError, OSError) as e:
                _log.warning(f"Ignoring unreadable {config_json}: {e}")

        for field in CONFIG_SCHEMA:
            # Priority: env var > json config > default
            value = os.environ.get(field.env_var)

            if value is None and field.key in json_config:
                value = json_config[field.key]

            if value is None:
                value = field.default

            self._cache[field.key] = self._convert_type(value, field.config_type)

        self._loaded = True

    def _convert_type(self, value: Any, config_type: ConfigType) -> Any:
        """Convert value to appropriate type."""
        if value is None:
            return None

        try:
            if config_type == ConfigType.INTEGER:
                return int(value)
            elif config_type == ConfigType.BOOLEAN:
                if isinstance(value, bool):
                    return value
                return str(value).lower() in ("true", "1", "yes", "on")
            elif config_type == ConfigType.LIST:
                if isinstance(value, list):
                    return value
                return [v.strip() for v in str(value).split(",") if v.strip()]
            else:
                return str(value) if value else None
        except (ValueError, TypeError):
            return value

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value."""
        if not self._loaded:
            self._load()
        value = self._cache.get(key)
        return default if value is None else value

    def get_all(self) -> Dict[str, Any]:
        """Get all configuration values."""
        return {field.key: self._cache.get(field.key) for field in CONFIG_SCHEMA}

    def get_status(self) -> Dict[str, Any]:
        """Get configuration status with missing/invalid checks."""
        missing = []
        invalid = []
        configured = []

        for field in CONFIG_SCHEMA:
            value = self._cache.get(field.key)

            if value is None or value == "":
                if field.required:
                    missing.append({
                        "key": field.key,
                        "description": field.description,
                        "category": field.category.value,
                    })
            elif field.validation and not re.match(field.validation, str(value)):
                invalid.append({
                    "key": field.key,
                    "value": value,
                    "pattern": field.validation,
                })
            else:
                configured.append(field.key)

        return {
            "status": "ok" if not missing and not invalid else "incomplete",
            "missing": missing,
            "invalid": invalid,
            "configured_count": len(configured),
            "total_count": len(CONFIG_SCHEMA),
        }

    def validate(self) -> Tuple[bool, List[str]]:
        """
        Validate configuration.

        Returns:
            (is_valid, list of error messages)
        """
        errors = []

        for field in CONFIG_SCHEMA:
            value = self._cache.get(field.key)

            if field.required and (value is None or value == ""):
                errors.append(f"Required config missing: {field.key}")
                continue

            if value and field.validation and not re.match(field.validation, str(value)):
                errors.append(f"Invalid format for {field.key}")

            if value and field.options and value not in field.options:
                errors.append(f"Invalid option for {field.key}: {value}")

        return len(errors) == 0, errors


# Global instance
_manager: Optional[ConfigManager] = None


def get_manager() -> ConfigManager:
    """Get or create the global ConfigManager."""
    global _manager
    if _manager is None:
        _manager = ConfigManager()
    return _manager


def reload():
    """Reload configuration from files."""
    global _manager
    _manager = ConfigManager()


# Convenience functions
def get(key: str, default: Any = None) -> Any:
    """Get a config value."""
    return get_manager().get(key, default)


def get_all() -> Dict:
    """Get all config values."""
    return get_manager().get_all()


def get_status() -> Dict:
    """Get config status."""
    return get_manager().get_status()


def validate() -> Tuple[bool, List[str]]:
    """Validate configuration."""
    return get_manager().validate()


def get_schema() -> Dict:
    """Get schema as dict."""
    return schema_to_dict()


__all__ = [
    "ConfigManager",
    "ConfigField",
    "ConfigType",
    "ConfigCategory",
    "get_manager",
    "reload",
    "get",
    "get_all",
    "get_status",
    "validate",
    "get_schema",
    "get_required_fields",
    "get_schema_by_key",
]
