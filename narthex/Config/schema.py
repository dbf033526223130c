"""
Configuration schema for Narthex.

Defines all configurable options with metadata for validation and
documentation.
"""

from enum import Enum
from typing import Optional, List, Any, Dict
from dataclasses import dataclass


class ConfigType(Enum):
    """Configuration value types."""
    STRING = "string"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    PATH = "path"          # File system path
    LIST = "list"          # Comma-separated values


class ConfigCategory(Enum):
    """Configuration categories for grouping."""
    FILESYSTEM = "filesystem"
    ARCHIVE = "archive"
    SERVER = "server"
    LOGGING = "logging"


@dataclass
class ConfigField:
    """Definition of a configuration field."""
    key: str
    description: str
    config_type: ConfigType
    category: ConfigCategory
    required: bool = False
    default: Any = None
    env_var: str = None          # Override env var name (defaults to key)
    validation: str = None       # Regex pattern
    options: List[str] = None    # For enumerated types

    def __post_init__(self):
        if self.env_var is None:
            self.env_var = self.key


# ==================== Schema Definition ====================

CONFIG_SCHEMA: List[ConfigField] = [
    # === File system ===
    ConfigField(
        key="NARTHEX_ALLOWED_ROOT",
        description="Directory subtree every file operation is confined to",
        config_type=ConfigType.PATH,
        category=ConfigCategory.FILESYSTEM,
        required=True,
    ),
    ConfigField(
        key="NARTHEX_FILESYSTEM_CONFIG",
        description="Optional JSON file with FileSystemGate settings",
        config_type=ConfigType.PATH,
        category=ConfigCategory.FILESYSTEM,
        default="data/config/filesystem.json",
    ),
    ConfigField(
        key="NARTHEX_MAX_FILE_SIZE_MB",
        description="Largest file that may be read or written in one request",
        config_type=ConfigType.INTEGER,
        category=ConfigCategory.FILESYSTEM,
        default=50,
        validation=r"^[1-9][0-9]*$",
    ),
    ConfigField(
        key="NARTHEX_FILE_MODE",
        description="Octal permission bits for newly written files",
        config_type=ConfigType.STRING,
        category=ConfigCategory.FILESYSTEM,
        default="644",
        validation=r"^[0-7]{3,4}$",
    ),

    # === Archive ===
    ConfigField(
        key="NARTHEX_ARCHIVE_FORMAT",
        description="Archive format used when the destination name does not imply one",
        config_type=ConfigType.STRING,
        category=ConfigCategory.ARCHIVE,
        default="tar.gz",
        options=["tar.gz", "zip"],
    ),

    # === Server ===
    ConfigField(
        key="NARTHEX_HOST",
        description="Interface the HTTP server binds to",
        config_type=ConfigType.STRING,
        category=ConfigCategory.SERVER,
        default="0.0.0.0",
    ),
    ConfigField(
        key="NARTHEX_PORT",
        description="Port the HTTP server listens on",
        config_type=ConfigType.INTEGER,
        category=ConfigCategory.SERVER,
        default=8080,
        validation=r"^[0-9]+$",
    ),

    # === Logging ===
    ConfigField(
        key="NARTHEX_LOG_LEVEL",
        description="Log level for narthex loggers",
        config_type=ConfigType.STRING,
        category=ConfigCategory.LOGGING,
        default="INFO",
        options=["DEBUG", "INFO", "WARNING", "ERROR"],
    ),
]


def get_schema_by_key(key: str) -> Optional[ConfigField]:
    """Get a schema field by key."""
    for field in CONFIG_SCHEMA:
        if field.key == key:
            return field
    return None


def get_required_fields() -> List[ConfigField]:
    """Get all required fields."""
    return [f for f in CONFIG_SCHEMA if f.required]


def schema_to_dict() -> Dict[str, Any]:
    """Convert schema to a dict grouped by category."""
    result: Dict[str, Any] = {}
    for field in CONFIG_SCHEMA:
        category = field.category.value
        result.setdefault(category, []).append({
            "key": field.key,
            "description": field.description,
            "type": field.config_type.value,
            "required": field.required,
            "default": field.default,
            "options": field.options,
        })
    return result
