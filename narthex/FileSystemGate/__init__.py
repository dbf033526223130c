"""
FileSystemGate - Root-confined remote file operations for Narthex.

Provides:
- Path validation against a single allowed root
- Read, list, rename, copy, write, delete and chmod
- Compression and extraction with traversal-safe, atomic archive handling
- A uniform OperationResult for every call

Usage:
    from narthex import FileSystemGate

    # Initialize (call on startup)
    FileSystemGate.initialize(allowed_root="/srv/files")

    # Write and read back
    FileSystemGate.write_file("notes/a.txt", "hello", create_dirs=True)
    result = FileSystemGate.read_file("notes/a.txt")

    # Archive a directory and unpack it elsewhere
    FileSystemGate.compress(["notes"], "notes.tar.gz")
    FileSystemGate.decompress("notes.tar.gz", "restored")
"""

import os
from typing import Any, Callable, Dict, List, Optional

from narthex import Config
from narthex.shared.gate import (
    GateLogger,
    ConfigLoader,
    build_health_status,
)

from .archive import ArchiveEngine, CODECS
from .errors import (
    GateError,
    InvalidInputError,
    PathRejectedError,
    NotFoundError,
    ConflictError,
    GateIOError,
    OperationCancelled,
)
from .models import (
    ArchiveFormat,
    EntryType,
    ErrorKind,
    FileMetadata,
    FileSystemConfig,
    OperationResult,
    ResolvedPath,
)
from .security import normalize_path, resolve_path
from .operations import (
    read_file as op_read_file,
    list_directory as op_list_directory,
    rename_path as op_rename_path,
    copy_file as op_copy_file,
    write_file as op_write_file,
    delete_path as op_delete_path,
    change_mode as op_change_mode,
    compress_paths as op_compress_paths,
    decompress_archive as op_decompress_archive,
)

# Logger for this gate
_log = GateLogger.get("FileSystemGate")

# Module-level state, written once by initialize()
_config: Optional[FileSystemConfig] = None
_engine: Optional[ArchiveEngine] = None
_initialized: bool = False


class FileSystemGate:
    """
    Main interface for Narthex's file operations.

    All methods are class methods for easy access throughout the application.
    """

    @classmethod
    def initialize(
        cls,
        allowed_root: Optional[str] = None,
        config_path: Optional[str] = None,
        **overrides: Any,
    ) -> bool:
        """
        Initialize the file system gate.

        Settings come from the Config manager (environment / .env), then the
        optional JSON config file, then the explicit arguments.

        Args:
            allowed_root: Directory all operations are confined to
            config_path: JSON file with FileSystemConfig fields
            **overrides: Any other FileSystemConfig field

        Returns:
            True if initialization successful
        """
        global _config, _engine, _initialized

        try:
            settings: Dict[str, Any] = {
                "allowed_root": Config.get("NARTHEX_ALLOWED_ROOT", ""),
                "max_file_size_mb": Config.get("NARTHEX_MAX_FILE_SIZE_MB", 50),
                "default_archive_format": Config.get("NARTHEX_ARCHIVE_FORMAT", ArchiveFormat.TAR_GZ.value),
                "file_mode": int(str(Config.get("NARTHEX_FILE_MODE", "644")), 8),
            }

            config_path = config_path or Config.get("NARTHEX_FILESYSTEM_CONFIG")
            if config_path and os.path.exists(config_path):
                loaded = ConfigLoader.load(config_path, FileSystemConfig, create_default=False)
                if loaded is None:
                    _log.error(f"Initialization failed: unreadable config file {config_path}")
                    return False
                settings.update({key: getattr(loaded, key) for key in loaded.model_fields_set})

            if allowed_root:
                settings["allowed_root"] = allowed_root
            settings.update(overrides)

            config = FileSystemConfig(**settings)
            if not config.allowed_root:
                _log.error("Initialization failed: no allowed root configured (NARTHEX_ALLOWED_ROOT)")
                return False

            root = normalize_path(config.allowed_root)
            if not os.path.isdir(root):
                _log.error(f"Initialization failed: allowed root is not a directory: {root}")
                return False

            _config = config.model_copy(update={"allowed_root": root})
            _engine = ArchiveEngine(_config.default_archive_format, _config.file_mode)
            _initialized = True
            _log.info(f"Initialized with allowed root {root}")
            return True

        except Exception as e:
            _log.error(f"Initialization failed: {e}")
            return False

    @classmethod
    def is_initialized(cls) -> bool:
        """Check if the gate is initialized."""
        return _initialized

    @classmethod
    def _get_config(cls) -> FileSystemConfig:
        """Get current config, initializing from the environment if needed."""
        if _config is None:
            if not cls.initialize():
                raise RuntimeError("FileSystemGate initialization failed. Check NARTHEX_ALLOWED_ROOT.")
        return _config

    @classmethod
    def _get_engine(cls) -> ArchiveEngine:
        """Get the archive engine, initializing if needed."""
        cls._get_config()
        return _engine

    @classmethod
    def get_config(cls) -> Dict[str, Any]:
        """Get the active configuration."""
        return cls._get_config().to_dict()

    @classmethod
    def resolve(cls, path: Optional[str]) -> ResolvedPath:
        """Validate a path against the allowed root (raises GateError)."""
        return resolve_path(path, cls._get_config().allowed_root)

    # ==================== Health Checks ====================

    @classmethod
    def is_healthy(cls) -> bool:
        """Check if the gate is operational."""
        if not _initialized or _config is None:
            return False
        root = _config.allowed_root
        return os.path.isdir(root) and os.access(root, os.R_OK | os.W_OK)

    @classmethod
    def get_health_status(cls) -> Dict[str, Any]:
        """Get detailed health information."""
        checks = {}
        details = {}

        if _initialized and _config is not None:
            root = _config.allowed_root
            checks["allowed_root_exists"] = os.path.isdir(root)
            checks["allowed_root_readable"] = os.access(root, os.R_OK)
            checks["allowed_root_writable"] = os.access(root, os.W_OK)
            details["allowed_root"] = root
            details["archive_formats"] = [codec.name for codec in CODECS.values()]
            details["default_archive_format"] = _config.default_archive_format.value

        return build_health_status(
            gate_name="FileSystemGate",
            initialized=_initialized,
            dependencies=cls.get_dependencies(),
            checks=checks,
            details=details,
        )

    @classmethod
    def get_dependencies(cls) -> List[str]:
        """List external dependencies."""
        return ["filesystem"]

    # ==================== File Operations ====================

    @classmethod
    def read_file(cls, path: Optional[str], encoding: str = "utf-8") -> OperationResult:
        """
        Read a file's contents.

        Args:
            path: File path (absolute inside the root, or relative to it)
            encoding: "utf-8" for text, "base64" for arbitrary bytes

        Returns:
            OperationResult with file contents in data
        """
        return op_read_file(cls._get_config(), path, encoding)

    @classmethod
    def list_dir(cls, path: Optional[str]) -> OperationResult:
        """
        List directory contents.

        Returns:
            OperationResult with a list of {type, name, size, modified} dicts
        """
        return op_list_directory(cls._get_config(), path)

    @classmethod
    def rename(cls, old_path: Optional[str], new_path: Optional[str], overwrite: bool = False) -> OperationResult:
        """Move a file or directory; fails with conflict unless overwrite is set."""
        return op_rename_path(cls._get_config(), old_path, new_path, overwrite)

    @classmethod
    def copy(cls, src: Optional[str], dest: Optional[str], overwrite: bool = False) -> OperationResult:
        """Copy a file; fails with conflict unless overwrite is set."""
        return op_copy_file(cls._get_config(), src, dest, overwrite)

    @classmethod
    def write_file(
        cls,
        path: Optional[str],
        content: Optional[str],
        encoding: str = "utf-8",
        create_dirs: bool = False,
    ) -> OperationResult:
        """
        Write content to a file, creating or replacing it.

        Args:
            path: File path
            content: Text, or base64 text when encoding is "base64"
            encoding: "utf-8" or "base64"
            create_dirs: Create missing parent directories

        Returns:
            OperationResult
        """
        return op_write_file(cls._get_config(), path, content, encoding, create_dirs)

    @classmethod
    def delete(cls, path: Optional[str], recursive: bool = False) -> OperationResult:
        """Delete a file or directory."""
        return op_delete_path(cls._get_config(), path, recursive)

    @classmethod
    def chmod(cls, path: Optional[str], mode: Optional[str]) -> OperationResult:
        """Set permission bits from an octal string."""
        return op_change_mode(cls._get_config(), path, mode)

    # ==================== Archives ====================

    @classmethod
    def compress(
        cls,
        sources: Optional[List[str]],
        destination: Optional[str],
        overwrite: bool = False,
        format: Optional[str] = None,
        should_abort: Optional[Callable[[], bool]] = None,
    ) -> OperationResult:
        """
        Pack sources into one archive.

        Args:
            sources: Files and directories to include
            destination: Archive file to create
            overwrite: Replace an existing destination
            format: "tar.gz" or "zip" (default: from the name, then config)
            should_abort: Checked between entries; True cancels the operation

        Returns:
            OperationResult with entry count and format in data
        """
        return op_compress_paths(
            cls._get_config(), cls._get_engine(), sources, destination, overwrite, format, should_abort
        )

    @classmethod
    def decompress(
        cls,
        source: Optional[str],
        destination: Optional[str],
        overwrite: bool = False,
        format: Optional[str] = None,
        should_abort: Optional[Callable[[], bool]] = None,
    ) -> OperationResult:
        """
        Extract an archive into a directory.

        Args:
            source: Archive file
            destination: Directory to extract into (created if absent)
            overwrite: Replace files that already exist in destination
            format: Force a format instead of sniffing the archive
            should_abort: Checked between entries; True cancels the operation

        Returns:
            OperationResult with entry count and format in data
        """
        return op_decompress_archive(
            cls._get_config(), cls._get_engine(), source, destination, overwrite, format, should_abort
        )


# ==================== Module-level convenience functions ====================


def initialize(allowed_root: Optional[str] = None, config_path: Optional[str] = None, **overrides: Any) -> bool:
    """Initialize the file system gate."""
    return FileSystemGate.initialize(allowed_root, config_path, **overrides)


def is_initialized() -> bool:
    """Check if the gate is initialized."""
    return FileSystemGate.is_initialized()


def read_file(path: Optional[str], encoding: str = "utf-8") -> OperationResult:
    """Read a file."""
    return FileSystemGate.read_file(path, encoding)


def list_dir(path: Optional[str]) -> OperationResult:
    """List a directory."""
    return FileSystemGate.list_dir(path)


def write_file(path: Optional[str], content: Optional[str], **kwargs) -> OperationResult:
    """Write a file."""
    return FileSystemGate.write_file(path, content, **kwargs)


def get_health_status() -> Dict[str, Any]:
    """Get health status."""
    return FileSystemGate.get_health_status()


__all__ = [
    # Class
    "FileSystemGate",
    # Lifecycle and health
    "initialize",
    "is_initialized",
    "get_health_status",
    # File operations
    "read_file",
    "list_dir",
    "write_file",
    # Models
    "ArchiveFormat",
    "EntryType",
    "ErrorKind",
    "FileMetadata",
    "FileSystemConfig",
    "OperationResult",
    "ResolvedPath",
    # Errors
    "GateError",
    "InvalidInputError",
    "PathRejectedError",
    "NotFoundError",
    "ConflictError",
    "GateIOError",
    "OperationCancelled",
    # Engine
    "ArchiveEngine",
]
