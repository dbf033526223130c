"""
FileSystemGate Pydantic models.

Defines the gate configuration, resolved paths, directory entry metadata,
archive requests and the uniform operation result envelope.
"""

from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field, field_validator


class ErrorKind(str, Enum):
    """Failure categories every operation maps its errors onto."""
    INVALID_INPUT = "invalid_input"
    PATH_REJECTED = "path_rejected"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    IO_ERROR = "io_error"


class EntryType(str, Enum):
    """Kind of a directory entry."""
    FILE = "file"
    DIRECTORY = "directory"


class ArchiveFormat(str, Enum):
    """Supported archive container formats."""
    TAR_GZ = "tar.gz"
    ZIP = "zip"


class FileSystemConfig(BaseModel):
    """Global FileSystemGate configuration. Read-only once the gate is initialized."""
    allowed_root: str = Field(default="", description="Directory subtree operations are confined to")
    max_file_size_mb: int = Field(default=50, ge=1, le=4096)
    default_archive_format: ArchiveFormat = Field(default=ArchiveFormat.TAR_GZ)
    file_mode: int = Field(default=0o644, ge=0, le=0o7777, description="Permission bits for written files")

    model_config = {"frozen": True}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for JSON serialization."""
        return self.model_dump(mode="json")

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024


class ResolvedPath(BaseModel):
    """A caller-supplied path after normalization and root containment checks."""
    raw: str = Field(description="Path exactly as supplied by the caller")
    absolute: str = Field(description="Normalized absolute path")
    relative: str = Field(description="Path relative to the allowed root")

    model_config = {"frozen": True}

    def __str__(self) -> str:
        return self.absolute


class FileMetadata(BaseModel):
    """Information about one directory entry."""
    type: EntryType
    name: str
    size: int = 0
    modified: datetime

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for JSON serialization."""
        return self.model_dump(mode="json")


class CompressRequest(BaseModel):
    """Sources to pack into a single archive file."""
    sources: List[str] = Field(default_factory=list)
    destination: str = ""
    overwrite: bool = False
    format: Optional[ArchiveFormat] = None


class DecompressRequest(BaseModel):
    """Archive to unpack into a destination directory."""
    source: str = ""
    destination: str = ""
    overwrite: bool = False
    format: Optional[ArchiveFormat] = None


class FileWriteRequest(BaseModel):
    """Body for writing a file."""
    content: str
    encoding: str = "utf-8"
    create_dirs: bool = False

    @field_validator("encoding")
    @classmethod
    def _known_encoding(cls, value: str) -> str:
        value = value.lower()
        if value not in ("utf-8", "base64"):
            raise ValueError("encoding must be 'utf-8' or 'base64'")
        return value


class OperationResult(BaseModel):
    """Result of a file system operation."""
    success: bool
    operation: str = Field(description="Operation type: read/list/rename/copy/write/delete/chmod/compress/decompress")
    path: str = Field(default="", description="Path as supplied by the caller")
    message: str = ""
    data: Optional[Any] = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for JSON serialization."""
        return self.model_dump(mode="json")

    @classmethod
    def ok(
        cls,
        operation: str,
        path: str,
        message: str = "",
        data: Any = None,
    ) -> "OperationResult":
        """Create a successful result."""
        return cls(success=True, operation=operation, path=path, message=message, data=data)

    @classmethod
    def fail(
        cls,
        operation: str,
        path: str,
        kind: ErrorKind,
        error: str,
    ) -> "OperationResult":
        """Create a failed result."""
        return cls(success=False, operation=operation, path=path, error=error, error_kind=kind)
