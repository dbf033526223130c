"""
FileSystemGate file operations.

Provides read, list, rename, copy, write, delete, chmod, compress and
decompress. Every path argument goes through the path resolver first; every
outcome is an OperationResult. Raw OS error text never reaches the caller.
"""

import base64
import binascii
import errno
import os
import shutil
import tempfile
from datetime import datetime, timezone
from typing import Callable, List, Optional

from narthex.shared.gate import GateLogger

from .archive import ArchiveEngine
from .errors import (
    ConflictError,
    GateError,
    InvalidInputError,
    NotFoundError,
    PathRejectedError,
)
from .models import (
    ArchiveFormat,
    EntryType,
    ErrorKind,
    FileMetadata,
    FileSystemConfig,
    OperationResult,
)
from .security import is_root, parse_mode, resolve_path

_log = GateLogger.get("FileSystemGate")

TEXT_ENCODING = "utf-8"
BASE64_ENCODING = "base64"


def _error_result(operation: str, path: Optional[str], exc: Exception) -> OperationResult:
    """Map a gate error or OS error onto a failed OperationResult."""
    path = path or ""

    if isinstance(exc, GateError):
        _log.info(f"{operation} rejected ({exc.kind.value}): {exc.detail}")
        return OperationResult.fail(operation, path, exc.kind, exc.detail)

    if isinstance(exc, FileNotFoundError):
        kind, error = ErrorKind.NOT_FOUND, f"Path does not exist: {path}"
    elif isinstance(exc, FileExistsError):
        kind, error = ErrorKind.CONFLICT, f"Path already exists: {path}"
    elif isinstance(exc, IsADirectoryError):
        kind, error = ErrorKind.INVALID_INPUT, f"Path is a directory: {path}"
    elif isinstance(exc, NotADirectoryError):
        kind, error = ErrorKind.INVALID_INPUT, f"Path is not a directory: {path}"
    elif isinstance(exc, PermissionError):
        kind, error = ErrorKind.IO_ERROR, f"Permission denied: {path}"
    else:
        kind, error = ErrorKind.IO_ERROR, f"Failed to {operation}: {path}"

    _log.warning(f"{operation} failed for {path!r}: {exc}")
    return OperationResult.fail(operation, path, kind, error)


def _require_parent(absolute: str, raw: str, create: bool = False) -> None:
    parent = os.path.dirname(absolute)
    if os.path.isdir(parent):
        return
    if create:
        os.makedirs(parent, exist_ok=True)
        return
    raise InvalidInputError(f"Parent directory does not exist: {raw}")


def read_file(
    config: FileSystemConfig,
    path: Optional[str],
    encoding: str = TEXT_ENCODING,
) -> OperationResult:
    """
    Read a file's contents.

    Args:
        config: Gate configuration
        path: Path as supplied by the caller
        encoding: "utf-8" returns text, "base64" returns the bytes base64-encoded

    Returns:
        OperationResult with file contents in data
    """
    try:
        encoding = (encoding or TEXT_ENCODING).lower()
        if encoding not in (TEXT_ENCODING, BASE64_ENCODING):
            raise InvalidInputError(f"Unsupported encoding: {encoding}")

        resolved = resolve_path(path, config.allowed_root)

        if not os.path.lexists(resolved.absolute):
            raise NotFoundError(f"Path does not exist: {resolved.raw}")
        if os.path.isdir(resolved.absolute):
            raise InvalidInputError(f"Path is a directory, not a file: {resolved.raw}")

        size = os.path.getsize(resolved.absolute)
        if size > config.max_file_size_bytes:
            raise InvalidInputError(
                f"File too large ({size / (1024 * 1024):.2f}MB > {config.max_file_size_mb}MB): {resolved.raw}"
            )

        with open(resolved.absolute, "rb") as f:
            raw_bytes = f.read()

        if encoding == BASE64_ENCODING:
            content = base64.b64encode(raw_bytes).decode("ascii")
        else:
            try:
                content = raw_bytes.decode(TEXT_ENCODING)
            except UnicodeDecodeError:
                raise InvalidInputError(
                    f"File is not valid UTF-8 text, read it with encoding=base64: {resolved.raw}"
                ) from None

        return OperationResult.ok(
            "read",
            resolved.raw,
            message=f"Read {len(raw_bytes)} bytes",
            data=content,
        )

    except (GateError, OSError) as e:
        return _error_result("read", path, e)


def list_directory(config: FileSystemConfig, path: Optional[str]) -> OperationResult:
    """
    List contents of a directory.

    Entries come back in file-system enumeration order, one record per
    member, hidden files included.

    Returns:
        OperationResult with a list of FileMetadata dicts in data
    """
    try:
        resolved = resolve_path(path, config.allowed_root)

        if not os.path.lexists(resolved.absolute):
            raise NotFoundError(f"Path does not exist: {resolved.raw}")
        if not os.path.isdir(resolved.absolute):
            raise InvalidInputError(f"Path is not a directory: {resolved.raw}")

        files: List[FileMetadata] = []
        with os.scandir(resolved.absolute) as it:
            for entry in it:
                try:
                    st = entry.stat()
                    is_dir = entry.is_dir()
                except FileNotFoundError:
                    # Dangling symlink: describe the link itself
                    try:
                        st = entry.stat(follow_symlinks=False)
                        is_dir = False
                    except FileNotFoundError:
                        _log.debug(f"Entry vanished while listing: {entry.name}")
                        continue

                files.append(FileMetadata(
                    type=EntryType.DIRECTORY if is_dir else EntryType.FILE,
                    name=entry.name,
                    size=0 if is_dir else st.st_size,
                    modified=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
                ))

        return OperationResult.ok(
            "list",
            resolved.raw,
            message=f"Listed {len(files)} items",
            data=[f.to_dict() for f in files],
        )

    except (GateError, OSError) as e:
        return _error_result("list", path, e)


def rename_path(
    config: FileSystemConfig,
    old_path: Optional[str],
    new_path: Optional[str],
    overwrite: bool = False,
) -> OperationResult:
    """
    Move a file or directory to a new location inside the root.

    Returns:
        OperationResult
    """
    try:
        source = resolve_path(old_path, config.allowed_root, "old_path")
        target = resolve_path(new_path, config.allowed_root, "new_path")

        if is_root(source):
            raise PathRejectedError("Cannot rename the allowed root")
        if not os.path.lexists(source.absolute):
            raise NotFoundError(f"Source does not exist: {source.raw}")
        if source.absolute == target.absolute:
            raise InvalidInputError("Old and new path are the same")
        if target.absolute.startswith(source.absolute + os.sep):
            raise InvalidInputError(f"Cannot move a directory into itself: {target.raw}")
        if os.path.lexists(target.absolute) and not overwrite:
            raise ConflictError(f"Destination already exists. Use overwrite=true to replace: {target.raw}")
        _require_parent(target.absolute, target.raw)

        os.replace(source.absolute, target.absolute)

        _log.info(f"Renamed {source.relative} -> {target.relative}")
        return OperationResult.ok(
            "rename",
            target.raw,
            message=f"Renamed {source.raw} to {target.raw}",
        )

    except (GateError, OSError) as e:
        return _error_result("rename", old_path, e)


def copy_file(
    config: FileSystemConfig,
    src: Optional[str],
    dest: Optional[str],
    overwrite: bool = False,
) -> OperationResult:
    """
    Copy a regular file, preserving its metadata.

    Returns:
        OperationResult
    """
    try:
        source = resolve_path(src, config.allowed_root, "src")
        target = resolve_path(dest, config.allowed_root, "dest")

        if not os.path.lexists(source.absolute):
            raise NotFoundError(f"Source does not exist: {source.raw}")
        if not os.path.isfile(source.absolute):
            raise InvalidInputError(f"Source is not a file: {source.raw}")
        if source.absolute == target.absolute:
            raise InvalidInputError("Source and destination are the same")
        if os.path.isdir(target.absolute):
            raise InvalidInputError(f"Destination is a directory: {target.raw}")
        if os.path.lexists(target.absolute) and not overwrite:
            raise ConflictError(f"Destination already exists. Use overwrite=true to replace: {target.raw}")
        _require_parent(target.absolute, target.raw)

        shutil.copy2(source.absolute, target.absolute)

        _log.info(f"Copied {source.relative} -> {target.relative}")
        return OperationResult.ok(
            "copy",
            target.raw,
            message=f"Copied {source.raw} to {target.raw}",
        )

    except (GateError, OSError) as e:
        return _error_result("copy", src, e)


def write_file(
    config: FileSystemConfig,
    path: Optional[str],
    content: Optional[str],
    encoding: str = TEXT_ENCODING,
    create_dirs: bool = False,
) -> OperationResult:
    """
    Write content to a file, replacing it if it exists.

    The new content lands in a temporary file beside the target and is
    renamed over it, so readers never see a half-written file.

    Args:
        config: Gate configuration
        path: Path as supplied by the caller
        content: Text, or base64 text when encoding is "base64"
        encoding: "utf-8" or "base64"
        create_dirs: Create missing parent directories

    Returns:
        OperationResult
    """
    temp_path = None
    try:
        resolved = resolve_path(path, config.allowed_root)

        if content is None:
            raise InvalidInputError("'content' is required")

        encoding = (encoding or TEXT_ENCODING).lower()
        if encoding == BASE64_ENCODING:
            try:
                data = base64.b64decode(content, validate=True)
            except (binascii.Error, ValueError):
                raise InvalidInputError("Content is not valid base64") from None
        elif encoding == TEXT_ENCODING:
            data = content.encode(TEXT_ENCODING)
        else:
            raise InvalidInputError(f"Unsupported encoding: {encoding}")

        if len(data) > config.max_file_size_bytes:
            raise InvalidInputError(
                f"Content too large ({len(data) / (1024 * 1024):.2f}MB > {config.max_file_size_mb}MB)"
            )
        if os.path.isdir(resolved.absolute):
            raise InvalidInputError(f"Path is a directory: {resolved.raw}")
        _require_parent(resolved.absolute, resolved.raw, create=create_dirs)

        file_existed = os.path.exists(resolved.absolute)
        mode = os.stat(resolved.absolute).st_mode & 0o7777 if file_existed else config.file_mode

        fd, temp_path = tempfile.mkstemp(prefix=".narthex-", suffix=".partial", dir=os.path.dirname(resolved.absolute))
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.chmod(temp_path, mode)
        os.replace(temp_path, resolved.absolute)
        temp_path = None

        return OperationResult.ok(
            "write",
            resolved.raw,
            message=f"{'Updated' if file_existed else 'Created'} file ({len(data)} bytes)",
        )

    except (GateError, OSError) as e:
        return _error_result("write", path, e)
    finally:
        if temp_path is not None and os.path.exists(temp_path):
            os.remove(temp_path)


def delete_path(
    config: FileSystemConfig,
    path: Optional[str],
    recursive: bool = False,
) -> OperationResult:
    """
    Delete a file, or a directory.

    Non-empty directories are only removed when recursive is set.

    Returns:
        OperationResult
    """
    try:
        resolved = resolve_path(path, config.allowed_root)

        if is_root(resolved):
            raise PathRejectedError("Cannot delete the allowed root")
        if not os.path.lexists(resolved.absolute):
            raise NotFoundError(f"Path does not exist: {resolved.raw}")

        if os.path.isdir(resolved.absolute) and not os.path.islink(resolved.absolute):
            if recursive:
                shutil.rmtree(resolved.absolute)
            else:
                try:
                    os.rmdir(resolved.absolute)
                except OSError as e:
                    if e.errno in (errno.ENOTEMPTY, errno.EEXIST):
                        raise InvalidInputError(
                            f"Directory is not empty. Use recursive=true to delete: {resolved.raw}"
                        ) from None
                    raise
            message = f"Directory deleted: {resolved.raw}"
        else:
            os.remove(resolved.absolute)
            message = f"File deleted: {resolved.raw}"

        _log.info(f"Deleted {resolved.relative}")
        return OperationResult.ok("delete", resolved.raw, message=message)

    except (GateError, OSError) as e:
        return _error_result("delete", path, e)


def change_mode(
    config: FileSystemConfig,
    path: Optional[str],
    mode: Optional[str],
) -> OperationResult:
    """
    Set permission bits from an octal string such as "644".

    Returns:
        OperationResult
    """
    try:
        resolved = resolve_path(path, config.allowed_root)
        value = parse_mode(mode)

        if not os.path.lexists(resolved.absolute):
            raise NotFoundError(f"Path does not exist: {resolved.raw}")

        os.chmod(resolved.absolute, value)

        _log.info(f"Changed mode of {resolved.relative} to {value:o}")
        return OperationResult.ok(
            "chmod",
            resolved.raw,
            message=f"Permissions of {resolved.raw} set to {value:o}",
        )

    except (GateError, OSError) as e:
        return _error_result("chmod", path, e)


def compress_paths(
    config: FileSystemConfig,
    engine: ArchiveEngine,
    sources: Optional[List[str]],
    destination: Optional[str],
    overwrite: bool = False,
    fmt: Optional[ArchiveFormat | str] = None,
    should_abort: Optional[Callable[[], bool]] = None,
) -> OperationResult:
    """
    Pack one or more paths into a single archive file.

    Returns:
        OperationResult with {"archive", "entries", "format"} in data
    """
    try:
        if not sources:
            raise InvalidInputError("At least one source path is required")

        resolved_sources = [
            resolve_path(source, config.allowed_root, f"sources[{i}]")
            for i, source in enumerate(sources)
        ]
        resolved_dest = resolve_path(destination, config.allowed_root, "destination")

        summary = engine.compress(
            resolved_sources,
            resolved_dest,
            overwrite=overwrite,
            fmt=fmt,
            should_abort=should_abort,
        )

        return OperationResult.ok(
            "compress",
            resolved_dest.raw,
            message=f"Compressed {summary['entries']} entries into {resolved_dest.raw}",
            data=summary,
        )

    except (GateError, OSError) as e:
        return _error_result("compress", destination, e)


def decompress_archive(
    config: FileSystemConfig,
    engine: ArchiveEngine,
    source: Optional[str],
    destination: Optional[str],
    overwrite: bool = False,
    fmt: Optional[ArchiveFormat | str] = None,
    should_abort: Optional[Callable[[], bool]] = None,
) -> OperationResult:
    """
    Unpack an archive into a directory.

    Returns:
        OperationResult with {"destination", "entries", "format"} in data
    """
    try:
        resolved_source = resolve_path(source, config.allowed_root, "source")
        resolved_dest = resolve_path(destination, config.allowed_root, "destination")

        summary = engine.decompress(
            resolved_source,
            resolved_dest,
            overwrite=overwrite,
            fmt=fmt,
            should_abort=should_abort,
        )

        return OperationResult.ok(
            "decompress",
            resolved_dest.raw,
            message=f"Extracted {summary['entries']} entries into {resolved_dest.raw}",
            data=summary,
        )

    except (GateError, OSError) as e:
        return _error_result("decompress", source, e)
