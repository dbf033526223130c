"""
FileSystemGate security module.

Provides path normalization and allowed-root containment for caller-supplied
paths, and entry-name validation for archive members. Nothing in this module
touches the file system.
"""

import os
import re
from pathlib import PurePosixPath
from typing import Optional, Tuple

from narthex.shared.gate import PathUtils

from .errors import InvalidInputError, PathRejectedError
from .models import ResolvedPath

OCTAL_MODE = re.compile(r"^[0-7]{1,4}$")


def normalize_path(path: str) -> str:
    """
    Normalize a path lexically.

    Resolves "." and ".." segments and converts to an absolute path.
    Symlinks are left alone.

    Args:
        path: Raw path string

    Returns:
        Normalized absolute path
    """
    return os.path.abspath(os.path.normpath(path))


def resolve_path(raw: Optional[str], root: str, argument: str = "path") -> ResolvedPath:
    """
    Validate a caller-supplied path against the allowed root.

    Absolute paths are checked as given; relative paths are joined onto the
    root first.

    Args:
        raw: Path as supplied by the caller
        root: Allowed root directory
        argument: Name of the request argument, used in error messages

    Returns:
        ResolvedPath

    Raises:
        InvalidInputError: raw is empty, absent, or contains a NUL byte
        PathRejectedError: the normalized path lies outside the root
    """
    if raw is None or not str(raw).strip():
        raise InvalidInputError(f"'{argument}' is required")
    if "\x00" in raw:
        raise InvalidInputError(f"'{argument}' contains a NUL byte")

    root_path = normalize_path(root)

    if os.path.isabs(raw):
        target = normalize_path(raw)
    else:
        target = normalize_path(os.path.join(root_path, raw))

    if not PathUtils.is_within(target, root_path):
        raise PathRejectedError(f"Path escapes the allowed root: {raw}")

    return ResolvedPath(
        raw=raw,
        absolute=target,
        relative=os.path.relpath(target, root_path),
    )


def is_root(resolved: ResolvedPath) -> bool:
    """True when the resolved path is the allowed root itself."""
    return resolved.relative == "."


def parse_mode(mode: Optional[str]) -> int:
    """
    Parse an octal permission string such as "644" or "0o755".

    Raises:
        InvalidInputError: empty, non-octal, or beyond 0o7777
    """
    if mode is None or not mode.strip():
        raise InvalidInputError("'mode' is required")

    text = mode.strip().lower()
    if text.startswith("0o"):
        text = text[2:]

    if not OCTAL_MODE.match(text):
        raise InvalidInputError(f"Invalid mode: {mode}")

    return int(text, 8)


def normalize_entry_name(name: str) -> Tuple[str, ...]:
    """
    Normalize an archive member name into path components.

    - Convert backslashes to slashes
    - Strip leading "./"
    - Reject absolute names, drive letters and any ".." component

    Returns:
        Tuple of path components; empty for names that denote the
        extraction directory itself (".", "./")

    Raises:
        PathRejectedError: unsafe or empty member name
    """
    if not name:
        raise PathRejectedError("Archive entry has an empty name")

    cleaned = name.replace("\\", "/")
    while cleaned.startswith("./"):
        cleaned = cleaned[2:]

    posix = PurePosixPath(cleaned)
    if posix.is_absolute() or (len(cleaned) > 1 and cleaned[0].isalpha() and cleaned[1] == ":"):
        raise PathRejectedError(f"Archive entry has an absolute path: {name}")

    parts = []
    for part in posix.parts:
        if part in ("", "."):
            continue
        if part == "..":
            raise PathRejectedError(f"Archive entry escapes the destination: {name}")
        parts.append(part)

    return tuple(parts)


def resolve_entry_target(name: str, destination: str) -> str:
    """
    Join an archive member name onto an extraction directory.

    Args:
        name: Member name as stored in the archive
        destination: Normalized absolute extraction directory

    Returns:
        Absolute target path, guaranteed to be destination or lie below it

    Raises:
        PathRejectedError: the member would land outside destination
    """
    parts = normalize_entry_name(name)
    target = normalize_path(os.path.join(destination, *parts))

    if not PathUtils.is_within(target, destination):
        raise PathRejectedError(f"Archive entry escapes the destination: {name}")

    return target
