"""
FileSystemGate archive engine.

Packs files and directory trees into a single archive and unpacks archives
into a directory. Container formats are pluggable codecs; tar.gz and zip are
registered by default.

Guarantees:
- Compression writes to a temporary file beside the destination and renames
  it into place only on success.
- Every member name is validated against the extraction directory before a
  single byte is written. One unsafe member aborts the whole extraction.
- Extraction happens in a staging directory which is moved into place only
  after every entry was restored.
- Content is streamed entry by entry.
- Symlinks (and device/FIFO members) are skipped with a warning, both when
  packing and when unpacking.
"""

import gzip
import os
import shutil
import stat
import tarfile
import tempfile
import zipfile
import zlib
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import IO, Any, Callable, Dict, List, Optional, Tuple

from narthex.shared.gate import GateLogger

from .errors import (
    ConflictError,
    GateIOError,
    InvalidInputError,
    NotFoundError,
    OperationCancelled,
    PathRejectedError,
)
from .models import ArchiveFormat, ResolvedPath
from .security import normalize_entry_name, resolve_entry_target

_log = GateLogger.get("ArchiveEngine")

AbortCheck = Optional[Callable[[], bool]]

ENTRY_FILE = "file"
ENTRY_DIRECTORY = "directory"
ENTRY_OTHER = "other"

GZIP_MAGIC = b"\x1f\x8b"
VERIFY_CHUNK_SIZE = 1024 * 1024

# Errors raised by the codecs for damaged archive data
CORRUPT_ARCHIVE_ERRORS = (tarfile.TarError, zipfile.BadZipFile, gzip.BadGzipFile, zlib.error, EOFError)


@dataclass
class ArchiveEntry:
    """One member of an archive, as seen by the engine."""
    name: str
    kind: str
    size: int = 0
    member: Any = None

    @property
    def is_dir(self) -> bool:
        return self.kind == ENTRY_DIRECTORY

    @property
    def is_file(self) -> bool:
        return self.kind == ENTRY_FILE


# ==================== Codecs ====================


class ArchiveWriter(ABC):
    """Sequential writer for one archive file."""

    @abstractmethod
    def add_directory(self, arcname: str, source: str) -> None:
        """Add a directory entry (no content)."""
        pass

    @abstractmethod
    def add_file(self, arcname: str, source: str) -> None:
        """Add a regular file, streaming its content."""
        pass

    @abstractmethod
    def close(self) -> None:
        pass

    def __enter__(self) -> "ArchiveWriter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class ArchiveReader(ABC):
    """Reader for one archive file."""

    @abstractmethod
    def entries(self) -> List[ArchiveEntry]:
        """List every member (metadata only)."""
        pass

    @abstractmethod
    def open_entry(self, entry: ArchiveEntry) -> IO[bytes]:
        """Open a file member for streaming reads."""
        pass

    @abstractmethod
    def close(self) -> None:
        pass

    def __enter__(self) -> "ArchiveReader":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class ArchiveCodec(ABC):
    """A container format the engine can write and read."""

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @property
    @abstractmethod
    def suffixes(self) -> Tuple[str, ...]:
        pass

    @abstractmethod
    def open_writer(self, path: str) -> ArchiveWriter:
        pass

    @abstractmethod
    def open_reader(self, path: str) -> ArchiveReader:
        pass

    @abstractmethod
    def can_read(self, path: str) -> bool:
        """Sniff the file content, not the name."""
        pass

    def verify(self, path: str) -> None:
        """Check integrity of the container stream before extraction."""
        pass

    def matches(self, path: str) -> bool:
        lowered = path.lower()
        return any(lowered.endswith(suffix) for suffix in self.suffixes)


class _TarWriter(ArchiveWriter):
    def __init__(self, path: str):
        self._tar = tarfile.open(path, "w:gz")

    def add_directory(self, arcname: str, source: str) -> None:
        info = self._tar.gettarinfo(source, arcname=arcname)
        self._tar.addfile(info)

    def add_file(self, arcname: str, source: str) -> None:
        info = self._tar.gettarinfo(source, arcname=arcname)
        with open(source, "rb") as f:
            self._tar.addfile(info, f)

    def close(self) -> None:
        self._tar.close()


class _TarReader(ArchiveReader):
    def __init__(self, path: str):
        self._tar = tarfile.open(path, "r:*")

    def entries(self) -> List[ArchiveEntry]:
        result = []
        for member in self._tar.getmembers():
            if member.isdir():
                kind = ENTRY_DIRECTORY
            elif member.isfile():
                kind = ENTRY_FILE
            else:
                kind = ENTRY_OTHER
            result.append(ArchiveEntry(name=member.name, kind=kind, size=member.size, member=member))
        return result

    def open_entry(self, entry: ArchiveEntry) -> IO[bytes]:
        handle = self._tar.extractfile(entry.member)
        if handle is None:
            raise GateIOError(f"Archive entry has no content: {entry.name}")
        return handle

    def close(self) -> None:
        self._tar.close()


class TarGzCodec(ArchiveCodec):
    """gzip-compressed tar archives."""

    @property
    def name(self) -> str:
        return ArchiveFormat.TAR_GZ.value

    @property
    def suffixes(self) -> Tuple[str, ...]:
        return (".tar.gz", ".tgz")

    def open_writer(self, path: str) -> ArchiveWriter:
        return _TarWriter(path)

    def open_reader(self, path: str) -> ArchiveReader:
        return _TarReader(path)

    def can_read(self, path: str) -> bool:
        try:
            return tarfile.is_tarfile(path)
        except OSError:
            return False

    def verify(self, path: str) -> None:
        """
        Read the gzip stream to the end so its CRC and length are checked.

        tarfile stops listing silently at the first damaged header, so a
        corrupt stream would otherwise extract as a truncated archive.
        Plain (uncompressed) tar files carry no checksum and pass as is.
        """
        with open(path, "rb") as f:
            if f.read(len(GZIP_MAGIC)) != GZIP_MAGIC:
                return
        with gzip.open(path, "rb") as stream:
            while stream.read(VERIFY_CHUNK_SIZE):
                pass


class _ZipWriter(ArchiveWriter):
    def __init__(self, path: str):
        self._zip = zipfile.ZipFile(path, "w", compression=zipfile.ZIP_DEFLATED, strict_timestamps=False)

    def add_directory(self, arcname: str, source: str) -> None:
        # ZipFile.write stores directories with a trailing slash
        self._zip.write(source, arcname=arcname)

    def add_file(self, arcname: str, source: str) -> None:
        self._zip.write(source, arcname=arcname)

    def close(self) -> None:
        self._zip.close()


class _ZipReader(ArchiveReader):
    def __init__(self, path: str):
        self._zip = zipfile.ZipFile(path, "r")

    def entries(self) -> List[ArchiveEntry]:
        result = []
        for info in self._zip.infolist():
            # Many writers store permission bits only, without a file type
            file_type = stat.S_IFMT(info.external_attr >> 16)
            if info.is_dir():
                kind = ENTRY_DIRECTORY
            elif file_type and file_type != stat.S_IFREG:
                kind = ENTRY_OTHER
            else:
                kind = ENTRY_FILE
            result.append(ArchiveEntry(name=info.filename, kind=kind, size=info.file_size, member=info))
        return result

    def open_entry(self, entry: ArchiveEntry) -> IO[bytes]:
        return self._zip.open(entry.member, "r")

    def close(self) -> None:
        self._zip.close()


class ZipCodec(ArchiveCodec):
    """DEFLATE-compressed zip archives."""

    @property
    def name(self) -> str:
        return ArchiveFormat.ZIP.value

    @property
    def suffixes(self) -> Tuple[str, ...]:
        return (".zip",)

    def open_writer(self, path: str) -> ArchiveWriter:
        return _ZipWriter(path)

    def open_reader(self, path: str) -> ArchiveReader:
        return _ZipReader(path)

    def can_read(self, path: str) -> bool:
        try:
            return zipfile.is_zipfile(path)
        except OSError:
            return False


CODECS: Dict[ArchiveFormat, ArchiveCodec] = {
    ArchiveFormat.TAR_GZ: TarGzCodec(),
    ArchiveFormat.ZIP: ZipCodec(),
}


def get_codec(fmt: ArchiveFormat | str) -> ArchiveCodec:
    """Look up a codec by format, raising InvalidInputError for unknown names."""
    try:
        return CODECS[ArchiveFormat(fmt)]
    except ValueError:
        raise InvalidInputError(f"Unsupported archive format: {fmt}") from None


def codec_for_name(path: str) -> Optional[ArchiveCodec]:
    """Pick a codec from a file name suffix."""
    for codec in CODECS.values():
        if codec.matches(path):
            return codec
    return None


def detect_codec(path: str) -> Optional[ArchiveCodec]:
    """Pick a codec by sniffing content, preferring the one the suffix suggests."""
    by_name = codec_for_name(path)
    if by_name is not None and by_name.can_read(path):
        return by_name
    for codec in CODECS.values():
        if codec.can_read(path):
            return codec
    return None


# ==================== Engine ====================


def _check_abort(should_abort: AbortCheck) -> None:
    if should_abort is not None and should_abort():
        raise OperationCancelled("Operation cancelled")


def _nearest_existing_dir(path: str) -> str:
    current = path
    while not os.path.isdir(current):
        parent = os.path.dirname(current)
        if parent == current:
            break
        current = parent
    return current


def _remove_quietly(path: str) -> None:
    try:
        if os.path.isdir(path) and not os.path.islink(path):
            shutil.rmtree(path)
        elif os.path.lexists(path):
            os.remove(path)
    except OSError as e:
        _log.warning(f"Could not remove temporary path {path}: {e}")


class ArchiveEngine:
    """
    Compress and decompress with atomic publication and traversal safety.

    Holds only read-only settings; safe to share between requests.
    """

    def __init__(self, default_format: ArchiveFormat = ArchiveFormat.TAR_GZ, file_mode: int = 0o644):
        self.default_format = ArchiveFormat(default_format)
        self.file_mode = file_mode

    def choose_codec(self, path: str, fmt: Optional[ArchiveFormat | str] = None) -> ArchiveCodec:
        """Explicit format, else destination suffix, else the configured default."""
        if fmt:
            return get_codec(fmt)
        return codec_for_name(path) or get_codec(self.default_format)

    # ---------- compress ----------

    def compress(
        self,
        sources: List[ResolvedPath],
        destination: ResolvedPath,
        overwrite: bool = False,
        fmt: Optional[ArchiveFormat | str] = None,
        should_abort: AbortCheck = None,
    ) -> Dict[str, Any]:
        """
        Pack sources into one archive at destination.

        Each source is stored under its own basename; directories are walked
        recursively with their relative structure preserved.

        Returns:
            Summary dict with entry count and format name

        Raises:
            GateError subclasses; OSError from the file system
        """
        if not sources:
            raise InvalidInputError("At least one source path is required")

        codec = self.choose_codec(destination.absolute, fmt)
        dest = destination.absolute

        roots: List[Tuple[str, ResolvedPath]] = []
        seen_names: Dict[str, str] = {}
        for source in sources:
            if not os.path.lexists(source.absolute):
                raise NotFoundError(f"Source does not exist: {source.raw}")
            if os.path.islink(source.absolute):
                _log.warning(f"Skipping symlink source: {source.raw}")
                continue
            if source.absolute == dest:
                raise InvalidInputError(f"Source and destination are the same path: {source.raw}")

            arc_root = os.path.basename(source.absolute)
            if not arc_root:
                raise InvalidInputError(f"Cannot archive the file-system root: {source.raw}")
            if arc_root in seen_names:
                raise InvalidInputError(
                    f"Sources share the name '{arc_root}': {seen_names[arc_root]}, {source.raw}"
                )
            seen_names[arc_root] = source.raw
            roots.append((arc_root, source))

        if not roots:
            raise InvalidInputError("Nothing to compress: every source was a symlink")

        if os.path.isdir(dest):
            raise InvalidInputError(f"Destination is a directory: {destination.raw}")
        if os.path.lexists(dest) and not overwrite:
            raise ConflictError(f"Destination already exists: {destination.raw}")

        parent = os.path.dirname(dest)
        if not os.path.isdir(parent):
            raise InvalidInputError(f"Parent directory does not exist: {destination.raw}")

        fd, temp_path = tempfile.mkstemp(prefix=".narthex-", suffix=".partial", dir=parent)
        os.close(fd)
        skip = {temp_path, dest}

        try:
            count = 0
            with codec.open_writer(temp_path) as writer:
                for arc_root, source in roots:
                    if os.path.isdir(source.absolute):
                        count += self._add_tree(writer, source.absolute, arc_root, skip, should_abort)
                    elif self._is_regular(source.absolute):
                        _check_abort(should_abort)
                        writer.add_file(arc_root, source.absolute)
                        count += 1
                    else:
                        _log.warning(f"Skipping special file: {source.raw}")

            os.chmod(temp_path, self.file_mode)
            os.replace(temp_path, dest)
        except BaseException:
            _remove_quietly(temp_path)
            raise

        _log.info(f"Compressed {count} entries into {destination.relative} ({codec.name})")
        return {"archive": destination.raw, "entries": count, "format": codec.name}

    def _is_regular(self, path: str) -> bool:
        return stat.S_ISREG(os.lstat(path).st_mode)

    def _add_tree(
        self,
        writer: ArchiveWriter,
        top: str,
        arc_root: str,
        skip: set,
        should_abort: AbortCheck,
    ) -> int:
        count = 0

        def _walk_error(err: OSError) -> None:
            raise err

        for dirpath, dirnames, filenames in os.walk(top, onerror=_walk_error):
            rel = os.path.relpath(dirpath, top)
            arc_dir = arc_root if rel == "." else f"{arc_root}/{rel.replace(os.sep, '/')}"

            _check_abort(should_abort)
            writer.add_directory(arc_dir, dirpath)
            count += 1

            # Symlinked directories are listed in dirnames but must not be descended
            for name in list(dirnames):
                if os.path.islink(os.path.join(dirpath, name)):
                    _log.warning(f"Skipping symlink: {arc_dir}/{name}")
                    dirnames.remove(name)

            for name in filenames:
                full = os.path.join(dirpath, name)
                if full in skip:
                    continue
                if os.path.islink(full):
                    _log.warning(f"Skipping symlink: {arc_dir}/{name}")
                    continue
                if not self._is_regular(full):
                    _log.warning(f"Skipping special file: {arc_dir}/{name}")
                    continue

                _check_abort(should_abort)
                writer.add_file(f"{arc_dir}/{name}", full)
                count += 1

        return count

    # ---------- decompress ----------

    def decompress(
        self,
        source: ResolvedPath,
        destination: ResolvedPath,
        overwrite: bool = False,
        fmt: Optional[ArchiveFormat | str] = None,
        should_abort: AbortCheck = None,
    ) -> Dict[str, Any]:
        """
        Unpack an archive into destination.

        All member names are validated first; conflicts are detected before
        anything is written; extraction goes through a staging directory.

        Returns:
            Summary dict with entry count and format name

        Raises:
            GateError subclasses; OSError from the file system
        """
        archive_path = source.absolute
        dest = destination.absolute

        if not os.path.lexists(archive_path):
            raise NotFoundError(f"Archive does not exist: {source.raw}")
        if not os.path.isfile(archive_path):
            raise InvalidInputError(f"Archive is not a file: {source.raw}")
        if os.path.lexists(dest) and not os.path.isdir(dest):
            raise ConflictError(f"Destination exists and is not a directory: {destination.raw}")

        if fmt:
            codec = get_codec(fmt)
            if not codec.can_read(archive_path):
                raise InvalidInputError(f"Not a readable {codec.name} archive: {source.raw}")
        else:
            codec = detect_codec(archive_path)
            if codec is None:
                raise InvalidInputError(f"Not a readable archive: {source.raw}")

        self._check_destination_links(destination)

        try:
            codec.verify(archive_path)
            reader = codec.open_reader(archive_path)
        except CORRUPT_ARCHIVE_ERRORS as e:
            _log.warning(f"Cannot open archive {source.relative}: {e}")
            raise InvalidInputError(f"Not a readable archive: {source.raw}") from None

        with reader:
            try:
                entries = reader.entries()
            except CORRUPT_ARCHIVE_ERRORS as e:
                _log.warning(f"Cannot list archive {source.relative}: {e}")
                raise InvalidInputError(f"Not a readable archive: {source.raw}") from None

            plan = self._plan_extraction(entries, dest)
            self._check_conflicts(plan, dest, overwrite)

            staging_parent = dest if os.path.isdir(dest) else _nearest_existing_dir(os.path.dirname(dest))
            staging = tempfile.mkdtemp(prefix=".narthex-extract-", dir=staging_parent)
            try:
                count = self._extract_to_staging(reader, plan, staging, should_abort)
                self._publish(staging, dest)
            finally:
                _remove_quietly(staging)

        _log.info(f"Extracted {count} entries into {destination.relative} ({codec.name})")
        return {"destination": destination.raw, "entries": count, "format": codec.name}

    def _check_destination_links(self, destination: ResolvedPath) -> None:
        """Reject a destination that is, or sits below, a symlink inside the root."""
        depth = 0 if destination.relative == "." else len(destination.relative.split(os.sep))
        current = destination.absolute
        for _ in range(depth):
            if os.path.islink(current):
                raise PathRejectedError(f"Destination passes through a symlink: {destination.raw}")
            current = os.path.dirname(current)

    def _plan_extraction(self, entries: List[ArchiveEntry], dest: str) -> List[Tuple[ArchiveEntry, Tuple[str, ...]]]:
        """Validate every member name; any unsafe one aborts before I/O."""
        plan = []
        for entry in entries:
            resolve_entry_target(entry.name, dest)
            parts = normalize_entry_name(entry.name)
            if not parts:
                # "./" denotes the destination itself
                if entry.is_file:
                    raise PathRejectedError(f"Archive file entry has no name: {entry.name}")
                continue
            if entry.kind == ENTRY_OTHER:
                _log.warning(f"Skipping link or special archive member: {entry.name}")
                continue
            plan.append((entry, parts))
        return plan

    def _check_conflicts(self, plan: List[Tuple[ArchiveEntry, Tuple[str, ...]]], dest: str, overwrite: bool) -> None:
        if not os.path.isdir(dest):
            return

        for entry, parts in plan:
            # Existing intermediate components must be real directories
            current = dest
            for part in parts[:-1]:
                current = os.path.join(current, part)
                if os.path.islink(current):
                    raise PathRejectedError(f"Archive entry passes through a symlink: {entry.name}")
                if os.path.lexists(current) and not os.path.isdir(current):
                    raise ConflictError(f"A file blocks directory for entry: {entry.name}")

            target = os.path.join(dest, *parts)
            if os.path.islink(target):
                raise PathRejectedError(f"Archive entry targets a symlink: {entry.name}")
            if not os.path.lexists(target):
                continue

            if entry.is_dir:
                if not os.path.isdir(target):
                    raise ConflictError(f"A file exists where a directory is needed: {entry.name}")
            elif os.path.isdir(target):
                raise ConflictError(f"A directory exists where a file is needed: {entry.name}")
            elif not overwrite:
                raise ConflictError(f"Target already exists: {entry.name}")

    def _extract_to_staging(
        self,
        reader: ArchiveReader,
        plan: List[Tuple[ArchiveEntry, Tuple[str, ...]]],
        staging: str,
        should_abort: AbortCheck,
    ) -> int:
        count = 0
        for entry, parts in plan:
            _check_abort(should_abort)
            target = os.path.join(staging, *parts)
            try:
                if entry.is_dir:
                    os.makedirs(target, exist_ok=True)
                else:
                    os.makedirs(os.path.dirname(target), exist_ok=True)
                    with reader.open_entry(entry) as src, open(target, "wb") as dst:
                        shutil.copyfileobj(src, dst)
                    os.chmod(target, self.file_mode)
            except (OSError,) + CORRUPT_ARCHIVE_ERRORS as e:
                _log.error(f"Failed to extract entry {entry.name}: {e}")
                raise GateIOError(f"Failed to extract entry: {entry.name}") from e
            count += 1
        return count

    def _publish(self, staging: str, dest: str) -> None:
        """Move the staged tree into place."""
        if not os.path.exists(dest):
            os.makedirs(os.path.dirname(dest), exist_ok=True)
            os.chmod(staging, 0o755)
            os.replace(staging, dest)
            return

        for dirpath, dirnames, filenames in os.walk(staging):
            rel = os.path.relpath(dirpath, staging)
            target_dir = dest if rel == "." else os.path.join(dest, rel)
            os.makedirs(target_dir, exist_ok=True)
            for name in filenames:
                os.replace(os.path.join(dirpath, name), os.path.join(target_dir, name))
