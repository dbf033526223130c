"""
Tests for FileSystemGate file operations.
"""

import base64
import json
import os
import stat

import pytest

from narthex.FileSystemGate import (
    FileSystemGate,
    initialize,
    is_initialized,
)
from narthex.FileSystemGate.models import ErrorKind, FileSystemConfig


class TestFileSystemGateInitialization:
    """Tests for FileSystemGate initialization."""

    def test_initialize_with_root(self, sample_root):
        """Initialize should accept an existing directory."""
        result = FileSystemGate.initialize(allowed_root=str(sample_root))

        assert result is True
        assert FileSystemGate.is_initialized() is True
        assert FileSystemGate.get_config()["allowed_root"] == os.path.abspath(str(sample_root))

    def test_initialize_missing_root_fails(self, temp_dir):
        """A root that does not exist is refused."""
        result = initialize(allowed_root=str(temp_dir / "nope"))

        assert result is False
        assert is_initialized() is False

    def test_initialize_file_as_root_fails(self, sample_root):
        """The root must be a directory."""
        assert FileSystemGate.initialize(allowed_root=str(sample_root / "readme.txt")) is False

    def test_initialize_without_root_fails(self):
        """No NARTHEX_ALLOWED_ROOT and no argument means no gate."""
        assert FileSystemGate.initialize() is False

    def test_initialize_from_environment(self, sample_root, monkeypatch):
        """Settings come from NARTHEX_* variables when no argument is given."""
        monkeypatch.setenv("NARTHEX_ALLOWED_ROOT", str(sample_root))
        monkeypatch.setenv("NARTHEX_MAX_FILE_SIZE_MB", "7")
        monkeypatch.setenv("NARTHEX_ARCHIVE_FORMAT", "zip")

        assert FileSystemGate.initialize() is True
        config = FileSystemGate.get_config()
        assert config["max_file_size_mb"] == 7
        assert config["default_archive_format"] == "zip"

    def test_config_file_overrides_environment(self, sample_root, temp_dir, monkeypatch):
        """Fields present in the JSON config file win over environment values."""
        monkeypatch.setenv("NARTHEX_MAX_FILE_SIZE_MB", "7")
        config_path = temp_dir / "filesystem.json"
        config_path.write_text(json.dumps({"max_file_size_mb": 3}))

        assert FileSystemGate.initialize(allowed_root=str(sample_root), config_path=str(config_path)) is True
        assert FileSystemGate.get_config()["max_file_size_mb"] == 3

    def test_config_file_round_trip(self, sample_root, temp_dir):
        """A dumped FileSystemConfig initializes the gate."""
        config_path = temp_dir / "saved.json"
        config_path.write_text(json.dumps(FileSystemConfig(allowed_root=str(sample_root)).to_dict()))

        assert FileSystemGate.initialize(config_path=str(config_path)) is True

    def test_lazy_initialization_failure_raises(self):
        """Operations without a usable root raise RuntimeError."""
        with pytest.raises(RuntimeError):
            FileSystemGate.read_file("readme.txt")


class TestReadFile:
    """Tests for reading files."""

    def test_read_relative(self, gate):
        """Relative paths resolve against the root."""
        result = gate.read_file("readme.txt")

        assert result.success is True
        assert result.data == "Hello World"

    def test_read_absolute(self, gate, sample_root):
        """Absolute paths inside the root are accepted as given."""
        result = gate.read_file(str(sample_root / "subfolder" / "nested.txt"))

        assert result.success is True
        assert result.data == "Nested content"

    def test_read_missing(self, gate):
        """Missing files report not_found."""
        result = gate.read_file("ghost.txt")

        assert result.success is False
        assert result.error_kind == ErrorKind.NOT_FOUND

    def test_read_directory(self, gate):
        """Reading a directory is invalid input."""
        result = gate.read_file("subfolder")

        assert result.success is False
        assert result.error_kind == ErrorKind.INVALID_INPUT

    def test_read_binary_as_text_fails(self, gate, sample_root):
        """Non-UTF-8 content is refused unless base64 is requested."""
        (sample_root / "blob.bin").write_bytes(b"\xff\xfe\x00\x81")

        result = gate.read_file("blob.bin")

        assert result.success is False
        assert result.error_kind == ErrorKind.INVALID_INPUT

    def test_read_binary_as_base64(self, gate, sample_root):
        """encoding=base64 returns the exact bytes."""
        payload = b"\xff\xfe\x00\x81"
        (sample_root / "blob.bin").write_bytes(payload)

        result = gate.read_file("blob.bin", encoding="base64")

        assert result.success is True
        assert base64.b64decode(result.data) == payload

    def test_read_too_large(self, sample_root):
        """Files above max_file_size_mb are refused."""
        FileSystemGate.initialize(allowed_root=str(sample_root), max_file_size_mb=1)
        (sample_root / "big.txt").write_bytes(b"a" * (1024 * 1024 + 1))

        result = FileSystemGate.read_file("big.txt")

        assert result.success is False
        assert result.error_kind == ErrorKind.INVALID_INPUT
        assert "too large" in result.error.lower()


class TestListDirectory:
    """Tests for directory listing."""

    def test_list_root(self, gate):
        """Every entry is reported with its type."""
        result = gate.list_dir(".")

        assert result.success is True
        by_name = {entry["name"]: entry for entry in result.data}
        assert set(by_name) == {"readme.txt", "data.json", "subfolder"}
        assert by_name["readme.txt"]["type"] == "file"
        assert by_name["readme.txt"]["size"] == len("Hello World")
        assert by_name["subfolder"]["type"] == "directory"
        assert by_name["subfolder"]["size"] == 0

    def test_list_counts_match(self, gate, sample_root):
        """N created entries give N records."""
        target = sample_root / "many"
        target.mkdir()
        for i in range(5):
            (target / f"f{i}.txt").write_text(str(i))
        (target / ".hidden").write_text("h")
        (target / "inner").mkdir()

        result = gate.list_dir("many")

        assert result.success is True
        assert len(result.data) == 7
        assert sum(1 for e in result.data if e["type"] == "directory") == 1

    def test_list_empty(self, gate, sample_root):
        """An empty directory gives an empty list."""
        (sample_root / "empty").mkdir()

        result = gate.list_dir("empty")

        assert result.success is True
        assert result.data == []

    def test_list_file_is_invalid(self, gate):
        """Listing a file is invalid input."""
        result = gate.list_dir("readme.txt")

        assert result.success is False
        assert result.error_kind == ErrorKind.INVALID_INPUT

    def test_list_missing(self, gate):
        """Listing a missing directory reports not_found."""
        result = gate.list_dir("nowhere")

        assert result.error_kind == ErrorKind.NOT_FOUND

    def test_modified_is_iso_timestamp(self, gate):
        """Timestamps serialize as ISO 8601 strings."""
        result = gate.list_dir(".")

        assert all("T" in entry["modified"] for entry in result.data)


class TestWriteFile:
    """Tests for writing files."""

    def test_write_then_read(self, gate):
        """Written content reads back identically."""
        text = "line one\nline two ✓\n"

        write = gate.write_file("new.txt", text)
        read = gate.read_file("new.txt")

        assert write.success is True
        assert "Created" in write.message
        assert read.data == text

    def test_write_replaces(self, gate, sample_root):
        """Writing an existing file replaces its content."""
        result = gate.write_file("readme.txt", "Replaced")

        assert result.success is True
        assert "Updated" in result.message
        assert (sample_root / "readme.txt").read_text() == "Replaced"

    def test_write_keeps_existing_mode(self, gate, sample_root):
        """Replacing a file keeps its permission bits."""
        os.chmod(sample_root / "readme.txt", 0o600)

        gate.write_file("readme.txt", "Replaced")

        assert stat.S_IMODE(os.stat(sample_root / "readme.txt").st_mode) == 0o600

    def test_write_new_file_uses_configured_mode(self, gate, sample_root):
        """New files get the configured file mode."""
        gate.write_file("fresh.txt", "x")

        assert stat.S_IMODE(os.stat(sample_root / "fresh.txt").st_mode) == 0o644

    def test_write_empty_content(self, gate, sample_root):
        """Empty content creates an empty file."""
        result = gate.write_file("empty.txt", "")

        assert result.success is True
        assert (sample_root / "empty.txt").read_bytes() == b""

    def test_write_missing_parent(self, gate):
        """A missing parent is invalid input unless create_dirs is set."""
        result = gate.write_file("a/b/c.txt", "x")

        assert result.success is False
        assert result.error_kind == ErrorKind.INVALID_INPUT

    def test_write_create_dirs(self, gate, sample_root):
        """create_dirs builds missing parents."""
        result = gate.write_file("a/b/c.txt", "x", create_dirs=True)

        assert result.success is True
        assert (sample_root / "a" / "b" / "c.txt").read_text() == "x"

    def test_write_base64(self, gate, sample_root):
        """Base64 content is decoded before writing."""
        payload = bytes(range(256))

        result = gate.write_file("bytes.bin", base64.b64encode(payload).decode(), encoding="base64")

        assert result.success is True
        assert (sample_root / "bytes.bin").read_bytes() == payload

    def test_write_bad_base64(self, gate):
        """Malformed base64 is invalid input."""
        result = gate.write_file("bytes.bin", "not base64!!", encoding="base64")

        assert result.error_kind == ErrorKind.INVALID_INPUT

    def test_write_onto_directory(self, gate):
        """Writing onto a directory is invalid input."""
        result = gate.write_file("subfolder", "x")

        assert result.error_kind == ErrorKind.INVALID_INPUT

    def test_write_leaves_no_temp_files(self, gate, sample_root):
        """The atomic write cleans up after itself."""
        gate.write_file("clean.txt", "x")

        assert not [name for name in os.listdir(sample_root) if name.endswith(".partial")]

    def test_write_too_large(self, sample_root):
        """Content above max_file_size_mb is refused."""
        FileSystemGate.initialize(allowed_root=str(sample_root), max_file_size_mb=1)

        result = FileSystemGate.write_file("big.txt", "a" * (1024 * 1024 + 1))

        assert result.error_kind == ErrorKind.INVALID_INPUT
        assert not (sample_root / "big.txt").exists()


class TestRenameAndCopy:
    """Tests for rename and copy."""

    def test_rename_file(self, gate, sample_root):
        """Rename moves the file."""
        result = gate.rename("readme.txt", "subfolder/moved.txt")

        assert result.success is True
        assert not (sample_root / "readme.txt").exists()
        assert (sample_root / "subfolder" / "moved.txt").read_text() == "Hello World"

    def test_rename_directory(self, gate, sample_root):
        """Directories can be renamed."""
        result = gate.rename("subfolder", "renamed")

        assert result.success is True
        assert (sample_root / "renamed" / "nested.txt").exists()

    def test_rename_missing_source(self, gate):
        """A missing source reports not_found."""
        result = gate.rename("ghost.txt", "other.txt")

        assert result.success is False
        assert result.error_kind == ErrorKind.NOT_FOUND

    def test_rename_onto_existing(self, gate, sample_root):
        """An existing destination is a conflict and nothing moves."""
        result = gate.rename("readme.txt", "data.json")

        assert result.success is False
        assert result.error_kind == ErrorKind.CONFLICT
        assert (sample_root / "readme.txt").exists()
        assert (sample_root / "data.json").read_text() == '{"key": "value"}'

    def test_rename_overwrite(self, gate, sample_root):
        """overwrite=True replaces the destination."""
        result = gate.rename("readme.txt", "data.json", overwrite=True)

        assert result.success is True
        assert (sample_root / "data.json").read_text() == "Hello World"

    def test_rename_into_itself(self, gate):
        """A directory cannot move below itself."""
        result = gate.rename("subfolder", "subfolder/inner")

        assert result.error_kind == ErrorKind.INVALID_INPUT

    def test_rename_root_rejected(self, gate):
        """The root itself cannot be renamed."""
        result = gate.rename(".", "elsewhere")

        assert result.error_kind == ErrorKind.PATH_REJECTED

    def test_copy_file(self, gate, sample_root):
        """Copy duplicates content and keeps the source."""
        result = gate.copy("readme.txt", "copy.txt")

        assert result.success is True
        assert (sample_root / "copy.txt").read_text() == "Hello World"
        assert (sample_root / "readme.txt").exists()

    def test_copy_conflict(self, gate):
        """Copy onto an existing file is a conflict."""
        result = gate.copy("readme.txt", "data.json")

        assert result.error_kind == ErrorKind.CONFLICT

    def test_copy_directory_source(self, gate):
        """Only regular files can be copied."""
        result = gate.copy("subfolder", "copied")

        assert result.error_kind == ErrorKind.INVALID_INPUT

    def test_copy_missing_source(self, gate):
        """A missing source reports not_found."""
        result = gate.copy("ghost.txt", "copy.txt")

        assert result.error_kind == ErrorKind.NOT_FOUND


class TestDeleteAndChmod:
    """Tests for delete and chmod."""

    def test_delete_file(self, gate, sample_root):
        """Delete removes a file."""
        result = gate.delete("readme.txt")

        assert result.success is True
        assert not (sample_root / "readme.txt").exists()

    def test_delete_empty_directory(self, gate, sample_root):
        """Empty directories are removed without recursive."""
        (sample_root / "empty").mkdir()

        assert gate.delete("empty").success is True

    def test_delete_non_empty_directory(self, gate, sample_root):
        """Non-empty directories need recursive=True."""
        result = gate.delete("subfolder")

        assert result.error_kind == ErrorKind.INVALID_INPUT
        assert (sample_root / "subfolder" / "nested.txt").exists()

    def test_delete_recursive(self, gate, sample_root):
        """recursive=True removes the whole tree."""
        result = gate.delete("subfolder", recursive=True)

        assert result.success is True
        assert not (sample_root / "subfolder").exists()

    def test_delete_root_rejected(self, gate, sample_root):
        """The root itself cannot be deleted."""
        result = gate.delete(str(sample_root), recursive=True)

        assert result.error_kind == ErrorKind.PATH_REJECTED
        assert sample_root.exists()

    def test_delete_missing(self, gate):
        """Deleting a missing path reports not_found."""
        assert gate.delete("ghost.txt").error_kind == ErrorKind.NOT_FOUND

    def test_chmod(self, gate, sample_root):
        """An octal string sets the permission bits."""
        result = gate.chmod("readme.txt", "600")

        assert result.success is True
        assert stat.S_IMODE(os.stat(sample_root / "readme.txt").st_mode) == 0o600

    def test_chmod_invalid_mode(self, gate, sample_root):
        """A non-octal mode is invalid input and changes nothing."""
        before = stat.S_IMODE(os.stat(sample_root / "readme.txt").st_mode)

        result = gate.chmod("readme.txt", "abc")

        assert result.success is False
        assert result.error_kind == ErrorKind.INVALID_INPUT
        assert stat.S_IMODE(os.stat(sample_root / "readme.txt").st_mode) == before

    def test_chmod_missing(self, gate):
        """chmod on a missing path reports not_found."""
        assert gate.chmod("ghost.txt", "644").error_kind == ErrorKind.NOT_FOUND


class TestPathSecurity:
    """Tests for root confinement."""

    def test_traversal_blocked(self, gate):
        """Relative paths cannot climb out of the root."""
        result = gate.read_file("../../etc/passwd")

        assert result.success is False
        assert result.error_kind == ErrorKind.PATH_REJECTED

    def test_absolute_outside_blocked(self, gate):
        """Absolute paths outside the root are rejected."""
        result = gate.read_file("/etc/passwd")

        assert result.error_kind == ErrorKind.PATH_REJECTED

    def test_sibling_prefix_blocked(self, gate, sample_root):
        """A sibling whose name starts with the root's name is outside."""
        sibling = str(sample_root) + "-evil"
        os.makedirs(sibling, exist_ok=True)

        result = gate.list_dir(sibling)

        assert result.error_kind == ErrorKind.PATH_REJECTED

    def test_write_outside_blocked(self, gate, temp_dir):
        """Nothing is written outside the root."""
        result = gate.write_file("../escape.txt", "x")

        assert result.error_kind == ErrorKind.PATH_REJECTED
        assert not (temp_dir / "escape.txt").exists()

    def test_empty_path_is_invalid(self, gate):
        """A missing path argument is invalid input."""
        result = gate.read_file("")

        assert result.error_kind == ErrorKind.INVALID_INPUT
        assert "required" in result.error

    def test_errors_do_not_leak_root(self, gate, sample_root):
        """Failure messages only name the path the caller supplied."""
        result = gate.read_file("ghost.txt")

        assert str(sample_root) not in result.error


class TestHealth:
    """Tests for health reporting."""

    def test_health_when_initialized(self, gate):
        """An initialized gate on a writable root is healthy."""
        status = gate.get_health_status()

        assert gate.is_healthy() is True
        assert status["gate"] == "FileSystemGate"
        assert status["healthy"] is True
        assert status["checks"]["allowed_root_exists"] is True

    def test_health_when_uninitialized(self):
        """An uninitialized gate is not healthy."""
        status = FileSystemGate.get_health_status()

        assert FileSystemGate.is_healthy() is False
        assert status["healthy"] is False
        assert status["initialized"] is False
