"""
Pytest configuration and fixtures for Narthex tests.
"""

import os
import sys
import shutil
import tempfile
from pathlib import Path
from typing import Generator

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT))


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    temp_path = Path(tempfile.mkdtemp())
    yield temp_path
    # Cleanup
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def sample_root(temp_dir: Path) -> Path:
    """Create an allowed root with a few test files."""
    root = temp_dir / "root"
    root.mkdir(parents=True, exist_ok=True)

    (root / "readme.txt").write_text("Hello World")
    (root / "data.json").write_text('{"key": "value"}')

    subfolder = root / "subfolder"
    subfolder.mkdir()
    (subfolder / "nested.txt").write_text("Nested content")

    return root


@pytest.fixture
def gate(sample_root: Path):
    """FileSystemGate initialized on the sample root."""
    from narthex.FileSystemGate import FileSystemGate

    assert FileSystemGate.initialize(allowed_root=str(sample_root)) is True
    return FileSystemGate


@pytest.fixture(autouse=True)
def isolated_config(temp_dir: Path, monkeypatch):
    """Keep the developer's .env and NARTHEX_* variables out of tests."""
    for key in list(os.environ):
        if key.startswith("NARTHEX_"):
            monkeypatch.delenv(key, raising=False)

    missing = temp_dir / "missing"
    monkeypatch.setenv("NARTHEX_ENV_FILE", str(missing / ".env"))
    monkeypatch.setenv("NARTHEX_CONFIG_JSON", str(missing / "config.json"))
    monkeypatch.setenv("NARTHEX_FILESYSTEM_CONFIG", str(missing / "filesystem.json"))


@pytest.fixture(autouse=True)
def reset_module_state():
    """Reset module-level state between tests."""
    yield

    # Reset FileSystemGate
    try:
        import narthex.FileSystemGate as fs_gate
        fs_gate._config = None
        fs_gate._engine = None
        fs_gate._initialized = False
    except (ImportError, AttributeError):
        pass

    # Reset Config
    try:
        import narthex.Config as config_module
        config_module._manager = None
    except (ImportError, AttributeError):
        pass
