"""
Pytest configuration and shared fixtures for checkpoint engine tests.
"""

import pytest
from pathlib import Path
from typing import Dict, Union

# Add src to path
import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from zen_checkpoints.checkpoint import (
    CheckpointService,
    ContentHasher,
    ManifestStore,
    TreeScanner,
    IgnoreRules,
)
from zen_checkpoints.utils.config import CheckpointConfig


def write_files(root: Path, files: Dict[str, Union[str, bytes]]) -> None:
    """Write ``{relative_path: content}`` under ``root``."""
    for relative_path, content in files.items():
        path = root / relative_path
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")


def read_tree(root: Path) -> Dict[str, bytes]:
    """Every file under ``root`` except engine storage, keyed by posix path."""
    return {
        path.relative_to(root).as_posix(): path.read_bytes()
        for path in sorted(root.rglob("*"))
        if path.is_file() and ".zen" not in path.relative_to(root).parts
    }


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """Empty project root."""
    path = tmp_path / "project"
    path.mkdir()
    return path


@pytest.fixture
def storage_dir(tmp_path: Path) -> Path:
    """Checkpoint storage root outside the project."""
    return tmp_path / "storage"


@pytest.fixture
def checkpoint_config(project_dir: Path, storage_dir: Path) -> CheckpointConfig:
    return CheckpointConfig(project_root=project_dir, storage_path=storage_dir)


@pytest.fixture
def service(checkpoint_config: CheckpointConfig) -> CheckpointService:
    return CheckpointService(checkpoint_config)


@pytest.fixture
def store(storage_dir: Path) -> ManifestStore:
    return ManifestStore(storage_dir)


@pytest.fixture
def scanner() -> TreeScanner:
    return TreeScanner(IgnoreRules())


@pytest.fixture
def hasher() -> ContentHasher:
    return ContentHasher()


@pytest.fixture
def make_files():
    """Fixture form of write_files for test modules."""
    return write_files


@pytest.fixture
def snapshot_tree():
    """Fixture form of read_tree for test modules."""
    return read_tree
