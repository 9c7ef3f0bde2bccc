"""On-disk checkpoint storage: directories, manifests and blobs"""

import json
from pathlib import Path, PurePosixPath
from typing import Optional, List
import aiofiles
import aiofiles.os

from .models import Checkpoint, StorageDirName
from ..utils.logging import get_logger
from ..utils.errors import (
    StorageError,
    ValidationError,
    CheckpointNotFoundError,
    ManifestCorruptError,
)

logger = get_logger(__name__)


class ManifestStore:
    """Checkpoint directories under one storage root

    Layout::

        <storage_root>/
          <timestampMillis>_<kind>_<id>/
            manifest.json
            <relative/path/of/stored/blob>
          <timestampMillis>_<kind>_<id>.manifest.tmp   (only while committing)

    Blobs mirror the project tree and are stored uncompressed. A root-level
    blob named like the manifest, or starting with ``~``, gets one extra
    leading ``~`` so no project file can collide with the manifest. A directory
    without a readable manifest is an interrupted creation and is never
    treated as a checkpoint.
    """

    def __init__(self, storage_path: Path, manifest_name: str = "manifest.json"):
        """Initialize manifest store

        Args:
            storage_path: Root directory holding all checkpoint directories
            manifest_name: File name of the manifest inside each directory
        """
        self.storage_path = Path(storage_path)
        self.manifest_name = manifest_name

    async def ensure_store_directory(self) -> Path:
        """Create the storage root if needed; safe to call repeatedly"""
        try:
            await aiofiles.os.makedirs(self.storage_path, exist_ok=True)
        except OSError as e:
            raise StorageError(
                f"Cannot create checkpoint storage at {self.storage_path}", cause=e
            ) from e
        return self.storage_path

    async def list_checkpoint_directories(self) -> List[str]:
        """Names of all checkpoint directories (unsorted)"""
        if not await aiofiles.os.path.isdir(self.storage_path):
            return []

        try:
            names = await aiofiles.os.listdir(self.storage_path)
        except OSError as e:
            raise StorageError(
                f"Cannot list checkpoint storage at {self.storage_path}", cause=e
            ) from e

        return [
            name for name in names
            if await aiofiles.os.path.isdir(self.storage_path / name)
        ]

    async def resolve_directory(self, id_fragment: str) -> Optional[str]:
        """Find the directory for a checkpoint id or directory name

        Exact directory names win, then directories whose embedded id equals
        the fragment, then the first name (sorted) containing the fragment.
        """
        if not id_fragment:
            return None

        names = sorted(await self.list_checkpoint_directories())
        if id_fragment in names:
            return id_fragment

        for name in names:
            parsed = StorageDirName.parse(name)
            if parsed and str(parsed.checkpoint_id) == id_fragment:
                return name

        for name in names:
            if id_fragment in name:
                return name

        return None

    async def latest_timestamp(self) -> int:
        """Largest timestamp embedded in any directory name, 0 when empty"""
        names = await self.list_checkpoint_directories()
        return max((StorageDirName.sort_key(name) for name in names), default=0)

    async def create_checkpoint_directory(self, directory: str) -> Path:
        path = self.storage_path / directory
        try:
            await aiofiles.os.makedirs(path, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create checkpoint directory {directory}", cause=e) from e
        return path

    async def read_manifest(self, directory: str) -> Checkpoint:
        """Load a checkpoint's manifest

        Raises:
            CheckpointNotFoundError: the manifest file does not exist
            ManifestCorruptError: the manifest cannot be read or parsed
        """
        manifest_path = self.storage_path / directory / self.manifest_name

        if not await aiofiles.os.path.isfile(manifest_path):
            raise CheckpointNotFoundError(
                directory, message=f"No manifest found in checkpoint directory {directory}"
            )

        try:
            async with aiofiles.open(manifest_path, 'r', encoding='utf-8') as f:
                data = json.loads(await f.read())
            return Checkpoint.from_dict(data, directory=directory)
        except (OSError, UnicodeDecodeError, ValueError, KeyError, TypeError) as e:
            raise ManifestCorruptError(directory, cause=e) from e

    async def write_manifest(self, directory: str, checkpoint: Checkpoint) -> None:
        """Persist a manifest through a temporary file and atomic rename"""
        manifest_path = self.storage_path / directory / self.manifest_name
        temp_path = self.storage_path / f"{directory}.manifest.tmp"

        try:
            async with aiofiles.open(temp_path, 'w', encoding='utf-8') as f:
                await f.write(json.dumps(checkpoint.to_dict(), indent=2))
            await aiofiles.os.replace(temp_path, manifest_path)
        except OSError as e:
            raise StorageError(f"Failed to write manifest for {directory}", cause=e) from e

        checkpoint.directory = directory

    async def has_blob(self, directory: str, relative_path: str) -> bool:
        return await aiofiles.os.path.isfile(self._blob_path(directory, relative_path))

    async def read_blob(self, directory: str, relative_path: str) -> Optional[bytes]:
        """Content stored by this checkpoint itself, None if it did not store the path

        OSError other than a missing file propagates to the caller.
        """
        blob_path = self._blob_path(directory, relative_path)
        try:
            async with aiofiles.open(blob_path, 'rb') as f:
                return await f.read()
        except FileNotFoundError:
            return None

    async def write_blob(self, directory: str, relative_path: str, data: bytes) -> None:
        blob_path = self._blob_path(directory, relative_path)
        try:
            await aiofiles.os.makedirs(blob_path.parent, exist_ok=True)
            async with aiofiles.open(blob_path, 'wb') as f:
                await f.write(data)
        except OSError as e:
            raise StorageError(
                f"Failed to store {relative_path} in checkpoint {directory}", cause=e
            ) from e

    def _blob_path(self, directory: str, relative_path: str) -> Path:
        parts = list(safe_relative_path(relative_path).parts)
        if parts[0] == self.manifest_name or parts[0].startswith("~"):
            parts[0] = "~" + parts[0]
        return self.storage_path / directory / Path(*parts)


def safe_relative_path(relative_path: str) -> Path:
    """Validate a root-relative ``/``-separated path and convert it to a Path"""
    pure = PurePosixPath(relative_path)
    if not pure.parts or pure.is_absolute() or ".." in pure.parts:
        raise ValidationError("relative_path", relative_path, "must be a relative path inside the project")
    return Path(*pure.parts)
