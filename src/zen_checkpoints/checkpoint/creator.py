"""Incremental checkpoint creation"""

import asyncio
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Dict, List, Union

import aiofiles

from .chain import ChainWalker
from .diff import LineDiff, count_lines, decode_text, diff_lines
from .hashing import ContentHasher
from .manifest_store import ManifestStore
from .models import (
    Checkpoint,
    CheckpointId,
    CheckpointKind,
    CheckpointStats,
    ChangeRecord,
    ChangeStatus,
    FileEntry,
    StorageDirName,
)
from .scanner import ScanResult, TreeScanner
from ..utils.logging import get_logger
from ..utils.errors import (
    StorageError,
    ValidationError,
    CheckpointNotFoundError,
    ManifestCorruptError,
)

logger = get_logger(__name__)


@dataclass
class SnapshotFile:
    """A project file read during the scan"""
    path: str
    data: bytes
    entry: FileEntry


@dataclass
class ChangeSet:
    """Classification of the current files against the parent checkpoint"""
    stats: CheckpointStats = field(default_factory=CheckpointStats)
    changes: Dict[str, ChangeRecord] = field(default_factory=dict)
    to_store: List[SnapshotFile] = field(default_factory=list)


class CheckpointCreator:
    """Creates full and incremental checkpoints of a project tree

    The flow is scan, hash, compare against the parent, write the changed
    blobs, then commit the manifest. Nothing is written when an incremental
    checkpoint would record no changes.
    """

    def __init__(
        self,
        project_root: Path,
        store: ManifestStore,
        scanner: TreeScanner,
        hasher: Optional[ContentHasher] = None,
        max_concurrent_io: int = 16
    ):
        """Initialize checkpoint creator

        Args:
            project_root: Directory being checkpointed
            store: Storage for manifests and blobs
            scanner: Tree scanner with the project's ignore rules
            hasher: Content hasher (sha256 by default)
            max_concurrent_io: Maximum number of files read at once
        """
        self.project_root = Path(project_root)
        self.store = store
        self.scanner = scanner
        self.hasher = hasher or ContentHasher()
        self.max_concurrent_io = max_concurrent_io

    async def create(
        self,
        kind: Union[CheckpointKind, str],
        message_id: Optional[str] = None,
        parent_id: Optional[str] = None
    ) -> Optional[Checkpoint]:
        """Create a checkpoint

        Args:
            kind: ``full`` stores every file, ``incremental`` only changed files
            message_id: Optional caller-defined correlation id
            parent_id: Parent checkpoint id or directory name; incremental
                checkpoints without one use the most recent readable checkpoint

        Returns:
            The committed checkpoint, or None when nothing changed since the parent
        """
        kind = CheckpointKind(kind)

        await self.store.ensure_store_directory()

        # Allocated up front so parent discovery can exclude it
        checkpoint_id = CheckpointId.generate()
        now_ms = int(time.time() * 1000)
        timestamp = max(now_ms, await self.store.latest_timestamp() + 1)
        directory = StorageDirName(timestamp, kind, checkpoint_id).format()

        scan = await self.scanner.scan(self.project_root)
        current = await self._read_files(scan)

        parent = await self._resolve_parent(kind, parent_id, exclude=directory)
        change_set = await self._classify(kind, current, parent)

        if parent is not None and change_set.stats.is_empty():
            logger.info(
                "checkpoint_skipped",
                reason="no_changes",
                parent_id=parent.id,
                kind=kind.value
            )
            return None

        await self.store.create_checkpoint_directory(directory)
        storage_size = await self._write_blobs(directory, change_set.to_store)

        checkpoint = Checkpoint(
            id=str(checkpoint_id),
            timestamp=timestamp,
            kind=kind if parent is not None else CheckpointKind.FULL,
            total_size=scan.total_size,
            files={path: f.entry for path, f in current.items()},
            parent_id=parent.id if parent is not None else None,
            message_id=message_id,
            storage_size=storage_size,
            stats=change_set.stats if parent is not None else None,
            changes=change_set.changes if parent is not None else None
        )
        await self.store.write_manifest(directory, checkpoint)

        logger.info(
            "checkpoint_created",
            checkpoint_id=checkpoint.id,
            directory=directory,
            kind=checkpoint.kind.value,
            parent_id=checkpoint.parent_id,
            files=len(checkpoint.files),
            stored=len(change_set.to_store),
            storage_size=storage_size,
            **change_set.stats.to_dict()
        )

        return checkpoint

    async def _read_files(self, scan: ScanResult) -> Dict[str, SnapshotFile]:
        """Read and hash every scanned file; any read failure aborts creation"""
        semaphore = asyncio.Semaphore(self.max_concurrent_io)

        async def read(path: str) -> SnapshotFile:
            async with semaphore:
                try:
                    async with aiofiles.open(self.project_root / path, 'rb') as f:
                        data = await f.read()
                except OSError as e:
                    raise StorageError(f"Failed to read {path} while checkpointing", cause=e) from e
            return SnapshotFile(path=path, data=data, entry=self.hasher.describe(data))

        files = await asyncio.gather(*(read(path) for path in scan.file_paths()))
        return {f.path: f for f in files}

    async def _resolve_parent(
        self,
        kind: CheckpointKind,
        parent_id: Optional[str],
        exclude: str
    ) -> Optional[Checkpoint]:
        if parent_id is None:
            if kind is CheckpointKind.INCREMENTAL:
                return await self._latest_readable(exclude)
            return None

        directory = await self.store.resolve_directory(parent_id)
        if directory is None or directory == exclude:
            logger.warning("parent_not_found", parent_id=parent_id)
            return None

        try:
            return await self.store.read_manifest(directory)
        except (CheckpointNotFoundError, ManifestCorruptError) as e:
            logger.warning("parent_manifest_unreadable", parent_id=parent_id, error=e.message)
            return None

    async def _latest_readable(self, exclude: str) -> Optional[Checkpoint]:
        """Most recent checkpoint with a parseable manifest"""
        candidates = [
            name for name in await self.store.list_checkpoint_directories()
            if name != exclude
        ]
        candidates.sort(key=lambda name: (StorageDirName.sort_key(name), name), reverse=True)

        for name in candidates:
            try:
                return await self.store.read_manifest(name)
            except (CheckpointNotFoundError, ManifestCorruptError) as e:
                logger.debug("parent_candidate_skipped", directory=name, error=e.message)

        return None

    async def _classify(
        self,
        kind: CheckpointKind,
        current: Dict[str, SnapshotFile],
        parent: Optional[Checkpoint]
    ) -> ChangeSet:
        change_set = ChangeSet()

        for path, snapshot in current.items():
            previous = parent.files.get(path) if parent is not None else None

            if previous is None:
                change_set.stats.added += 1
                change_set.to_store.append(snapshot)
                change_set.changes[path] = ChangeRecord(
                    status=ChangeStatus.ADDED,
                    additions=count_lines(decode_text(snapshot.data))
                )
            elif previous.hash != snapshot.entry.hash:
                change_set.stats.modified += 1
                change_set.to_store.append(snapshot)
                diff = await self._diff_against_parent(parent, snapshot)
                change_set.changes[path] = ChangeRecord(
                    status=ChangeStatus.MODIFIED,
                    additions=diff.additions,
                    deletions=diff.deletions
                )
            elif kind is CheckpointKind.FULL:
                change_set.to_store.append(snapshot)

        if parent is not None:
            walker = ChainWalker(self.store)
            for path in parent.files:
                if path in current:
                    continue
                change_set.stats.deleted += 1
                change_set.changes[path] = ChangeRecord(
                    status=ChangeStatus.DELETED,
                    additions=0,
                    deletions=await self._deleted_line_count(walker, parent, path)
                )

        return change_set

    async def _diff_against_parent(self, parent: Checkpoint, snapshot: SnapshotFile) -> LineDiff:
        """Diff against the blob stored by the direct parent only"""
        try:
            previous = await self.store.read_blob(parent.directory, snapshot.path)
        except OSError as e:
            logger.warning("diff_failed", path=snapshot.path, parent_id=parent.id, error=str(e))
            return LineDiff()

        if previous is None:
            return LineDiff()

        return diff_lines(decode_text(previous), decode_text(snapshot.data))

    async def _deleted_line_count(self, walker: ChainWalker, parent: Checkpoint, path: str) -> int:
        try:
            previous = await walker.find_blob(parent.directory, path)
        except (OSError, ValidationError) as e:
            logger.warning("diff_failed", path=path, parent_id=parent.id, error=str(e))
            return 0

        return count_lines(decode_text(previous)) if previous is not None else 0

    async def _write_blobs(self, directory: str, files: List[SnapshotFile]) -> int:
        """Store blobs for this checkpoint and return the bytes written"""
        semaphore = asyncio.Semaphore(self.max_concurrent_io)

        async def write(snapshot: SnapshotFile) -> int:
            async with semaphore:
                await self.store.write_blob(directory, snapshot.path, snapshot.data)
            return len(snapshot.data)

        written = await asyncio.gather(*(write(f) for f in files))
        return sum(written)
