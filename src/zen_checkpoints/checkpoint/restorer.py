"""Checkpoint restoration"""

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, List, Union

import aiofiles
import aiofiles.os

from .chain import ChainWalker
from .manifest_store import ManifestStore, safe_relative_path
from .models import Checkpoint, FileEntry, RestoreMode
from .scanner import TreeScanner
from ..utils.logging import get_logger
from ..utils.errors import CheckpointNotFoundError, ValidationError

logger = get_logger(__name__)


@dataclass
class RestoreReport:
    """Per-file outcome of one restore call"""
    restored: List[str] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)


class CheckpointRestorer:
    """Materializes a checkpoint back into the project tree

    Each file's content comes from the nearest checkpoint in the target's
    parent chain that stored it. Failures on individual files are logged and
    skipped; only an unresolvable or corrupt target aborts the restore.
    """

    def __init__(
        self,
        project_root: Path,
        store: ManifestStore,
        scanner: TreeScanner,
        max_concurrent_io: int = 16
    ):
        self.project_root = Path(project_root)
        self.store = store
        self.scanner = scanner
        self.max_concurrent_io = max_concurrent_io
        self.last_report: Optional[RestoreReport] = None

    async def restore(
        self,
        checkpoint_id: str,
        mode: Union[RestoreMode, str] = RestoreMode.CHANGED_ONLY
    ) -> Optional[str]:
        """Restore the project to a checkpoint

        Args:
            checkpoint_id: Checkpoint id, id fragment or directory name
            mode: ``changed_only`` leaves files unknown to the checkpoint alone,
                ``full_reset`` deletes them

        Returns:
            The checkpoint's message id, if any

        Raises:
            CheckpointNotFoundError: no checkpoint matches ``checkpoint_id``
            ManifestCorruptError: the target manifest cannot be parsed
        """
        mode = RestoreMode(mode)

        directory = await self.store.resolve_directory(checkpoint_id)
        if directory is None:
            raise CheckpointNotFoundError(checkpoint_id)
        target = await self.store.read_manifest(directory)

        report = RestoreReport()
        if mode is RestoreMode.FULL_RESET:
            report.removed = await self._remove_untracked(target)

        walker = ChainWalker(self.store)
        semaphore = asyncio.Semaphore(self.max_concurrent_io)

        async def restore_file(path: str, entry: FileEntry) -> None:
            async with semaphore:
                await self._restore_file(walker, directory, path, entry, report)

        await asyncio.gather(*(
            restore_file(path, entry) for path, entry in target.files.items()
        ))

        self.last_report = report
        logger.info(
            "checkpoint_restored",
            checkpoint_id=target.id,
            directory=directory,
            mode=mode.value,
            restored=len(report.restored),
            missing=len(report.missing),
            failed=len(report.failed),
            removed=len(report.removed)
        )

        return target.message_id

    async def _remove_untracked(self, target: Checkpoint) -> List[str]:
        """Delete live files that the target checkpoint does not track"""
        scan = await self.scanner.scan(self.project_root)
        removed = []

        for path in scan.file_paths():
            if path in target.files:
                continue
            try:
                await aiofiles.os.remove(self.project_root / path)
                removed.append(path)
            except OSError as e:
                logger.warning("reset_delete_failed", path=path, error=str(e))

        return removed

    async def _restore_file(
        self,
        walker: ChainWalker,
        directory: str,
        path: str,
        entry: FileEntry,
        report: RestoreReport
    ) -> None:
        try:
            data = await walker.find_blob(directory, path)
        except (OSError, ValidationError) as e:
            logger.warning("restore_read_failed", path=path, error=str(e))
            report.failed.append(path)
            return

        if data is None:
            logger.warning("restore_content_missing", path=path, checkpoint=directory)
            report.missing.append(path)
            return

        if len(data) != entry.size:
            logger.warning("restore_size_mismatch", path=path, expected=entry.size, actual=len(data))

        destination = self.project_root / safe_relative_path(path)
        try:
            await aiofiles.os.makedirs(destination.parent, exist_ok=True)
            async with aiofiles.open(destination, 'wb') as f:
                await f.write(data)
        except OSError as e:
            logger.warning("restore_write_failed", path=path, error=str(e))
            report.failed.append(path)
            return

        report.restored.append(path)
