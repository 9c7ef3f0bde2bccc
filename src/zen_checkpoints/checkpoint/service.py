"""Checkpoint service: the operations exposed to the host layer"""

import asyncio
from pathlib import Path
from typing import Optional, List, Union

import aiofiles

from .creator import CheckpointCreator
from .hashing import ContentHasher
from .ignore import IgnoreRules
from .manifest_store import ManifestStore
from .models import Checkpoint, CheckpointKind, RestoreMode, StorageDirName
from .restorer import CheckpointRestorer
from .scanner import ScanResult, TreeScanner
from ..utils.config import CheckpointConfig, EngineConfig
from ..utils.logging import get_logger, setup_logging
from ..utils.errors import (
    ValidationError,
    CheckpointNotFoundError,
    ManifestCorruptError,
    error_context,
)

logger = get_logger(__name__)


class CheckpointService:
    """Checkpoint engine for one project

    Create and restore are serialized through one lock, so the change
    detection and the manifest commit of a checkpoint never interleave with
    another operation on the same service.
    """

    def __init__(self, config: CheckpointConfig):
        """Initialize checkpoint service

        Args:
            config: Project root, storage root and engine settings
        """
        self.config = config
        self.project_root = Path(config.project_root)
        self.store = ManifestStore(config.storage_path, manifest_name=config.manifest_name)
        self.hasher = ContentHasher(config.hash_algorithm)
        self._lock = asyncio.Lock()

    @classmethod
    def for_project(
        cls,
        project_root: Union[str, Path],
        storage_path: Optional[Union[str, Path]] = None,
        **options
    ) -> 'CheckpointService':
        return cls(CheckpointConfig(
            project_root=project_root,
            storage_path=storage_path,
            **options
        ))

    @classmethod
    def from_engine_config(cls, config: EngineConfig, configure_logging: bool = True) -> 'CheckpointService':
        """Build a service from a loaded EngineConfig, setting up logging first"""
        if configure_logging:
            setup_logging(
                app_name=config.app_name,
                log_level=config.logging.level,
                log_dir=config.logging.directory,
                enable_json=config.logging.format == "json",
                enable_sentry=config.logging.enable_sentry,
                sentry_dsn=config.logging.sentry_dsn
            )
        return cls(config.checkpoint)

    async def load_ignore_rules(self) -> IgnoreRules:
        """Ignore rules from the project's ignore file plus the built-in set

        A storage root inside the project is always ignored.
        """
        text = ""
        ignore_path = self.project_root / self.config.ignore_file
        try:
            async with aiofiles.open(ignore_path, 'r', encoding="utf-8", errors="replace") as f:
                text = await f.read()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("ignore_file_unreadable", path=str(ignore_path), error=str(e))

        extra_paths = []
        try:
            extra_paths.append(
                Path(self.config.storage_path).relative_to(self.project_root).as_posix()
            )
        except ValueError:
            pass

        return IgnoreRules.from_text(
            text,
            builtin=self.config.default_ignore,
            extra_paths=extra_paths
        )

    async def _scanner(self) -> TreeScanner:
        return TreeScanner(await self.load_ignore_rules())

    async def calculate_project_size(self) -> ScanResult:
        """Scan the project and return its size-annotated tree"""
        with error_context("checkpoint_service", "calculate_project_size"):
            scanner = await self._scanner()
            return await scanner.scan(self.project_root)

    async def create_checkpoint(
        self,
        kind: Union[CheckpointKind, str] = CheckpointKind.INCREMENTAL,
        message_id: Optional[str] = None,
        parent_id: Optional[str] = None
    ) -> Optional[Checkpoint]:
        """Create a checkpoint; None means nothing changed since the parent"""
        kind = self._coerce(CheckpointKind, kind, "kind")

        async with self._lock:
            with error_context("checkpoint_service", "create_checkpoint", kind=kind.value):
                creator = CheckpointCreator(
                    self.project_root,
                    self.store,
                    await self._scanner(),
                    hasher=self.hasher,
                    max_concurrent_io=self.config.max_concurrent_io
                )
                return await creator.create(kind, message_id=message_id, parent_id=parent_id)

    async def restore_checkpoint(
        self,
        checkpoint_id: str,
        mode: Union[RestoreMode, str] = RestoreMode.CHANGED_ONLY
    ) -> Optional[str]:
        """Restore a checkpoint and return its message id"""
        mode = self._coerce(RestoreMode, mode, "mode")

        async with self._lock:
            with error_context("checkpoint_service", "restore_checkpoint", checkpoint_id=checkpoint_id):
                restorer = CheckpointRestorer(
                    self.project_root,
                    self.store,
                    await self._scanner(),
                    max_concurrent_io=self.config.max_concurrent_io
                )
                return await restorer.restore(checkpoint_id, mode)

    async def get_checkpoint(self, checkpoint_id: str) -> Checkpoint:
        directory = await self.store.resolve_directory(checkpoint_id)
        if directory is None:
            raise CheckpointNotFoundError(checkpoint_id)
        return await self.store.read_manifest(directory)

    async def list_checkpoints(self) -> List[Checkpoint]:
        """All readable checkpoints, newest first"""
        names = await self.store.list_checkpoint_directories()
        names.sort(key=lambda name: (StorageDirName.sort_key(name), name), reverse=True)

        checkpoints = []
        for name in names:
            try:
                checkpoints.append(await self.store.read_manifest(name))
            except (CheckpointNotFoundError, ManifestCorruptError) as e:
                logger.debug("checkpoint_listing_skipped", directory=name, error=e.message)
        return checkpoints

    @staticmethod
    def _coerce(enum_type, value, field_name):
        try:
            return enum_type(value)
        except ValueError as e:
            allowed = ", ".join(member.value for member in enum_type)
            raise ValidationError(field_name, value, f"must be one of: {allowed}", cause=e) from e
