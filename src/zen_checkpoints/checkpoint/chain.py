"""Parent-chain blob lookup"""

from typing import Optional, Dict, Set

from .manifest_store import ManifestStore
from .models import Checkpoint
from ..utils.logging import get_logger
from ..utils.errors import CheckpointNotFoundError, ManifestCorruptError

logger = get_logger(__name__)


class ChainWalker:
    """Finds the nearest ancestor (inclusive) that stored a file's bytes

    Manifests and id resolutions are cached for the lifetime of the walker,
    so one walker should serve a single create or restore call.
    """

    def __init__(self, store: ManifestStore):
        self.store = store
        self._directories: Dict[str, Optional[str]] = {}
        self._manifests: Dict[str, Optional[Checkpoint]] = {}

    async def find_blob(self, start: str, relative_path: str) -> Optional[bytes]:
        """Walk ``parentId`` links from ``start`` until a stored blob is found

        ``start`` may be a checkpoint id or a directory name. Returns None when
        the chain ends without content. An unresolvable id or an unreadable
        manifest ends the chain.
        """
        visited: Set[str] = set()
        current: Optional[str] = start

        while current and current not in visited:
            visited.add(current)

            directory = await self._resolve(current)
            if directory is None:
                logger.debug("chain_link_missing", checkpoint_id=current, path=relative_path)
                return None

            data = await self.store.read_blob(directory, relative_path)
            if data is not None:
                return data

            manifest = await self.manifest(directory)
            if manifest is None:
                return None
            current = manifest.parent_id

        return None

    async def manifest(self, directory: str) -> Optional[Checkpoint]:
        """Cached manifest for ``directory``, None if missing or corrupt"""
        if directory not in self._manifests:
            try:
                self._manifests[directory] = await self.store.read_manifest(directory)
            except (CheckpointNotFoundError, ManifestCorruptError) as e:
                logger.warning("chain_manifest_unreadable", directory=directory, error=e.message)
                self._manifests[directory] = None
        return self._manifests[directory]

    async def _resolve(self, checkpoint_id: str) -> Optional[str]:
        if checkpoint_id not in self._directories:
            self._directories[checkpoint_id] = await self.store.resolve_directory(checkpoint_id)
        return self._directories[checkpoint_id]
