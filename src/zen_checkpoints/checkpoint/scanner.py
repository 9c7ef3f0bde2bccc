"""Project tree scanning with size annotation"""

import asyncio
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, List, Set

from .ignore import IgnorePredicate, IgnoreRules
from .models import FileTreeNode, NodeKind
from ..utils.logging import get_logger
from ..utils.errors import StorageError

logger = get_logger(__name__)


@dataclass
class ScanResult:
    """Scanned tree and the total byte size of every file in it"""
    tree: FileTreeNode
    total_size: int

    def file_paths(self) -> List[str]:
        return [node.relative_path for node in self.tree.iter_files()]


class TreeScanner:
    """Walks a project root and builds a size-annotated FileTreeNode tree

    Sizes are summed bottom-up and children are sorted by descending size at
    every level (ties stay in name order). Entries that cannot be
    read are left out of the tree instead of failing the scan.
    """

    def __init__(self, ignore: Optional[IgnorePredicate] = None):
        self.ignore = ignore or IgnoreRules()

    async def scan(self, root: Path) -> ScanResult:
        """Scan ``root`` in a worker thread"""
        return await asyncio.to_thread(self.scan_sync, Path(root))

    def scan_sync(self, root: Path) -> ScanResult:
        try:
            if not root.is_dir():
                raise StorageError(f"Project root is not a directory: {root}")
        except OSError as e:
            raise StorageError(f"Project root is not accessible: {root}", cause=e) from e

        tree = FileTreeNode(name=root.name, relative_path="", kind=NodeKind.FOLDER)
        folders: List[FileTreeNode] = []
        unreadable: Set[int] = set()

        # Explicit work stack; parents are always visited before their children
        stack = [(tree, root)]
        while stack:
            node, path = stack.pop()
            folders.append(node)

            try:
                with os.scandir(path) as it:
                    entries = sorted(it, key=lambda e: e.name)
            except OSError as e:
                if node is tree:
                    raise StorageError(f"Cannot list project root: {root}", cause=e) from e
                logger.debug("scan_entry_skipped", path=node.relative_path, error=str(e))
                unreadable.add(id(node))
                continue

            for entry in entries:
                child = self._visit(entry, node.relative_path)
                if child is None:
                    continue
                node.children.append(child)
                if not child.is_file:
                    stack.append((child, Path(entry.path)))

        # Reverse pre-order: children are sized before their parents
        for folder in reversed(folders):
            folder.children = [c for c in folder.children if id(c) not in unreadable]
            folder.size = sum(child.size for child in folder.children)
            folder.children.sort(key=lambda c: c.size, reverse=True)

        return ScanResult(tree=tree, total_size=tree.size)

    def _visit(self, entry: os.DirEntry, parent_path: str) -> Optional[FileTreeNode]:
        relative_path = f"{parent_path}/{entry.name}" if parent_path else entry.name

        try:
            if entry.is_dir(follow_symlinks=False):
                if self.ignore(entry.name, relative_path, True):
                    return None
                return FileTreeNode(
                    name=entry.name,
                    relative_path=relative_path,
                    kind=NodeKind.FOLDER
                )

            if not entry.is_file():
                return None
            if self.ignore(entry.name, relative_path, False):
                return None
            return FileTreeNode(
                name=entry.name,
                relative_path=relative_path,
                kind=NodeKind.FILE,
                size=entry.stat().st_size
            )
        except OSError as e:
            logger.debug("scan_entry_skipped", path=relative_path, error=str(e))
            return None
