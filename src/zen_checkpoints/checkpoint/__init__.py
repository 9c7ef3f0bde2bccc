"""Checkpoint engine

This module snapshots a project tree so an editing agent's changes can be
undone or replayed:
- Size-annotated tree scanning with ignore rules
- Content hashing for change detection
- Incremental checkpoints that store only changed files
- Restore through the parent chain, with optional full reset
"""

from .creator import CheckpointCreator
from .diff import LineDiff, count_lines, diff_lines
from .hashing import ContentHasher
from .ignore import IgnoreRules
from .manifest_store import ManifestStore
from .models import (
    Checkpoint,
    CheckpointId,
    CheckpointKind,
    CheckpointStats,
    ChangeRecord,
    ChangeStatus,
    FileEntry,
    FileTreeNode,
    NodeKind,
    RestoreMode,
    StorageDirName,
)
from .restorer import CheckpointRestorer, RestoreReport
from .scanner import ScanResult, TreeScanner
from .service import CheckpointService

__all__ = [
    "CheckpointService",
    "CheckpointCreator",
    "CheckpointRestorer",
    "RestoreReport",
    "ManifestStore",
    "TreeScanner",
    "ScanResult",
    "IgnoreRules",
    "ContentHasher",
    "LineDiff",
    "diff_lines",
    "count_lines",
    "Checkpoint",
    "CheckpointId",
    "CheckpointKind",
    "CheckpointStats",
    "ChangeRecord",
    "ChangeStatus",
    "FileEntry",
    "FileTreeNode",
    "NodeKind",
    "RestoreMode",
    "StorageDirName",
]
