"""
zen-checkpoints - incremental project checkpoints for editing agents.

Snapshots a project's file tree so that an automated agent's edits can be
undone or replayed:
- Full and incremental checkpoints with content hashing
- Line-level change statistics
- Restore of any checkpoint through its parent chain
"""

__version__ = "0.1.0"

from .checkpoint import (
    CheckpointService,
    Checkpoint,
    CheckpointKind,
    RestoreMode,
)
from .utils.config import CheckpointConfig, EngineConfig, load_config

__all__ = [
    "CheckpointService",
    "Checkpoint",
    "CheckpointKind",
    "RestoreMode",
    "CheckpointConfig",
    "EngineConfig",
    "load_config",
]
