"""Checkpoint data model and manifest (de)serialization"""

import re
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Dict, Any, List, Iterator


class CheckpointKind(str, Enum):
    """Checkpoint storage policy"""
    FULL = "full"
    INCREMENTAL = "incremental"


class RestoreMode(str, Enum):
    """How a restore treats live files missing from the checkpoint"""
    CHANGED_ONLY = "changed_only"
    FULL_RESET = "full_reset"


class ChangeStatus(str, Enum):
    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"


class NodeKind(str, Enum):
    FILE = "file"
    FOLDER = "folder"


@dataclass(frozen=True)
class CheckpointId:
    """Opaque checkpoint identity"""
    value: str

    @classmethod
    def generate(cls) -> 'CheckpointId':
        return cls(str(uuid.uuid4()))

    def __str__(self) -> str:
        return self.value


_DIR_NAME = re.compile(r"^(?P<timestamp>\d+)_(?P<kind>full|incremental)_(?P<id>.+)$")


@dataclass(frozen=True)
class StorageDirName:
    """Parsed ``{timestampMillis}_{kind}_{id}`` storage directory name"""
    timestamp: int
    kind: CheckpointKind
    checkpoint_id: CheckpointId

    def format(self) -> str:
        return f"{self.timestamp}_{self.kind.value}_{self.checkpoint_id}"

    @classmethod
    def parse(cls, name: str) -> Optional['StorageDirName']:
        """Parse a directory name, or None if it does not follow the convention"""
        match = _DIR_NAME.match(name)
        if not match:
            return None
        return cls(
            timestamp=int(match.group("timestamp")),
            kind=CheckpointKind(match.group("kind")),
            checkpoint_id=CheckpointId(match.group("id"))
        )

    @staticmethod
    def sort_key(name: str) -> int:
        """Embedded timestamp, 0 for foreign names"""
        parsed = StorageDirName.parse(name)
        return parsed.timestamp if parsed else 0


@dataclass
class FileTreeNode:
    """One filesystem entry at scan time"""
    name: str
    relative_path: str
    kind: NodeKind
    size: int = 0
    children: List['FileTreeNode'] = field(default_factory=list)

    @property
    def is_file(self) -> bool:
        return self.kind is NodeKind.FILE

    def iter_files(self) -> Iterator['FileTreeNode']:
        """Yield every file node under this node, in tree order"""
        stack = [self]
        while stack:
            node = stack.pop()
            if node.is_file:
                yield node
            else:
                stack.extend(reversed(node.children))

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "name": self.name,
            "path": self.relative_path,
            "type": self.kind.value,
            "size": self.size,
        }
        if not self.is_file:
            data["children"] = [child.to_dict() for child in self.children]
        return data


@dataclass
class FileEntry:
    """Size and content digest of one tracked file"""
    size: int
    hash: str

    def to_dict(self) -> Dict[str, Any]:
        return {"size": self.size, "hash": self.hash}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FileEntry':
        return cls(size=int(data["size"]), hash=str(data["hash"]))


@dataclass
class ChangeRecord:
    """Per-path change relative to the parent checkpoint"""
    status: ChangeStatus
    additions: int = 0
    deletions: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "additions": self.additions,
            "deletions": self.deletions
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ChangeRecord':
        return cls(
            status=ChangeStatus(data["status"]),
            additions=int(data.get("additions", 0)),
            deletions=int(data.get("deletions", 0))
        )


@dataclass
class CheckpointStats:
    added: int = 0
    modified: int = 0
    deleted: int = 0

    def is_empty(self) -> bool:
        return self.added == 0 and self.modified == 0 and self.deleted == 0

    def to_dict(self) -> Dict[str, Any]:
        return {"added": self.added, "modified": self.modified, "deleted": self.deleted}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CheckpointStats':
        return cls(
            added=int(data.get("added", 0)),
            modified=int(data.get("modified", 0)),
            deleted=int(data.get("deleted", 0))
        )


@dataclass
class Checkpoint:
    """One committed snapshot, as persisted in ``manifest.json``

    ``files`` is the complete index of the project at creation time even when
    the checkpoint itself only stores the changed blobs.
    """
    id: str
    timestamp: int
    kind: CheckpointKind
    total_size: int
    files: Dict[str, FileEntry] = field(default_factory=dict)
    parent_id: Optional[str] = None
    message_id: Optional[str] = None
    storage_size: Optional[int] = None
    stats: Optional[CheckpointStats] = None
    changes: Optional[Dict[str, ChangeRecord]] = None
    directory: Optional[str] = field(default=None, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the on-disk manifest schema (absent optionals omitted)"""
        data: Dict[str, Any] = {
            "id": self.id,
            "timestamp": self.timestamp,
            "type": self.kind.value,
        }
        if self.parent_id is not None:
            data["parentId"] = self.parent_id
        if self.message_id is not None:
            data["messageId"] = self.message_id
        data["totalSize"] = self.total_size
        if self.storage_size is not None:
            data["storageSize"] = self.storage_size
        data["files"] = {path: entry.to_dict() for path, entry in self.files.items()}
        if self.stats is not None:
            data["stats"] = self.stats.to_dict()
        if self.changes is not None:
            data["changes"] = {path: change.to_dict() for path, change in self.changes.items()}
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any], directory: Optional[str] = None) -> 'Checkpoint':
        """Create from a manifest dictionary

        Raises KeyError, TypeError or ValueError on schema violations.
        """
        if not isinstance(data, dict):
            raise TypeError("manifest must be a JSON object")

        stats = data.get("stats")
        changes = data.get("changes")
        storage_size = data.get("storageSize")

        return cls(
            id=str(data["id"]),
            timestamp=int(data["timestamp"]),
            kind=CheckpointKind(data["type"]),
            total_size=int(data["totalSize"]),
            files={
                path: FileEntry.from_dict(entry)
                for path, entry in data.get("files", {}).items()
            },
            parent_id=data.get("parentId"),
            message_id=data.get("messageId"),
            storage_size=int(storage_size) if storage_size is not None else None,
            stats=CheckpointStats.from_dict(stats) if stats is not None else None,
            changes={
                path: ChangeRecord.from_dict(change)
                for path, change in changes.items()
            } if changes is not None else None,
            directory=directory
        )
