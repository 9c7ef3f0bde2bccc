"""Content hashing for change detection"""

import hashlib

from .models import FileEntry


class ContentHasher:
    """Stable hex digest of file content

    Used to detect changes between checkpoints, not for security.
    """

    def __init__(self, algorithm: str = "sha256"):
        # fail early on unknown or variable-length (SHAKE) algorithms
        if hashlib.new(algorithm).digest_size == 0:
            raise ValueError(f"Variable-length hash algorithm not supported: {algorithm}")
        self.algorithm = algorithm

    def hash(self, data: bytes) -> str:
        return hashlib.new(self.algorithm, data).hexdigest()

    def describe(self, data: bytes) -> FileEntry:
        return FileEntry(size=len(data), hash=self.hash(data))
