"""Ignore rules applied while scanning the project tree"""

from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional, FrozenSet

from ..utils.config import DEFAULT_IGNORE


# (name, relative_path, is_dir) -> should the entry be skipped
IgnorePredicate = Callable[[str, str, bool], bool]


@dataclass
class IgnoreRules:
    """Simplified ignore-file matcher.

    Supported pattern kinds:
    - exact name: ``secret.env``
    - leading wildcard suffix: ``*.log``
    - directory name with trailing slash: ``logs/`` (directories only)
    - root-relative path literal: ``src/temp``; ``src/temp/`` matches only a
      directory at that path

    Anything fancier (negation, ``**``, character classes) is matched only as
    a literal.
    """
    patterns: List[str] = field(default_factory=list)
    builtin: FrozenSet[str] = field(default_factory=lambda: frozenset(DEFAULT_IGNORE))
    paths: FrozenSet[str] = frozenset()

    @classmethod
    def from_text(
        cls,
        text: str,
        builtin: Optional[Iterable[str]] = None,
        extra_paths: Iterable[str] = ()
    ) -> 'IgnoreRules':
        """Parse raw ignore-file content, dropping blanks and ``#`` comments"""
        patterns = [
            line.strip() for line in text.splitlines()
            if line.strip() and not line.strip().startswith("#")
        ]
        return cls(
            patterns=patterns,
            builtin=frozenset(DEFAULT_IGNORE if builtin is None else builtin),
            paths=frozenset(extra_paths)
        )

    def __call__(self, name: str, relative_path: str, is_dir: bool) -> bool:
        return self.is_ignored(name, relative_path, is_dir)

    def is_ignored(self, name: str, relative_path: str, is_dir: bool) -> bool:
        if name in self.builtin or relative_path in self.paths:
            return True

        for pattern in self.patterns:
            if pattern == name:
                return True
            if pattern.startswith("*") and name.endswith(pattern[1:]):
                return True
            if is_dir and pattern.endswith("/") and pattern[:-1] == name:
                return True
            if relative_path == pattern:
                return True
            if is_dir and relative_path + "/" == pattern:
                return True

        return False
