"""Line-level change statistics between two text blobs"""

from dataclasses import dataclass


@dataclass(frozen=True)
class LineDiff:
    additions: int = 0
    deletions: int = 0


def decode_text(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


def count_lines(text: str) -> int:
    """Number of ``\\n``-separated lines; a trailing newline adds an empty line"""
    return len(text.split("\n"))


def diff_lines(old_text: str, new_text: str) -> LineDiff:
    """Count added and deleted lines between ``old_text`` and ``new_text``.

    Strips the longest common prefix, then the longest common suffix that does
    not overlap it, and treats everything in between as replaced. This is exact
    for pure insertions, deletions, appends, prepends and whole-block
    replacements. Unchanged lines interleaved with changed ones inside the
    middle block are counted as both deleted and added.
    """
    old_lines = old_text.split("\n")
    new_lines = new_text.split("\n")

    start = 0
    limit = min(len(old_lines), len(new_lines))
    while start < limit and old_lines[start] == new_lines[start]:
        start += 1

    end_old = len(old_lines) - 1
    end_new = len(new_lines) - 1
    while end_old >= start and end_new >= start and old_lines[end_old] == new_lines[end_new]:
        end_old -= 1
        end_new -= 1

    return LineDiff(
        additions=max(0, end_new - start + 1),
        deletions=max(0, end_old - start + 1)
    )
