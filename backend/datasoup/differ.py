"""Membership-based line diff.

A line counts as changed when its exact value does not occur anywhere in the
previous version. Moved lines are not changes.
"""
from __future__ import annotations

from typing import Iterable, List, Optional


def split_lines(text: str) -> List[str]:
    """Split on ``\\n``; the empty tail left by a final terminator is dropped."""
    if not text:
        return []
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return lines


def added_lines(old_lines: Iterable[str], new_lines: Iterable[str]) -> List[str]:
    seen = set(old_lines)
    return [line for line in new_lines if line not in seen]


def diff_lines(old: Optional[str], new: str) -> List[str]:
    """Lines of ``new`` absent from ``old``, in ``new`` order, duplicates kept.

    ``old is None`` means the resource has never been stored: every line is new.
    """
    new_lines = split_lines(new)
    if old is None:
        return new_lines
    return added_lines(split_lines(old), new_lines)
