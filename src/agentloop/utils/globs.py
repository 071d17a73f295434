"""Anchored glob matching for repository-relative paths.

Supported syntax:

``?``
    exactly one character other than ``/``.
``*``
    zero or more characters other than ``/``.
``**``
    zero or more characters including ``/``.

Everything else matches literally and the whole path must match.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Pattern, Sequence

PathPredicate = Callable[[str], bool]


def normalize_path(value: str) -> str:
    """Return ``value`` with forward slashes and without a leading ``./``."""
    cleaned = value.replace("\\", "/")
    while cleaned.startswith("./"):
        cleaned = cleaned[2:]
    return cleaned


def glob_to_regex(pattern: str) -> Pattern[str]:
    """Translate ``pattern`` into an anchored regular expression."""
    parts: List[str] = []
    index = 0
    length = len(pattern)
    while index < length:
        char = pattern[index]
        if char == "*":
            if index + 1 < length and pattern[index + 1] == "*":
                parts.append(".*")
                index += 2
                continue
            parts.append("[^/]*")
        elif char == "?":
            parts.append("[^/]")
        else:
            parts.append(re.escape(char))
        index += 1
    return re.compile("^" + "".join(parts) + "$", re.DOTALL)


def compile_glob(pattern: str) -> PathPredicate:
    """Compile ``pattern`` into a predicate over normalised relative paths."""
    regex = glob_to_regex(normalize_path(pattern))

    def _matches(path: str) -> bool:
        return regex.match(normalize_path(path)) is not None

    return _matches


@dataclass(slots=True)
class AllowList:
    """Compiled allow-list of path patterns.

    An empty allow-list allows nothing.  Callers that want "unrestricted"
    behaviour skip the allow-list entirely instead of passing an empty one.
    """

    patterns: tuple[str, ...]
    _predicates: tuple[PathPredicate, ...] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._predicates = tuple(compile_glob(pattern) for pattern in self.patterns)

    @classmethod
    def from_patterns(cls, patterns: Iterable[str]) -> "AllowList":
        return cls(patterns=tuple(patterns))

    def allows(self, path: str) -> bool:
        return any(predicate(path) for predicate in self._predicates)

    def partition(self, paths: Sequence[str]) -> tuple[List[str], List[str]]:
        """Split ``paths`` into ``(matched, unmatched)`` preserving order."""
        matched: List[str] = []
        unmatched: List[str] = []
        for path in paths:
            (matched if self.allows(path) else unmatched).append(path)
        return matched, unmatched


__all__ = ["AllowList", "PathPredicate", "compile_glob", "glob_to_regex", "normalize_path"]
