"""Glob-style pattern matching on forward-slash relative paths.

Patterns follow gitignore rules as implemented by ``pathspec``: ``*`` and
``?`` stay inside one path segment, ``**`` crosses segments, and a pattern
without a slash matches at any depth. Matching is case-sensitive. Negated
patterns (``!x``) are accepted but never match.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
from typing import TYPE_CHECKING

from pathspec import PathSpec

if TYPE_CHECKING:
    from collections.abc import Iterable


def split_patterns(value: str | None) -> list[str]:
    """Split a comma-separated pattern list.

    Args:
        value (str | None): the raw option value, e.g. ``"*.md, docs/**"``

    Returns:
        list[str]: trimmed, non-empty patterns in their original order
    """
    if not value:
        return []
    return [p.strip() for p in value.split(",") if p.strip()]


@dataclass(frozen=True)
class PatternMatcher:
    """A single compiled glob pattern."""

    pattern: str
    spec: PathSpec = field(compare=False, repr=False)

    def matches(self, path: str, *, is_dir: bool = False) -> bool:
        """Test a relative path against the pattern.

        Directories are tested twice, plain and with a trailing ``/``, so that
        ``dir/**`` style patterns exclude the directory itself.

        Args:
            path (str): forward-slash path relative to the source root
            is_dir (bool): whether the path names a directory

        Returns:
            bool: True if the path matches
        """
        if self.spec.match_file(path):
            return True
        return is_dir and self.spec.match_file(path.rstrip("/") + "/")


@lru_cache(maxsize=4096)
def compile_pattern(pattern: str) -> PatternMatcher:
    """Compile one glob pattern.

    Args:
        pattern (str): the glob pattern

    Raises:
        ValueError: if the pattern is not a valid gitignore pattern.

    Returns:
        PatternMatcher: the compiled matcher (cached per pattern string)
    """
    return PatternMatcher(pattern=pattern, spec=PathSpec.from_lines("gitignore", [pattern]))


def is_valid_pattern(pattern: str) -> bool:
    """Check that a pattern compiles."""
    try:
        compile_pattern(pattern)
    except ValueError:
        return False
    return True


@dataclass(frozen=True)
class MatcherSet:
    """Several compiled patterns tested together."""

    matchers: tuple[PatternMatcher, ...] = ()

    def __bool__(self) -> bool:
        return bool(self.matchers)

    def any_match(self, path: str, *, is_dir: bool = False) -> bool:
        """Return True if any pattern matches ``path``."""
        return any(m.matches(path, is_dir=is_dir) for m in self.matchers)


def compile_patterns(patterns: Iterable[str]) -> MatcherSet:
    """Compile a sequence of patterns into a MatcherSet.

    Args:
        patterns (Iterable[str]): glob patterns, already validated

    Returns:
        MatcherSet: matchers in the same order as ``patterns``
    """
    return MatcherSet(tuple(compile_pattern(p) for p in patterns))
