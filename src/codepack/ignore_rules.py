"""Effective ignore rules at each level of the source tree.

Three buckets are kept apart so the output can report where each rule came
from: the built-in defaults, the caller's ignore patterns, and patterns read
from ``.gitignore`` files while descending. Rule-file patterns are appended
to a copy of the parent's set; they are never reordered or negated, and they
are anchored at the directory that declared them.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

from codepack.config import DEFAULT_IGNORE_PATTERNS, RULE_FILE_NAME
from codepack.diagnostics import DiagnosticKind
from codepack.exceptions import InvalidRequestError
from codepack.logging import logger
from codepack.matching import MatcherSet, compile_patterns, is_valid_pattern

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from pathlib import Path

    from codepack.config import ScanRequest
    from codepack.diagnostics import DiagnosticSink

__all__ = [
    "DEFAULT_IGNORE_PATTERNS",
    "RuleSet",
    "anchor_patterns",
    "build_root_rules",
    "dedupe",
    "parse_rule_lines",
    "read_rule_file",
    "scope_patterns",
]


class RuleSet(BaseModel):
    """Ignore patterns visible at one directory, by provenance."""

    model_config = ConfigDict(frozen=True)

    default: tuple[str, ...] = Field(default=(), description="Built-in default patterns")
    caller: tuple[str, ...] = Field(default=(), description="Caller-supplied patterns")
    rule_file: tuple[str, ...] = Field(default=(), description="Inherited .gitignore patterns")

    def effective(self) -> tuple[str, ...]:
        """All patterns in application order: default, caller, rule files."""
        return self.default + self.caller + self.rule_file

    def extend(self, patterns: Iterable[str]) -> RuleSet:
        """Return a copy with ``patterns`` appended to the rule-file bucket."""
        extra = tuple(patterns)
        if not extra:
            return self
        return self.model_copy(update={"rule_file": self.rule_file + extra})

    def matchers(self) -> MatcherSet:
        """Compile the effective patterns."""
        return compile_patterns(self.effective())


def parse_rule_lines(text: str) -> list[str]:
    """Extract patterns from the text of a rule file.

    Blank lines and lines starting with ``#`` are dropped; the remaining
    lines are trimmed.

    Args:
        text (str): the rule file content

    Returns:
        list[str]: the patterns, in file order
    """
    out: list[str] = []
    for line in text.splitlines():
        s = line.strip()
        if not s or s.startswith("#"):
            continue
        out.append(s)
    return out


def read_rule_file(
    directory: Path,
    relative_dir: str,
    diagnostics: DiagnosticSink,
    rule_file_name: str = RULE_FILE_NAME,
) -> list[str]:
    """Read the rule file placed directly inside ``directory``.

    Args:
        directory (Path): absolute directory being visited
        relative_dir (str): the same directory relative to the source root ("" for the root)
        diagnostics (DiagnosticSink): where read failures are recorded
        rule_file_name (str): rule file name, ``.gitignore`` by default

    Returns:
        list[str]: valid patterns from the file; empty when the file is missing or unreadable
    """
    path = directory / rule_file_name
    if not path.is_file():
        return []
    rel = f"{relative_dir}/{rule_file_name}" if relative_dir else rule_file_name
    try:
        text = path.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        diagnostics.warn(DiagnosticKind.FILE_ACCESS_FAILURE, rel, f"Could not read rule file: {e}")
        return []

    patterns: list[str] = []
    for pattern in parse_rule_lines(text):
        if is_valid_pattern(pattern):
            patterns.append(pattern)
        else:
            logger.warning("Skipping invalid ignore pattern", path=rel, pattern=pattern)
    return patterns


def scope_patterns(relative_dir: str, patterns: Sequence[str]) -> list[str]:
    """Prefix rule-file patterns with the directory that declared them.

    This is the reporting form; :func:`anchor_patterns` gives the form used
    for matching.

    Args:
        relative_dir (str): the declaring directory relative to the source root
        patterns (Sequence[str]): patterns read from its rule file

    Returns:
        list[str]: e.g. ``["logs/*.tmp"]`` for ``*.tmp`` declared in ``logs/``
    """
    if not relative_dir:
        return list(patterns)
    return [f"{relative_dir}/{p.lstrip('/')}" for p in patterns]


_GLOB_SPECIAL = re.compile(r"([\\*?\[!#])")


def anchor_patterns(relative_dir: str, patterns: Sequence[str]) -> list[str]:
    """Rewrite rule-file patterns so they match root-relative paths.

    A pattern read from ``<dir>/.gitignore`` applies to ``<dir>`` and its
    descendants only. Patterns with a slash (other than a trailing one) are
    anchored at ``<dir>``; the others match at any depth below it.
    ``/secret.txt`` in ``sub`` becomes ``sub/secret.txt`` and ``*.tmp``
    becomes ``sub/**/*.tmp``. Glob characters in the directory name are
    escaped.

    Args:
        relative_dir (str): the declaring directory relative to the source root
        patterns (Sequence[str]): patterns read from its rule file

    Returns:
        list[str]: the matching form, in the same order
    """
    if not relative_dir:
        return list(patterns)
    base = _GLOB_SPECIAL.sub(r"\\\1", relative_dir)
    out: list[str] = []
    for pattern in patterns:
        negated = pattern.startswith("!")
        body = pattern[1:] if negated else pattern
        if "/" in body.rstrip("/"):
            anchored = f"{base}/{body.lstrip('/')}"
        else:
            anchored = f"{base}/**/{body}"
        out.append(("!" if negated else "") + anchored)
    return out


def dedupe(patterns: Iterable[str]) -> list[str]:
    """Drop repeated patterns, keeping the first occurrence."""
    return list(dict.fromkeys(patterns))


def build_root_rules(request: ScanRequest) -> RuleSet:
    """Build the RuleSet visible at the source root, before any rule file.

    Args:
        request (ScanRequest): the packaging request

    Raises:
        InvalidRequestError: if a caller-supplied include or ignore pattern does not compile.

    Returns:
        RuleSet: default and caller buckets filled, rule-file bucket empty
    """
    invalid = [p for p in [*request.ignore_list, *request.include_list] if not is_valid_pattern(p)]
    if invalid:
        raise InvalidRequestError(message=f"Invalid glob pattern(s): {', '.join(invalid)}")
    return RuleSet(
        default=DEFAULT_IGNORE_PATTERNS if request.use_default_patterns else (),
        caller=tuple(request.ignore_list),
    )
