"""Recursive discovery of the files to package.

Each directory resolves its own RuleSet (inherited rules plus its
``.gitignore``) before its entries are judged, and hands a copy down to its
subdirectories. Every call returns an immutable result for its subtree which
the parent merges, so siblings never share state.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

from codepack.diagnostics import DiagnosticKind
from codepack.exceptions import InvalidRequestError
from codepack.ignore_rules import anchor_patterns, build_root_rules, dedupe, read_rule_file, scope_patterns
from codepack.logging import logger
from codepack.matching import compile_patterns

if TYPE_CHECKING:
    from codepack.config import ScanRequest
    from codepack.diagnostics import DiagnosticSink
    from codepack.ignore_rules import RuleSet
    from codepack.matching import MatcherSet


class ScanResult(BaseModel):
    """Files that survived filtering and the rules that were applied."""

    model_config = ConfigDict(frozen=True)

    file_paths: tuple[str, ...] = Field(default=(), description="Relative paths in discovery order")
    default_patterns: tuple[str, ...] = Field(default=(), description="Default ignore patterns used")
    caller_patterns: tuple[str, ...] = Field(default=(), description="Caller ignore patterns used")
    rule_file_patterns: tuple[str, ...] = Field(
        default=(),
        description="Deduplicated .gitignore patterns, prefixed by their directory",
    )


@dataclass(frozen=True)
class _Subtree:
    files: tuple[str, ...] = ()
    rule_files: tuple[str, ...] = ()


def _join(relative_dir: str, name: str) -> str:
    return f"{relative_dir}/{name}" if relative_dir else name


def _is_utf8(name: str) -> bool:
    try:
        name.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


def printable_path(name: str) -> str:
    """Render a name holding undecodable bytes with U+FFFD in their place."""
    try:
        raw = name.encode("utf-8", "surrogateescape")
    except UnicodeEncodeError:
        raw = name.encode("utf-8", "replace")
    return raw.decode("utf-8", "replace")


def _list_entries(directory: Path) -> list[os.DirEntry[str]]:
    with os.scandir(directory) as it:
        return sorted(it, key=lambda e: e.name)


def _scan_directory(
    directory: Path,
    relative_dir: str,
    inherited: RuleSet,
    includes: MatcherSet,
    request: ScanRequest,
    diagnostics: DiagnosticSink,
) -> _Subtree:
    rules = inherited
    discovered: list[str] = []
    if request.use_rule_files:
        new_rules = read_rule_file(directory, relative_dir, diagnostics)
        if new_rules:
            rules = inherited.extend(anchor_patterns(relative_dir, new_rules))
            discovered.extend(scope_patterns(relative_dir, new_rules))
    ignores = rules.matchers()

    try:
        entries = _list_entries(directory)
    except OSError as e:
        if not relative_dir:
            msg = f"Could not list source directory {directory}: {e}"
            raise InvalidRequestError(message=msg) from e
        diagnostics.warn(
            DiagnosticKind.DIRECTORY_LISTING_FAILURE,
            relative_dir,
            f"Could not list directory, skipping subtree: {e}",
        )
        return _Subtree(rule_files=tuple(discovered))

    files: list[str] = []
    for entry in entries:
        rel = _join(relative_dir, entry.name)
        if not _is_utf8(rel):
            diagnostics.warn(
                DiagnosticKind.DECODE_FAILURE,
                printable_path(rel),
                "Skipping entry whose name is not valid UTF-8",
            )
            continue
        try:
            is_dir = entry.is_dir(follow_symlinks=False)
            is_file = entry.is_file(follow_symlinks=False)
        except OSError as e:
            diagnostics.warn(DiagnosticKind.FILE_ACCESS_FAILURE, rel, f"Could not inspect entry: {e}")
            continue

        if is_dir:
            if ignores.any_match(rel, is_dir=True):
                logger.debug("Ignoring directory", path=rel)
                continue
            sub = _scan_directory(Path(entry.path), rel, rules, includes, request, diagnostics)
            files.extend(sub.files)
            discovered.extend(sub.rule_files)
        elif is_file:
            if ignores.any_match(rel):
                continue
            if includes and not includes.any_match(rel):
                continue
            try:
                size = entry.stat(follow_symlinks=False).st_size
            except OSError as e:
                diagnostics.warn(DiagnosticKind.FILE_ACCESS_FAILURE, rel, f"Could not stat file: {e}")
                continue
            if size > request.max_file_size:
                diagnostics.warn(
                    DiagnosticKind.SIZE_LIMIT_EXCEEDED,
                    rel,
                    "Skipping large file",
                    size=size,
                    limit=request.max_file_size,
                )
                continue
            files.append(rel)

    return _Subtree(files=tuple(files), rule_files=tuple(discovered))


def scan(request: ScanRequest, diagnostics: DiagnosticSink) -> ScanResult:
    """Walk ``request.source_dir`` and return the files to package.

    Args:
        request (ScanRequest): the packaging request
        diagnostics (DiagnosticSink): collector for skipped subtrees and files

    Raises:
        InvalidRequestError: if a caller pattern is invalid or the root cannot be listed.

    Returns:
        ScanResult: surviving relative paths plus the three rule buckets
    """
    root_rules = build_root_rules(request)
    includes = compile_patterns(request.include_list)
    subtree = _scan_directory(request.source_dir, "", root_rules, includes, request, diagnostics)
    logger.info("Scan complete", source=request.source_identifier, files=len(subtree.files))
    return ScanResult(
        file_paths=subtree.files,
        default_patterns=root_rules.default,
        caller_patterns=root_rules.caller,
        rule_file_patterns=tuple(dedupe(subtree.rule_files)),
    )
