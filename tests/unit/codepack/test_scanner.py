from __future__ import annotations

import os
import sys
from typing import TYPE_CHECKING

import pytest

from codepack import scanner
from codepack.config import DEFAULT_IGNORE_PATTERNS, ScanRequest
from codepack.diagnostics import DiagnosticKind, DiagnosticSink
from codepack.exceptions import InvalidRequestError
from codepack.scanner import scan

if TYPE_CHECKING:
    from pathlib import Path

    from pytest_mock import MockerFixture


def write(root: Path, rel: str, content: str = "x\n") -> None:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


@pytest.mark.unit
def test_default_patterns_exclude_node_modules(tmp_path: Path) -> None:
    write(tmp_path, "src/a.ts")
    write(tmp_path, "node_modules/pkg/index.js")

    result = scan(ScanRequest(source_dir=tmp_path), DiagnosticSink())

    assert result.file_paths == ("src/a.ts",)
    assert result.default_patterns == DEFAULT_IGNORE_PATTERNS


@pytest.mark.unit
def test_nested_rule_files_accumulate(tmp_path: Path) -> None:
    write(tmp_path, ".gitignore", "*.log\n")
    write(tmp_path, "logs/.gitignore", "# scratch files\n*.tmp\n")
    write(tmp_path, "logs/old.log")
    write(tmp_path, "logs/cache.tmp")
    write(tmp_path, "other/keep.txt")

    result = scan(ScanRequest(source_dir=tmp_path, use_default_patterns=False), DiagnosticSink())

    assert result.file_paths == (".gitignore", "logs/.gitignore", "other/keep.txt")
    assert result.rule_file_patterns == ("*.log", "logs/*.tmp")


@pytest.mark.unit
def test_rule_file_does_not_leak_into_sibling(tmp_path: Path) -> None:
    write(tmp_path, "a/.gitignore", "*.txt\n")
    write(tmp_path, "a/x.txt")
    write(tmp_path, "a/deeper/z.txt")
    write(tmp_path, "b/y.txt")

    result = scan(ScanRequest(source_dir=tmp_path), DiagnosticSink())

    assert result.file_paths == ("b/y.txt",)


@pytest.mark.unit
def test_include_pattern_limits_files(tmp_path: Path) -> None:
    write(tmp_path, "readme.md")
    write(tmp_path, "notes.txt")
    write(tmp_path, "docs/guide.md")

    result = scan(ScanRequest(source_dir=tmp_path, include_patterns="*.md"), DiagnosticSink())

    assert result.file_paths == ("docs/guide.md", "readme.md")


@pytest.mark.unit
def test_oversized_file_dropped_with_diagnostic(tmp_path: Path) -> None:
    write(tmp_path, "big.txt", "y" * 64)
    write(tmp_path, "small.txt", "ok")
    sink = DiagnosticSink()

    result = scan(ScanRequest(source_dir=tmp_path, max_file_size=16), sink)

    assert result.file_paths == ("small.txt",)
    [entry] = sink.of_kind(DiagnosticKind.SIZE_LIMIT_EXCEEDED)
    assert entry.path == "big.txt"


@pytest.mark.unit
def test_discovery_order_is_sorted_depth_first(tmp_path: Path) -> None:
    for rel in ["b.txt", "a.txt", "c/e.txt", "c/d.txt", "B.txt"]:
        write(tmp_path, rel)

    result = scan(ScanRequest(source_dir=tmp_path), DiagnosticSink())

    assert result.file_paths == ("B.txt", "a.txt", "b.txt", "c/d.txt", "c/e.txt")


@pytest.mark.unit
def test_caller_ignore_patterns_prune_directories(tmp_path: Path) -> None:
    write(tmp_path, "docs/index.md")
    write(tmp_path, "main.py")
    write(tmp_path, "backup.bak")

    request = ScanRequest(source_dir=tmp_path, ignore_patterns="docs/, *.bak")
    result = scan(request, DiagnosticSink())

    assert result.file_paths == ("main.py",)
    assert result.caller_patterns == ("docs/", "*.bak")


@pytest.mark.unit
def test_rule_files_disabled(tmp_path: Path) -> None:
    write(tmp_path, ".gitignore", "*.txt\n")
    write(tmp_path, "keep.txt")

    result = scan(ScanRequest(source_dir=tmp_path, use_rule_files=False), DiagnosticSink())

    assert result.file_paths == (".gitignore", "keep.txt")
    assert result.rule_file_patterns == ()


@pytest.mark.unit
def test_symlinks_are_not_followed(tmp_path: Path) -> None:
    write(tmp_path, "real/target.txt")
    os.symlink(tmp_path / "real" / "target.txt", tmp_path / "link.txt")
    os.symlink(tmp_path / "real", tmp_path / "linked_dir", target_is_directory=True)

    result = scan(ScanRequest(source_dir=tmp_path), DiagnosticSink())

    assert result.file_paths == ("real/target.txt",)


@pytest.mark.unit
def test_unlistable_subdirectory_is_skipped(tmp_path: Path, mocker: MockerFixture) -> None:
    write(tmp_path, "locked/secret.txt")
    write(tmp_path, "open/file.txt")
    real_list = scanner._list_entries

    def flaky(directory: Path) -> list[os.DirEntry[str]]:
        if directory.name == "locked":
            raise PermissionError("denied")
        return real_list(directory)

    mocker.patch.object(scanner, "_list_entries", side_effect=flaky)
    sink = DiagnosticSink()

    result = scan(ScanRequest(source_dir=tmp_path), sink)

    assert result.file_paths == ("open/file.txt",)
    [entry] = sink.of_kind(DiagnosticKind.DIRECTORY_LISTING_FAILURE)
    assert entry.path == "locked"


@pytest.mark.unit
def test_unlistable_root_is_fatal(tmp_path: Path, mocker: MockerFixture) -> None:
    mocker.patch.object(scanner, "_list_entries", side_effect=PermissionError("denied"))

    with pytest.raises(InvalidRequestError, match="Could not list source directory"):
        scan(ScanRequest(source_dir=tmp_path), DiagnosticSink())


@pytest.mark.unit
def test_empty_directory_yields_empty_result(tmp_path: Path) -> None:
    result = scan(ScanRequest(source_dir=tmp_path), DiagnosticSink())

    assert result.file_paths == ()
    assert result.rule_file_patterns == ()


@pytest.mark.unit
def test_rule_files_are_packaged_like_other_files(tmp_path: Path) -> None:
    write(tmp_path, ".gitignore", "*.log\n")
    write(tmp_path, "a.txt")
    write(tmp_path, "debug.log")

    result = scan(ScanRequest(source_dir=tmp_path), DiagnosticSink())

    assert result.file_paths == (".gitignore", "a.txt")


@pytest.mark.unit
def test_nested_rule_file_patterns_apply_relative_to_their_directory(tmp_path: Path) -> None:
    write(tmp_path, "sub/.gitignore", "cache/*.tmp\n/secret.txt\n*.log\n")
    for rel in ["sub/cache/x.tmp", "sub/keep.txt", "sub/secret.txt", "sub/deep/secret.txt", "sub/deep/a.log"]:
        write(tmp_path, rel)
    write(tmp_path, "cache/x.tmp")
    write(tmp_path, "secret.txt")

    result = scan(ScanRequest(source_dir=tmp_path, use_default_patterns=False), DiagnosticSink())

    assert result.file_paths == (
        "cache/x.tmp",
        "secret.txt",
        "sub/.gitignore",
        "sub/deep/secret.txt",
        "sub/keep.txt",
    )
    assert result.rule_file_patterns == ("sub/cache/*.tmp", "sub/secret.txt", "sub/*.log")


@pytest.mark.unit
@pytest.mark.skipif(sys.platform != "linux", reason="needs a filesystem that accepts non-UTF-8 names")
def test_non_utf8_names_are_skipped_with_diagnostic(tmp_path: Path) -> None:
    write(tmp_path, "src/ok.txt")
    raw_src = os.path.join(os.fsencode(tmp_path), b"src")
    with open(os.path.join(raw_src, b"caf\xe9.txt"), "wb") as f:
        f.write(b"x\n")
    os.mkdir(os.path.join(raw_src, b"d\xff"))
    with open(os.path.join(raw_src, b"d\xff", b"inner.txt"), "wb") as f:
        f.write(b"x\n")
    sink = DiagnosticSink()

    result = scan(ScanRequest(source_dir=tmp_path), sink)

    assert result.file_paths == ("src/ok.txt",)
    skipped = sorted(d.path for d in sink.of_kind(DiagnosticKind.DECODE_FAILURE))
    assert skipped == ["src/caf\ufffd.txt", "src/d\ufffd"]
