from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from codepack.config import ScanRequest
from codepack.diagnostics import DiagnosticKind, DiagnosticSink
from codepack.exceptions import InvalidRequestError
from codepack.ignore_rules import (
    DEFAULT_IGNORE_PATTERNS,
    RuleSet,
    anchor_patterns,
    build_root_rules,
    dedupe,
    parse_rule_lines,
    read_rule_file,
    scope_patterns,
)
from codepack.matching import compile_pattern

if TYPE_CHECKING:
    from pytest_mock import MockerFixture


@pytest.mark.unit
def test_parse_rule_lines_skips_blanks_and_comments() -> None:
    text = "# build output\n\n  dist/  \n*.log\n   # indented comment\n"

    assert parse_rule_lines(text) == ["dist/", "*.log"]


@pytest.mark.unit
def test_read_rule_file_missing_returns_empty(tmp_path: Path) -> None:
    sink = DiagnosticSink()

    assert read_rule_file(tmp_path, "", sink) == []
    assert len(sink) == 0


@pytest.mark.unit
def test_read_rule_file_reads_patterns_and_skips_invalid(tmp_path: Path) -> None:
    (tmp_path / ".gitignore").write_text("*.tmp\nsrc\\\n/cache\n", encoding="utf-8")

    assert read_rule_file(tmp_path, "", DiagnosticSink()) == ["*.tmp", "/cache"]


@pytest.mark.unit
def test_read_rule_file_unreadable_records_diagnostic(tmp_path: Path, mocker: MockerFixture) -> None:
    sub = tmp_path / "logs"
    sub.mkdir()
    (sub / ".gitignore").write_text("*.tmp\n", encoding="utf-8")
    mocker.patch.object(Path, "read_text", side_effect=PermissionError("denied"))
    sink = DiagnosticSink()

    assert read_rule_file(sub, "logs", sink) == []
    [entry] = sink.entries
    assert entry.kind is DiagnosticKind.FILE_ACCESS_FAILURE
    assert entry.path == "logs/.gitignore"


@pytest.mark.unit
def test_rule_set_extend_returns_new_set() -> None:
    parent = RuleSet(default=("**/.git/**",), caller=("*.bak",))

    child = parent.extend(["*.tmp"])

    assert parent.rule_file == ()
    assert child.rule_file == ("*.tmp",)
    assert child.effective() == ("**/.git/**", "*.bak", "*.tmp")
    assert parent.extend([]) is parent


@pytest.mark.unit
def test_rule_set_matchers_follow_effective_patterns() -> None:
    rules = RuleSet(caller=("*.bak",)).extend(["*.tmp"])

    matchers = rules.matchers()

    assert matchers.any_match("a/b.tmp")
    assert matchers.any_match("x.bak")
    assert not matchers.any_match("x.py")


@pytest.mark.unit
def test_scope_patterns_prefixes_nested_directories() -> None:
    assert scope_patterns("", ["*.log"]) == ["*.log"]
    assert scope_patterns("logs", ["*.tmp", "/cache"]) == ["logs/*.tmp", "logs/cache"]


@pytest.mark.unit
def test_anchor_patterns_bind_rules_to_their_directory() -> None:
    patterns = ["*.tmp", "/cache", "build/", "a/b.txt", "!keep.tmp"]

    assert anchor_patterns("", patterns) == patterns
    assert anchor_patterns("logs", patterns) == [
        "logs/**/*.tmp",
        "logs/cache",
        "logs/**/build/",
        "logs/a/b.txt",
        "!logs/**/keep.tmp",
    ]


@pytest.mark.unit
def test_anchor_patterns_escape_glob_characters_in_directory() -> None:
    [pattern] = anchor_patterns("dir[1]", ["*.x"])
    matcher = compile_pattern(pattern)

    assert matcher.matches("dir[1]/a.x")
    assert matcher.matches("dir[1]/deep/a.x")
    assert not matcher.matches("dir1/a.x")


@pytest.mark.unit
def test_dedupe_keeps_first_occurrence_order() -> None:
    assert dedupe(["b", "a", "b", "c", "a"]) == ["b", "a", "c"]


@pytest.mark.unit
def test_build_root_rules_buckets(tmp_path: Path) -> None:
    request = ScanRequest(source_dir=tmp_path, ignore_patterns="*.bak, docs/")

    rules = build_root_rules(request)

    assert rules.default == DEFAULT_IGNORE_PATTERNS
    assert rules.caller == ("*.bak", "docs/")
    assert rules.rule_file == ()


@pytest.mark.unit
def test_build_root_rules_without_defaults(tmp_path: Path) -> None:
    request = ScanRequest(source_dir=tmp_path, use_default_patterns=False)

    assert build_root_rules(request).effective() == ()


@pytest.mark.unit
@pytest.mark.parametrize("field", ["ignore_patterns", "include_patterns"])
def test_build_root_rules_rejects_invalid_caller_patterns(tmp_path: Path, field: str) -> None:
    request = ScanRequest(source_dir=tmp_path, **{field: "ok/*.py,bad\\"})

    with pytest.raises(InvalidRequestError, match="bad"):
        build_root_rules(request)
