"""Extension-aware comment removal.

Each stripper scans with string literals protected, so ``"http://x"`` keeps
its ``//``. Python files lose comments and docstrings using ``tokenize`` and
``ast``. All strippers are applied until the text stops changing, which makes
``strip_comments(strip_comments(t)) == strip_comments(t)``.
"""

from __future__ import annotations

import ast
import io
import re
import tokenize
import warnings
from pathlib import PurePosixPath
from typing import TYPE_CHECKING

from codepack.config import COMMENT_STRIPPER, register_comment_stripper

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

_DOUBLE_QUOTED = r'"(?:\\.|[^"\\\n])*"'
_SINGLE_QUOTED = r"'(?:\\.|[^'\\\n])*'"
_BACKTICK = r"`(?:\\.|[^`\\])*`"
_TRIPLE_DOUBLE = r'"""[\s\S]*?"""'
_TRIPLE_SINGLE = r"'''[\s\S]*?'''"
_SQL_QUOTED = r"'(?:[^']|'')*'"

_C_LINE = r"[ \t]*//[^\n]*"
_C_BLOCK = r"[ \t]*/\*.*?\*/"
_HASH_LINE = r"[ \t]*#[^\n]*"
_HASH_WORD = r"(?:^|[ \t]+)#[^\n]*"
_DASH_LINE = r"[ \t]*--[^\n]*"
_LUA_BLOCK = r"[ \t]*--\[\[.*?\]\]"
_HASKELL_BLOCK = r"[ \t]*\{-.*?-\}"
_HTML_BLOCK = r"[ \t]*<!--.*?-->"
_RUBY_BLOCK = r"^=begin\b.*?^=end\b[^\n]*"


def _scanner(strings: Sequence[str], comments: Sequence[str]) -> re.Pattern[str]:
    string_part = "|".join(strings) if strings else r"(?!)"
    return re.compile(
        f"(?P<string>{string_part})|(?P<comment>{'|'.join(comments)})",
        re.DOTALL | re.MULTILINE,
    )


_C_STYLE = _scanner([_DOUBLE_QUOTED, _SINGLE_QUOTED], [_C_BLOCK, _C_LINE])
_JS_STYLE = _scanner([_DOUBLE_QUOTED, _SINGLE_QUOTED, _BACKTICK], [_C_BLOCK, _C_LINE])
_CSS_STYLE = _scanner([_DOUBLE_QUOTED, _SINGLE_QUOTED], [_C_BLOCK])
_HASH_STYLE = _scanner([_TRIPLE_DOUBLE, _TRIPLE_SINGLE, _DOUBLE_QUOTED, _SINGLE_QUOTED], [_HASH_LINE])
_SHELL_STYLE = _scanner([_DOUBLE_QUOTED, _SINGLE_QUOTED], [_HASH_WORD])
_RUBY_STYLE = _scanner([_DOUBLE_QUOTED, _SINGLE_QUOTED], [_RUBY_BLOCK, _HASH_LINE])
_SQL_STYLE = _scanner([_SQL_QUOTED, _DOUBLE_QUOTED], [_C_BLOCK, _DASH_LINE])
_LUA_STYLE = _scanner([_DOUBLE_QUOTED, _SINGLE_QUOTED], [_LUA_BLOCK, _DASH_LINE])
_HASKELL_STYLE = _scanner([_DOUBLE_QUOTED], [_HASKELL_BLOCK, _DASH_LINE])
_MARKUP_STYLE = _scanner([], [_HTML_BLOCK])


def _replace_comment(m: re.Match[str]) -> str:
    if m.group("string") is not None:
        return m.group("string")
    text = m.string
    prev = text[m.start() - 1] if m.start() > 0 else ""
    nxt = text[m.end()] if m.end() < len(text) else ""
    # keep tokens on both sides apart: a/**/b must not become ab
    if prev and nxt and not prev.isspace() and not nxt.isspace():
        return " "
    return ""


def _until_stable(func: Callable[[str], str], text: str) -> str:
    current = text
    while True:
        updated = func(current)
        if updated == current:
            return updated
        current = updated


def _split_shebang(text: str) -> tuple[str, str]:
    if not text.startswith("#!"):
        return "", text
    head, sep, rest = text.partition("\n")
    return head + sep, rest


def strip_with(scanner: re.Pattern[str], text: str) -> str:
    """Remove every comment recognised by ``scanner`` from ``text``.

    A leading shebang line is kept.

    Args:
        scanner (re.Pattern[str]): a pattern with ``string`` and ``comment`` groups
        text (str): the source text

    Returns:
        str: the text without comments
    """
    shebang, body = _split_shebang(text)
    return shebang + _until_stable(lambda t: scanner.sub(_replace_comment, t), body)


@register_comment_stripper(
    [".c", ".cc", ".cpp", ".cs", ".cxx", ".h", ".hpp", ".java", ".kt", ".php", ".rs", ".scala", ".swift"],
)
def strip_c_style(text: str) -> str:
    """Strip ``//`` and ``/* */`` comments."""
    return strip_with(_C_STYLE, text)


@register_comment_stripper([".js", ".jsx", ".mjs", ".cjs", ".ts", ".tsx", ".go"])
def strip_js_style(text: str) -> str:
    """Strip C-style comments, also protecting backtick strings."""
    return strip_with(_JS_STYLE, text)


@register_comment_stripper([".css", ".scss", ".less"])
def strip_css(text: str) -> str:
    """Strip ``/* */`` comments."""
    return strip_with(_CSS_STYLE, text)


@register_comment_stripper([".sh", ".bash", ".zsh", ".pl", ".yaml", ".yml", ".toml", ".r"])
def strip_hash_words(text: str) -> str:
    """Strip ``#`` comments that start a word (shell, YAML, TOML)."""
    return strip_with(_SHELL_STYLE, text)


@register_comment_stripper(".rb")
def strip_ruby(text: str) -> str:
    """Strip ``#`` comments and ``=begin``/``=end`` blocks."""
    return strip_with(_RUBY_STYLE, text)


@register_comment_stripper(".sql")
def strip_sql(text: str) -> str:
    """Strip ``--`` and ``/* */`` comments."""
    return strip_with(_SQL_STYLE, text)


@register_comment_stripper(".lua")
def strip_lua(text: str) -> str:
    """Strip ``--`` and ``--[[ ]]`` comments."""
    return strip_with(_LUA_STYLE, text)


@register_comment_stripper(".hs")
def strip_haskell(text: str) -> str:
    """Strip ``--`` and ``{- -}`` comments."""
    return strip_with(_HASKELL_STYLE, text)


@register_comment_stripper([".html", ".htm", ".xml", ".vue", ".svg"])
def strip_markup(text: str) -> str:
    """Strip ``<!-- -->`` comments."""
    return strip_with(_MARKUP_STYLE, text)


def _char_col(line: str, byte_col: int) -> int:
    return len(line.encode("utf-8")[:byte_col].decode("utf-8", errors="ignore"))


def _python_spans(text: str, lines: list[str]) -> list[tuple[int, int, int, int, str]]:
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        tree = ast.parse(text)
    tokens = list(tokenize.generate_tokens(io.StringIO(text).readline))

    spans: list[tuple[int, int, int, int, str]] = []
    for tok in tokens:
        if tok.type != tokenize.COMMENT:
            continue
        if tok.start == (1, 0) and tok.string.startswith("#!"):
            continue
        spans.append((tok.start[0], tok.start[1], tok.end[0], tok.end[1], ""))

    for node in ast.walk(tree):
        if not isinstance(node, (ast.Module, ast.ClassDef, ast.FunctionDef, ast.AsyncFunctionDef)):
            continue
        if not node.body:
            continue
        first = node.body[0]
        if not (isinstance(first, ast.Expr) and isinstance(first.value, ast.Constant)):
            continue
        if not isinstance(first.value.value, str) or first.end_lineno is None or first.end_col_offset is None:
            continue
        replacement = "pass" if len(node.body) == 1 and not isinstance(node, ast.Module) else ""
        start_col = _char_col(lines[first.lineno - 1], first.col_offset)
        end_col = _char_col(lines[first.end_lineno - 1], first.end_col_offset)
        spans.append((first.lineno, start_col, first.end_lineno, end_col, replacement))
    return spans


def _strip_python_once(text: str) -> str:
    lines = io.StringIO(text).readlines()
    try:
        spans = _python_spans(text, lines)
    except (SyntaxError, ValueError, tokenize.TokenError):
        return strip_with(_HASH_STYLE, text)
    if not spans:
        return text

    touched = [False] * len(lines)
    for start_line, start_col, end_line, end_col, replacement in sorted(spans, reverse=True):
        merged = lines[start_line - 1][:start_col] + replacement + lines[end_line - 1][end_col:]
        lines[start_line - 1 : end_line] = [merged]
        touched[start_line - 1 : end_line] = [True]

    out: list[str] = []
    for line, was_touched in zip(lines, touched, strict=True):
        if not was_touched:
            out.append(line)
            continue
        body = line.rstrip("\r\n")
        ending = line[len(body) :]
        body = body.rstrip()
        if body:
            out.append(body + ending)
    return "".join(out)


@register_comment_stripper([".py", ".pyi"])
def strip_python(text: str) -> str:
    """Strip comments and docstrings from Python source.

    Lines left empty by the removal are dropped, and a docstring that was a
    function or class body on its own becomes ``pass``. Source that does not
    parse falls back to a plain ``#`` scan.

    Args:
        text (str): Python source

    Returns:
        str: the source without comments and docstrings
    """
    return _until_stable(_strip_python_once, text)


def strip_comments(text: str, path: str) -> str:
    """Strip comments according to the file extension of ``path``.

    Args:
        text (str): decoded file content
        path (str): forward-slash relative path, used for its suffix

    Returns:
        str: the content without comments, or unchanged for unknown extensions
    """
    stripper = COMMENT_STRIPPER.get(PurePosixPath(path).suffix.lower())
    if stripper is None:
        return text
    return stripper(text)
