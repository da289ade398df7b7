from __future__ import annotations

from enum import StrEnum, auto
from functools import wraps
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator

from codepack.matching import split_patterns

if TYPE_CHECKING:
    from collections.abc import Callable

    CommentStripperFn = Callable[[str], str]


class OutputFormat(StrEnum):
    """Serialization formats for the packed document."""

    XML = auto()
    MD = auto()
    TXT = auto()


DEFAULT_MAX_FILE_SIZE = 1 * 1024 * 1024
DEFAULT_READ_MAX_FILE_SIZE = 5 * 1024 * 1024
DEFAULT_MAX_WORKERS = 8
RULE_FILE_NAME = ".gitignore"

DEFAULT_IGNORE_PATTERNS: tuple[str, ...] = (
    "**/node_modules/**",
    "**/.git/**",
    "**/.svn/**",
    "**/.hg/**",
    "**/.DS_Store",
    "**/dist/**",
    "**/build/**",
    "**/coverage/**",
    "**/.vscode/**",
    "**/.idea/**",
    "**/*.log",
    "**/*.lock",
    "**/yarn-error.log",
    "**/package-lock.json",
    "**/yarn.lock",
    "**/.env*",
    "**/*.pyc",
    "**/__pycache__/**",
    "**/*.class",
    "**/*.o",
    "**/*.so",
    "**/*.dll",
    "**/*.exe",
    "**/*.obj",
    "**/*.bin",
    "**/*.out",
    "**/*.zip",
    "**/*.tar.gz",
    "**/*.rar",
    "**/*.7z",
)

_FENCE_LANGUAGE: dict[str, str] = {
    ".bash": "bash",
    ".c": "c",
    ".cc": "cpp",
    ".cpp": "cpp",
    ".cs": "csharp",
    ".css": "css",
    ".go": "go",
    ".h": "c",
    ".hpp": "cpp",
    ".htm": "html",
    ".html": "html",
    ".java": "java",
    ".js": "javascript",
    ".jsx": "jsx",
    ".json": "json",
    ".kt": "kotlin",
    ".md": "markdown",
    ".mjs": "javascript",
    ".php": "php",
    ".py": "python",
    ".rb": "ruby",
    ".rs": "rust",
    ".sh": "bash",
    ".sql": "sql",
    ".toml": "toml",
    ".ts": "typescript",
    ".tsx": "tsx",
    ".xml": "xml",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".zsh": "bash",
}

COMMENT_STRIPPER: dict[str, Callable[[str], str]] = {}


def fence_language(path: str) -> str:
    """Suggest a code fence language for a relative path.

    Known extensions map to their usual highlighter name, other extensions
    are used as-is, and extension-less files fall back to ``text``.

    Args:
        path (str): the forward-slash relative path of the file

    Returns:
        str: the fence language
    """
    suffix = PurePosixPath(path).suffix.lower()
    if not suffix:
        return "text"
    return _FENCE_LANGUAGE.get(suffix, suffix[1:])


class ScanRequest(BaseModel):
    """Everything one packaging run needs, resolved once at the boundary.

    Attributes:
        source_dir: Absolute directory to package.
        include_patterns: Comma-separated include globs (None means everything).
        ignore_patterns: Comma-separated ignore globs supplied by the caller.
        use_default_patterns: Apply DEFAULT_IGNORE_PATTERNS.
        use_rule_files: Honour per-directory .gitignore files.
        output_format: Encoding of the produced document.
        max_file_size: Size cap applied while scanning (bytes).
        read_max_file_size: Size cap applied again when reading (bytes).
        remove_comments: Strip comments from recognised source files.
        remove_empty_lines: Drop whitespace-only lines.
        file_summary: Emit the summary section.
        directory_structure: Emit the directory-structure section.
        source_identifier: Display label for the source (path or URL).
        remote_url: URL the source was cloned from, if any.
        max_workers: Upper bound on concurrent file reads.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    source_dir: Path = Field(..., description="Absolute source directory")
    include_patterns: str | None = Field(default=None, description="Comma-separated include globs")
    ignore_patterns: str | None = Field(default=None, description="Comma-separated ignore globs")
    use_default_patterns: bool = Field(default=True, description="Apply the default ignore patterns")
    use_rule_files: bool = Field(default=True, description="Honour .gitignore files")
    output_format: OutputFormat = Field(default=OutputFormat.XML, description="Output encoding")
    max_file_size: int = Field(default=DEFAULT_MAX_FILE_SIZE, gt=0, description="Scan-time size cap")
    read_max_file_size: int = Field(default=DEFAULT_READ_MAX_FILE_SIZE, gt=0, description="Read-time size cap")
    remove_comments: bool = Field(default=False, description="Strip comments")
    remove_empty_lines: bool = Field(default=False, description="Strip blank lines")
    file_summary: bool = Field(default=True, description="Emit the summary section")
    directory_structure: bool = Field(default=True, description="Emit the directory tree")
    source_identifier: str = Field(default="", description="Display label for the source")
    remote_url: str | None = Field(default=None, description="Remote repository URL")
    max_workers: int = Field(default=DEFAULT_MAX_WORKERS, ge=1, description="Concurrent reads")

    @model_validator(mode="before")
    @classmethod
    def _resolve_source(cls, data: Any) -> Any:  # noqa: ANN401
        if not isinstance(data, dict) or not data.get("source_dir"):
            return data
        source_dir = Path(data["source_dir"]).expanduser().resolve()
        identifier = data.get("source_identifier") or source_dir.as_posix()
        return {**data, "source_dir": source_dir, "source_identifier": identifier}

    @field_validator("output_format", mode="before")
    @classmethod
    def _parse_output_format(cls, value: Any) -> Any:  # noqa: ANN401
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @computed_field
    @property
    def include_list(self) -> list[str]:
        """Include patterns split on commas."""
        return split_patterns(self.include_patterns)

    @computed_field
    @property
    def ignore_list(self) -> list[str]:
        """Caller ignore patterns split on commas."""
        return split_patterns(self.ignore_patterns)


class ProcessedFile(BaseModel):
    """A discovered file after reading, decoding and transformation."""

    model_config = ConfigDict(frozen=True)

    path: str = Field(..., description="Forward-slash path relative to the source root")
    content: str = Field(..., description="Transformed text content")

    @computed_field
    @property
    def language(self) -> str:
        """Suggested code fence language."""
        return fence_language(self.path)


def register_comment_stripper(
    key: str | list[str],
) -> Callable[[CommentStripperFn], CommentStripperFn]:
    """Register a comment-stripping function for one or more file suffixes.

    Args:
        key (str | list[str]): the lower-case suffix (e.g. ".py") or list of
            suffixes handled by the decorated function.

    Returns:
        Callable[[CommentStripperFn], CommentStripperFn]: A decorator that stores the
        function in COMMENT_STRIPPER under every key and returns it.
    """

    def decorator(func: CommentStripperFn) -> CommentStripperFn:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:  # noqa: ANN401
            return func(*args, **kwargs)

        keys = key if isinstance(key, list) else [key]
        for k in keys:
            COMMENT_STRIPPER[k] = wrapper
        return wrapper

    return decorator
