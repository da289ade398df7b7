from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class CodepackError(Exception):
    """Base exception for errors in the codepack package."""

    message: str = "codepack failed."

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class InvalidRequestError(CodepackError):
    """Raised when a packaging request cannot be honoured at all."""

    message: str = "Invalid packaging request."


@dataclass(frozen=True)
class SourceNotFoundError(InvalidRequestError):
    """Raised when the source directory is missing or not a directory."""

    folder: Path = Path()
    message: str = "The source directory does not exist or is not a directory."

    def __str__(self) -> str:
        return f"{self.message} ({self.folder})"


@dataclass(frozen=True)
class RemoteCloneError(CodepackError):
    """Raised when a remote repository cannot be cloned."""

    url: str = ""
    returncode: int = 0
    stderr: str = ""
    message: str = "Could not clone the remote repository."

    def __str__(self) -> str:
        detail = self.stderr.strip()
        return f"{self.message} url={self.url} returncode={self.returncode}" + (f": {detail}" if detail else "")


@dataclass(frozen=True)
class EmissionError(CodepackError):
    """Raised when the packed document cannot be delivered to its target."""

    target: str = ""
    message: str = "Could not deliver the packed document."

    def __str__(self) -> str:
        return f"{self.message} target={self.target}"


@dataclass(frozen=True)
class TreeConflictError(CodepackError):
    """Raised when a path needs a file and a directory at the same position."""

    path: str = ""
    message: str = "A path segment is used both as a file and as a directory."

    def __str__(self) -> str:
        return f"{self.message} path={self.path}"


@dataclass(frozen=True)
class FileTooLargeError(CodepackError):
    """Raised by the read stage when a file exceeds the read-time size cap."""

    path: Path = Path()
    size: int = 0
    limit: int = 0
    message: str = "File exceeds the size limit."

    def __str__(self) -> str:
        return f"{self.message} path={self.path} size={self.size} limit={self.limit}"
