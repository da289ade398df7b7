from __future__ import annotations

import threading
from enum import StrEnum, auto
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field

from codepack.logging import logger as default_logger

if TYPE_CHECKING:
    import structlog


class DiagnosticKind(StrEnum):
    """Non-fatal problems met while packaging; each drops one file or subtree."""

    DIRECTORY_LISTING_FAILURE = auto()
    FILE_ACCESS_FAILURE = auto()
    SIZE_LIMIT_EXCEEDED = auto()
    DECODE_FAILURE = auto()


class Diagnostic(BaseModel):
    """One recorded warning."""

    model_config = ConfigDict(frozen=True)

    kind: DiagnosticKind = Field(..., description="Failure category")
    path: str = Field(..., description="Relative path (or directory) concerned")
    message: str = Field(..., description="Human-readable detail")


class DiagnosticSink:
    """Append-only, thread-safe collector for per-file and per-directory warnings.

    Every entry is also logged as a structured ``warning`` event so that a
    run leaves the same trail whether or not the caller inspects the sink.
    """

    def __init__(self, log: structlog.BoundLogger | None = None) -> None:
        self._entries: list[Diagnostic] = []
        self._lock = threading.Lock()
        self._log = log if log is not None else default_logger

    def warn(self, kind: DiagnosticKind, path: str, message: str, **details: Any) -> Diagnostic:  # noqa: ANN401
        """Record and log a diagnostic.

        Args:
            kind (DiagnosticKind): the failure category
            path (str): the relative path concerned
            message (str): what went wrong
            **details: extra structured fields for the log event

        Returns:
            Diagnostic: the recorded entry
        """
        entry = Diagnostic(kind=kind, path=path, message=message)
        with self._lock:
            self._entries.append(entry)
        self._log.warning(message, kind=str(kind), path=path, **details)
        return entry

    @property
    def entries(self) -> tuple[Diagnostic, ...]:
        with self._lock:
            return tuple(self._entries)

    def of_kind(self, kind: DiagnosticKind) -> list[Diagnostic]:
        """Return the entries of one kind, in recording order."""
        return [d for d in self.entries if d.kind == kind]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
