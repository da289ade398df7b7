from __future__ import annotations

import io
import os
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING

from codepack.comments import strip_comments
from codepack.config import ProcessedFile
from codepack.diagnostics import DiagnosticKind
from codepack.exceptions import FileTooLargeError
from codepack.logging import logger

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from codepack.config import ScanRequest
    from codepack.diagnostics import DiagnosticSink


def read_bytes(path: Path, limit: int) -> bytes:
    """Read a file, refusing anything larger than ``limit`` bytes.

    The size is checked on the open handle and again on the bytes actually
    read (at most ``limit + 1``), so a file that grows after discovery is
    still caught without reading it whole.

    Args:
        path (Path): absolute file path
        limit (int): maximum accepted size in bytes

    Raises:
        FileTooLargeError: if the file is larger than ``limit``.
        OSError: if the file cannot be opened, stat'd or read.

    Returns:
        bytes: the file content
    """
    with path.open("rb") as f:
        size = os.fstat(f.fileno()).st_size
        if size > limit:
            raise FileTooLargeError(path=path, size=size, limit=limit)
        data = f.read(limit + 1)
    if len(data) > limit:
        raise FileTooLargeError(path=path, size=len(data), limit=limit)
    return data


def decode_text(data: bytes) -> str:
    """Decode file bytes as UTF-8, dropping a leading BOM.

    Args:
        data (bytes): raw file content

    Raises:
        UnicodeDecodeError: if the bytes are not valid UTF-8.

    Returns:
        str: the decoded text
    """
    return data.decode("utf-8-sig")


def strip_empty_lines(text: str) -> str:
    """Drop lines that are empty or contain only whitespace.

    Args:
        text (str): the text to compact

    Returns:
        str: the text without blank lines; surviving lines keep their endings
    """
    return "".join(line for line in io.StringIO(text).readlines() if line.strip())


def transform_text(text: str, path: str, *, remove_comments: bool, remove_empty_lines: bool) -> str:
    """Apply the optional text transforms in order: comments, then blank lines.

    Args:
        text (str): decoded content
        path (str): relative path (its suffix selects the comment syntax)
        remove_comments (bool): strip comments
        remove_empty_lines (bool): strip blank lines

    Returns:
        str: the transformed text
    """
    if remove_comments:
        text = strip_comments(text, path)
    if remove_empty_lines:
        text = strip_empty_lines(text)
    return text


def load_file(
    root: Path,
    rel: str,
    request: ScanRequest,
    diagnostics: DiagnosticSink,
) -> ProcessedFile | None:
    """Read, decode and transform one discovered file.

    Failures are recorded in ``diagnostics`` and the file is dropped.

    Args:
        root (Path): the source directory
        rel (str): forward-slash path relative to ``root``
        request (ScanRequest): supplies the read-time cap and transform flags
        diagnostics (DiagnosticSink): collector for dropped files

    Returns:
        ProcessedFile | None: the processed file, or None when it was dropped
    """
    path = root.joinpath(*rel.split("/"))
    try:
        data = read_bytes(path, request.read_max_file_size)
    except FileTooLargeError as e:
        diagnostics.warn(
            DiagnosticKind.SIZE_LIMIT_EXCEEDED,
            rel,
            "Skipping large file",
            size=e.size,
            limit=e.limit,
        )
        return None
    except OSError as e:
        diagnostics.warn(DiagnosticKind.FILE_ACCESS_FAILURE, rel, f"Could not read file: {e}")
        return None

    try:
        text = decode_text(data)
    except UnicodeDecodeError as e:
        diagnostics.warn(DiagnosticKind.DECODE_FAILURE, rel, f"Could not decode file as UTF-8: {e.reason}")
        return None

    content = transform_text(
        text,
        rel,
        remove_comments=request.remove_comments,
        remove_empty_lines=request.remove_empty_lines,
    )
    if not content.strip():
        logger.debug("Dropping file without content", path=rel)
        return None
    return ProcessedFile(path=rel, content=content)


def load_files(
    root: Path,
    paths: Sequence[str],
    request: ScanRequest,
    diagnostics: DiagnosticSink,
) -> list[ProcessedFile]:
    """Load every discovered file with bounded concurrency.

    Results keep the order of ``paths`` whatever the completion order.

    Args:
        root (Path): the source directory
        paths (Sequence[str]): relative paths from the scanner, in discovery order
        request (ScanRequest): supplies ``max_workers`` and the per-file options
        diagnostics (DiagnosticSink): collector for dropped files

    Returns:
        list[ProcessedFile]: the files that were read successfully
    """
    if not paths:
        return []
    workers = min(request.max_workers, len(paths))
    with ThreadPoolExecutor(max_workers=workers) as pool:
        results = list(pool.map(lambda rel: load_file(root, rel, request, diagnostics), paths))
    processed = [r for r in results if r is not None]
    logger.info("Loaded files", requested=len(paths), loaded=len(processed))
    return processed
