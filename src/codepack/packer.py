"""Packaging engine: scan, load, build the tree, serialize.

The engine does no I/O beyond reading the source tree; emitting the
document is left to :mod:`codepack.emitters`.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from codepack.config import ProcessedFile, ScanRequest
from codepack.diagnostics import DiagnosticSink
from codepack.exceptions import InvalidRequestError, SourceNotFoundError
from codepack.file_manipulation import load_files
from codepack.logging import logger
from codepack.output_construction import build_document, render_document
from codepack.scanner import ScanResult, scan
from codepack.tree import generate_directory_structure


class PackResult(BaseModel):
    """Outcome of one packaging run."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    document: str = Field(..., description="The rendered document")
    files: tuple[ProcessedFile, ...] = Field(default=(), description="Files included, in discovery order")
    scan: ScanResult = Field(..., description="Scanner output")
    diagnostics: DiagnosticSink = Field(..., description="Warnings recorded during the run")


def describe_validation_error(error: ValidationError) -> str:
    """Flatten a pydantic ValidationError into ``field: message; ...``."""
    return "; ".join(f"{'.'.join(map(str, err['loc'])) or 'request'}: {err['msg']}" for err in error.errors())


def build_request(**options: Any) -> ScanRequest:  # noqa: ANN401
    """Build a ScanRequest, reporting bad options as InvalidRequestError.

    Args:
        **options: ScanRequest fields

    Raises:
        InvalidRequestError: if an option is missing, unknown or invalid.

    Returns:
        ScanRequest: the validated request
    """
    try:
        return ScanRequest(**options)
    except ValidationError as e:
        raise InvalidRequestError(message=f"Invalid packaging request: {describe_validation_error(e)}") from e


def _check_source(request: ScanRequest) -> None:
    source = request.source_dir
    if not source.is_dir():
        raise SourceNotFoundError(folder=source)
    if not os.access(source, os.R_OK | os.X_OK):
        raise InvalidRequestError(message=f"The source directory is not readable: {source}")


def pack_codebase(
    request: ScanRequest,
    diagnostics: DiagnosticSink | None = None,
    generated_at: str | None = None,
) -> PackResult:
    """Package ``request.source_dir`` into one document.

    Args:
        request (ScanRequest): the packaging request
        diagnostics (DiagnosticSink | None): collector for non-fatal problems;
            a fresh one is created when omitted
        generated_at (str | None): fixed timestamp for reproducible output

    Raises:
        SourceNotFoundError: if the source directory is missing or not a directory.
        InvalidRequestError: if the source cannot be read or a pattern is invalid.

    Returns:
        PackResult: the document with the files, scan result and diagnostics behind it
    """
    sink = DiagnosticSink() if diagnostics is None else diagnostics
    _check_source(request)

    scanned = scan(request, sink)
    files = load_files(request.source_dir, scanned.file_paths, request, sink)
    tree = generate_directory_structure(f.path for f in files) if request.directory_structure else ""
    document = build_document(request, scanned, files, tree, generated_at=generated_at)
    rendered = render_document(document)

    logger.info(
        "Packed codebase",
        source=request.source_identifier,
        format=str(request.output_format),
        files=len(files),
        diagnostics=len(sink),
    )
    return PackResult(document=rendered, files=tuple(files), scan=scanned, diagnostics=sink)


def pack(request: ScanRequest, **kwargs: Any) -> str:  # noqa: ANN401
    """Return only the rendered document of :func:`pack_codebase`."""
    return pack_codebase(request, **kwargs).document
