from __future__ import annotations

import sys
from enum import StrEnum, auto
from pathlib import Path

import pyperclip

from codepack.config import OutputFormat
from codepack.exceptions import EmissionError
from codepack.logging import logger

OUTPUT_STEM = "codepack"


class OutputTarget(StrEnum):
    """Where the packed document goes."""

    STDOUT = auto()
    FILE = auto()
    CLIPBOARD = auto()


def output_path(output_dir: str | Path, output_format: OutputFormat) -> Path:
    """Return ``<output_dir>/codepack.<format>``."""
    return Path(output_dir).expanduser() / f"{OUTPUT_STEM}.{output_format}"


def emit(
    content: str,
    target: OutputTarget,
    output_dir: str | Path = ".",
    output_format: OutputFormat = OutputFormat.XML,
) -> Path | None:
    """Deliver a rendered document.

    Args:
        content (str): the rendered document
        target (OutputTarget): stdout, file or clipboard
        output_dir (str | Path): directory for the file target, created if missing
        output_format (OutputFormat): selects the file extension

    Raises:
        EmissionError: if the document cannot be written or copied.

    Returns:
        Path | None: the written file for the file target, else None
    """
    match OutputTarget(target):
        case OutputTarget.STDOUT:
            try:
                sys.stdout.write(content)
                sys.stdout.flush()
            except (OSError, UnicodeEncodeError) as e:
                raise EmissionError(target="stdout", message=f"Could not write to stdout: {e}") from e
            return None
        case OutputTarget.FILE:
            path = output_path(output_dir, output_format)
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_text(content, encoding="utf-8")
            except (OSError, UnicodeEncodeError) as e:
                raise EmissionError(target=str(path), message=f"Could not write output file: {e}") from e
            logger.info("Wrote output file", path=str(path), chars=len(content))
            return path
        case OutputTarget.CLIPBOARD:
            try:
                pyperclip.copy(content)
            except pyperclip.PyperclipException as e:
                raise EmissionError(target="clipboard", message=f"Could not copy to clipboard: {e}") from e
            logger.info("Copied output to clipboard", chars=len(content))
            return None
