"""
codepack: package a source tree into one document for an LLM.

Overview
--------
Walks a local directory (or a GitHub repository cloned into a temporary
directory), filters files with default ignore patterns, ``.gitignore`` files
and caller globs, and renders the survivors as one XML, Markdown or plain
text document, delivered to stdout, a file or the clipboard.

Settings come from, lowest priority first: built-in defaults, ``CODEPACK_*``
variables (environment or ``.env``), a YAML file given with ``--config``, and
the command-line flags.

Usage
-----
Run `codepack --help` for full options. Common examples:
    - Markdown of the current directory to stdout:
        codepack --format md

    - Only Python files, without comments, written to ./out/codepack.xml:
        codepack src --include "**/*.py" --remove-comments --target file --output-dir out

    - A sub-directory of a GitHub repository to the clipboard:
        codepack --remote https://github.com/owner/repo/tree/main/src --target clipboard
"""

from __future__ import annotations

import argparse
import sys
from typing import TYPE_CHECKING

from codepack import __version__
from codepack.config import OutputFormat
from codepack.emitters import OutputTarget, emit
from codepack.exceptions import EmissionError, InvalidRequestError, RemoteCloneError
from codepack.logging import logger, reconfigure_logging
from codepack.packer import pack_codebase
from codepack.remote import cloned_repository
from codepack.settings import resolve_settings

if TYPE_CHECKING:
    from collections.abc import Sequence

    from codepack.packer import PackResult
    from codepack.settings import Settings

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INVALID_REQUEST = 2


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser; options left unset are absent from the namespace."""
    p = argparse.ArgumentParser(
        prog="codepack",
        description="Package a codebase into a single document (xml/md/txt).",
        argument_default=argparse.SUPPRESS,
    )
    p.add_argument("directory", nargs="?", default=None, help="Directory to package (default: current directory).")
    p.add_argument("--remote", type=str, metavar="URL", help="GitHub repository URL to clone and package.")
    p.add_argument("--include", type=str, help="Comma-separated glob patterns of files to include.")
    p.add_argument("--ignore", type=str, help="Comma-separated glob patterns of files or directories to ignore.")
    p.add_argument("--format", type=str, choices=[f.value for f in OutputFormat], help="Output format (default: xml).")
    p.add_argument(
        "--target",
        type=str,
        choices=[t.value for t in OutputTarget],
        help="Output destination (default: stdout).",
    )
    p.add_argument("--output-dir", type=str, help="Directory for the file target (default: current directory).")

    p.add_argument("--remove-comments", action="store_true", help="Remove comments from source files.")
    p.add_argument("--remove-empty-lines", action="store_true", help="Remove empty lines from files.")
    p.add_argument(
        "--no-file-summary",
        dest="file_summary",
        action="store_false",
        help="Omit the summary section.",
    )
    p.add_argument(
        "--no-directory-structure",
        dest="directory_structure",
        action="store_false",
        help="Omit the directory structure section.",
    )
    p.add_argument("--no-gitignore", dest="use_gitignore", action="store_false", help="Ignore .gitignore files.")
    p.add_argument(
        "--no-default-patterns",
        dest="use_default_patterns",
        action="store_false",
        help="Do not apply the default ignore patterns.",
    )

    p.add_argument("--max-file-size", type=int, help="Skip files larger than this while scanning (bytes).")
    p.add_argument("--read-max-file-size", type=int, help="Skip files larger than this when reading (bytes).")
    p.add_argument("--max-workers", type=int, help="Maximum number of concurrent file reads.")

    p.add_argument("--config", type=str, help="YAML file with default values for these options.")
    p.add_argument("--log-file", type=str, help="Log file path (default: stderr).")
    p.add_argument("--log-level", type=str, help="Minimum log level (default: INFO).")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return p


def parse_args(argv: Sequence[str] | None = None) -> Settings:
    """Parse the command line and merge it over the environment and config file.

    Raises:
        InvalidRequestError: if the merged settings are invalid.
    """
    args = build_parser().parse_args(argv)
    explicit = {k: v for k, v in vars(args).items() if v is not None}
    return resolve_settings(explicit)


def run(settings: Settings) -> tuple[PackResult, OutputFormat]:
    """Package the local or remote source described by ``settings``.

    Returns:
        tuple[PackResult, OutputFormat]: the run result and the output format used
    """
    if settings.remote:
        with cloned_repository(settings.remote) as (source, directory):
            request = settings.to_request(directory, source_identifier=source.url, remote_url=source.url)
            return pack_codebase(request), request.output_format
    request = settings.to_request()
    return pack_codebase(request), request.output_format


def main(argv: Sequence[str] | None = None) -> int:
    try:
        settings = parse_args(argv)
    except InvalidRequestError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_INVALID_REQUEST

    if settings.log_file or settings.log_level != "INFO":
        reconfigure_logging(settings.log_file or None, settings.log_level)

    try:
        result, fmt = run(settings)
        written = emit(result.document, settings.target, settings.output_dir, fmt)
    except InvalidRequestError as e:
        logger.error("Invalid request", error=str(e))
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_INVALID_REQUEST
    except (RemoteCloneError, EmissionError) as e:
        logger.error("Packaging failed", error=str(e))
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILURE

    if settings.target != OutputTarget.STDOUT:
        where = written if written is not None else settings.target
        print(
            f"Wrote {where} format={fmt} files={len(result.files)} warnings={len(result.diagnostics)}",
            file=sys.stderr,
        )
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
