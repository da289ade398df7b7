from __future__ import annotations

import io
import re
from datetime import UTC, datetime
from typing import TYPE_CHECKING
from xml.sax.saxutils import escape, quoteattr

from pydantic import BaseModel, ConfigDict, Field

from codepack.config import OutputFormat, ProcessedFile
from codepack.exceptions import InvalidRequestError

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from codepack.config import ScanRequest
    from codepack.scanner import ScanResult


class FileSummary(BaseModel):
    """Human-readable preamble of the packed document."""

    model_config = ConfigDict(frozen=True)

    intro: str
    purpose: str
    file_format: str
    usage_guidelines: str
    notes: tuple[str, ...] = ()
    additional_info: str = ""


class IgnoreSection(BaseModel):
    """One active bucket of ignore patterns, ready for rendering."""

    model_config = ConfigDict(frozen=True)

    key: str
    title: str
    intro: str
    short_intro: str
    patterns: tuple[str, ...]


class OutputDocument(BaseModel):
    """Everything a serializer needs; built once per run and rendered once."""

    model_config = ConfigDict(frozen=True)

    source: str = Field(..., description="Display identifier of the source")
    output_format: OutputFormat = Field(..., description="Selected encoding")
    summary: FileSummary | None = Field(default=None, description="None when the summary is disabled")
    directory_structure: str | None = Field(default=None, description="None when the tree is disabled")
    default_patterns: tuple[str, ...] = ()
    caller_patterns: tuple[str, ...] = ()
    rule_file_patterns: tuple[str, ...] = ()
    use_default_patterns: bool = True
    use_rule_files: bool = True
    files: tuple[ProcessedFile, ...] = ()


def now_iso() -> str:
    """Return the current date and time in ISO 8601 format with timezone.

    Returns:
        str: the current date and time in ISO 8601 format with timezone
    """
    return datetime.now(UTC).astimezone().isoformat(timespec="seconds")


def summary_notes(request: ScanRequest) -> list[str]:
    """Describe the processing applied during the run.

    Args:
        request (ScanRequest): the packaging request

    Returns:
        list[str]: one ``- ...`` note per applied option
    """
    notes: list[str] = []
    if request.remove_comments:
        notes.append("- Comments have been removed.")
    if request.remove_empty_lines:
        notes.append("- Empty lines have been removed.")
    if request.use_rule_files and request.remote_url:
        notes.append("- .gitignore rules were applied during cloning/packing.")
    elif request.use_rule_files:
        notes.append("- .gitignore rules were applied during packing.")
    if request.use_default_patterns:
        notes.append("- Default ignore patterns were applied.")
    if request.include_list:
        notes.append(f"- Included files matching: {', '.join(request.include_list)}")
    if request.ignore_list:
        notes.append(f"- Explicitly ignored files matching: {', '.join(request.ignore_list)}")
    return notes


def build_summary(request: ScanRequest, generated_at: str) -> FileSummary:
    """Build the summary section for a request.

    Args:
        request (ScanRequest): the packaging request
        generated_at (str): the timestamp to report, the only run-dependent field

    Returns:
        FileSummary: the summary texts
    """
    return FileSummary(
        intro=f"This document contains a packaged representation of the codebase from {request.source_identifier}.",
        purpose=(
            "It is intended for analysis by AI language models. The goal is to provide a comprehensive "
            "yet concise view of the project's structure and content."
        ),
        file_format=(
            f"The content below uses {request.output_format.upper()} format. Key elements include a summary, "
            "directory structure, and individual file contents."
        ),
        usage_guidelines=(
            "Review the summary and directory structure for an overview. File contents are provided under "
            "their respective paths. Consider the processing notes when interpreting the code."
        ),
        notes=tuple(summary_notes(request)),
        additional_info=f"Generated on: {generated_at}",
    )


def build_document(
    request: ScanRequest,
    scan: ScanResult,
    files: Sequence[ProcessedFile],
    directory_structure: str,
    *,
    generated_at: str | None = None,
) -> OutputDocument:
    """Assemble the OutputDocument for one run.

    Args:
        request (ScanRequest): the packaging request
        scan (ScanResult): provides the three ignore-pattern buckets
        files (Sequence[ProcessedFile]): processed files in discovery order
        directory_structure (str): the rendered tree
        generated_at (str | None): fixed timestamp; defaults to now

    Returns:
        OutputDocument: the document, sections disabled by the request set to None
    """
    stamp = generated_at or now_iso()
    return OutputDocument(
        source=request.source_identifier,
        output_format=request.output_format,
        summary=build_summary(request, stamp) if request.file_summary else None,
        directory_structure=directory_structure if request.directory_structure else None,
        default_patterns=scan.default_patterns,
        caller_patterns=scan.caller_patterns,
        rule_file_patterns=scan.rule_file_patterns,
        use_default_patterns=request.use_default_patterns,
        use_rule_files=request.use_rule_files,
        files=tuple(files),
    )


def ignore_sections(doc: OutputDocument) -> list[IgnoreSection]:
    """List the ignore-pattern buckets that contributed to the run."""
    sections: list[IgnoreSection] = []
    if doc.use_default_patterns:
        sections.append(
            IgnoreSection(
                key="default_patterns",
                title="Default Ignore Patterns",
                intro="The following default patterns were used to exclude common files and directories:",
                short_intro="Default patterns used:",
                patterns=doc.default_patterns,
            ),
        )
    if doc.caller_patterns:
        sections.append(
            IgnoreSection(
                key="input_patterns",
                title="Input Ignore Patterns",
                intro="The following patterns were provided via the ignore patterns option:",
                short_intro="Patterns from the ignore patterns option:",
                patterns=doc.caller_patterns,
            ),
        )
    if doc.use_rule_files and doc.rule_file_patterns:
        sections.append(
            IgnoreSection(
                key="gitignore_patterns",
                title=".gitignore Patterns",
                intro="The following patterns were loaded from .gitignore files found in the repository:",
                short_intro="Patterns from .gitignore files:",
                patterns=doc.rule_file_patterns,
            ),
        )
    return [s for s in sections if s.patterns]


NO_IGNORE_PATTERNS = "(No ignore patterns were applied)."


_XML_INVALID = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\ud800-\udfff\ufffe\uffff]")


def xml_safe(text: str) -> str:
    """Replace code points that XML 1.0 cannot carry with U+FFFD."""
    return _XML_INVALID.sub("\ufffd", text)


def _escape(text: str) -> str:
    return escape(xml_safe(text))


def _quoteattr(text: str) -> str:
    return quoteattr(xml_safe(text))


def _cdata(text: str) -> str:
    return "<![CDATA[" + xml_safe(text).replace("]]>", "]]]]><![CDATA[>") + "]]>"


def build_xml(doc: OutputDocument) -> str:
    """Render a document as XML; file bodies and the tree go in CDATA sections.

    Args:
        doc (OutputDocument): the document to render

    Returns:
        str: the XML text
    """
    out = io.StringIO()
    out.write('<?xml version="1.0" encoding="UTF-8"?>\n')
    out.write(f"<codebase source={_quoteattr(doc.source)}>\n")

    if doc.summary is not None:
        s = doc.summary
        out.write("  <summary>\n")
        out.write(f"    <introduction>{_escape(s.intro)}</introduction>\n")
        out.write(f"    <purpose>{_escape(s.purpose)}</purpose>\n")
        out.write(f"    <file_format>{_escape(s.file_format)}</file_format>\n")
        out.write(f"    <usage_guidelines>{_escape(s.usage_guidelines)}</usage_guidelines>\n")
        if s.notes:
            out.write("    <processing_notes>\n")
            for note in s.notes:
                out.write(f"      <note>{_escape(note)}</note>\n")
            out.write("    </processing_notes>\n")
        else:
            out.write("    <processing_notes/>\n")
        out.write(f"    <additional_info>{_escape(s.additional_info)}</additional_info>\n")
        out.write("  </summary>\n")

    if doc.directory_structure is not None:
        out.write(f"  <directory_structure>{_cdata(doc.directory_structure)}</directory_structure>\n")

    sections = ignore_sections(doc)
    if sections:
        out.write("  <ignore_patterns>\n")
        for section in sections:
            out.write(f"    <{section.key}>\n")
            out.write(f'      <patterns count="{len(section.patterns)}">\n')
            for pattern in section.patterns:
                out.write(f"        <pattern>{_escape(pattern)}</pattern>\n")
            out.write("      </patterns>\n")
            out.write(f"    </{section.key}>\n")
        out.write("  </ignore_patterns>\n")
    else:
        out.write("  <ignore_patterns/>\n")

    out.write("  <files>\n")
    for f in doc.files:
        out.write(f"    <file path={_quoteattr(f.path)}>{_cdata(f.content)}</file>\n")
    out.write("  </files>\n")
    out.write("</codebase>\n")
    return out.getvalue()


def choose_code_fence(content: str) -> str:
    """Pick a backtick fence longer than any backtick run inside ``content``."""
    longest = max((len(r) for r in re.findall(r"`+", content)), default=0)
    return "`" * max(3, longest + 1)


def _inline_code(text: str) -> str:
    if "`" not in text:
        return f"`{text}`"
    ticks = "`" * (max(len(r) for r in re.findall(r"`+", text)) + 1)
    return f"{ticks} {text} {ticks}"


def build_markdown(doc: OutputDocument) -> str:
    """Render a document as Markdown with fenced code blocks.

    Args:
        doc (OutputDocument): the document to render

    Returns:
        str: the Markdown text
    """
    out = io.StringIO()
    out.write("# Codebase Package\n\n")

    if doc.summary is not None:
        s = doc.summary
        out.write("## Summary\n\n")
        out.write(f"**Introduction:** {s.intro}\n\n")
        out.write(f"**Purpose:** {s.purpose}\n\n")
        out.write(f"**File Format:** {s.file_format}\n\n")
        out.write(f"**Usage Guidelines:** {s.usage_guidelines}\n\n")
        out.write("**Processing Notes:**\n" + ("\n".join(s.notes) or "(None)") + "\n\n")
        out.write(f"**Additional Info:** {s.additional_info}\n\n")

    if doc.directory_structure is not None:
        fence = choose_code_fence(doc.directory_structure)
        out.write("## Directory Structure\n\n")
        out.write(f"{fence}\n{doc.directory_structure}\n{fence}\n\n")

    out.write("## Ignore Patterns Used\n\n")
    sections = ignore_sections(doc)
    for section in sections:
        body = "\n".join(section.patterns)
        fence = choose_code_fence(body)
        out.write(f"**{section.title}**\n\n{section.intro}\n\n{fence}\n{body}\n{fence}\n\n")
    if not sections:
        out.write(f"{NO_IGNORE_PATTERNS}\n\n")

    out.write("## File Contents\n\n")
    for f in doc.files:
        fence = choose_code_fence(f.content)
        out.write(f"### {_inline_code(f.path)}\n\n")
        out.write(f"{fence}{f.language}\n{f.content}\n{fence}\n\n")

    return out.getvalue().rstrip() + "\n"


def build_text(doc: OutputDocument) -> str:
    """Render a document as plain text with explicit file delimiters.

    Args:
        doc (OutputDocument): the document to render

    Returns:
        str: the plain-text document
    """
    out = io.StringIO()
    out.write("CODEBASE PACKAGE\n\n")

    if doc.summary is not None:
        s = doc.summary
        out.write("--- Summary ---\n")
        out.write(f"Introduction: {s.intro}\n")
        out.write(f"Purpose: {s.purpose}\n")
        out.write(f"File Format: {s.file_format}\n")
        out.write(f"Usage Guidelines: {s.usage_guidelines}\n")
        out.write("Processing Notes:\n" + ("\n".join(s.notes) or "(None)") + "\n")
        out.write(f"Additional Info: {s.additional_info}\n\n")

    if doc.directory_structure is not None:
        out.write("--- Directory Structure ---\n")
        out.write(doc.directory_structure)
        out.write("\n\n")

    out.write("--- Ignore Patterns Used ---\n")
    sections = ignore_sections(doc)
    for section in sections:
        out.write(f"--- {section.title} ---\n{section.short_intro}\n")
        out.write("\n".join(section.patterns))
        out.write("\n\n")
    if not sections:
        out.write(f"{NO_IGNORE_PATTERNS}\n\n")

    out.write("--- File Contents ---\n")
    for f in doc.files:
        out.write(f"\n<<< FILE: {f.path} >>>\n")
        out.write(f.content)
        out.write(f"\n<<< END OF FILE: {f.path} >>>\n")

    return out.getvalue()


_BUILDERS: dict[OutputFormat, Callable[[OutputDocument], str]] = {
    OutputFormat.XML: build_xml,
    OutputFormat.MD: build_markdown,
    OutputFormat.TXT: build_text,
}


def render_document(doc: OutputDocument) -> str:
    """Render ``doc`` in its selected format.

    Args:
        doc (OutputDocument): the document to render

    Raises:
        InvalidRequestError: if the format has no serializer.

    Returns:
        str: the rendered document
    """
    builder = _BUILDERS.get(doc.output_format)
    if builder is None:
        raise InvalidRequestError(message=f"Unsupported output format: {doc.output_format}")
    return builder(doc)
