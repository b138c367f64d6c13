"""
Line-number remapping for packed modules.

A packed module's first line does not sit on line 1 of the generated
script. The remapper computes where it does sit and compiles the module
so every line number in its code objects (and therefore in tracebacks,
warnings and ``inspect`` output) is the physical line of the generated
script that holds the statement.

This module is embedded verbatim into every generated script, so it
must only depend on the standard library.
"""

from __future__ import annotations

import ast
from dataclasses import dataclass
from types import CodeType
from typing import Union

from .format import BOUNDARY_LINES, DELIMITER_LINES


def absolute_line(
    archive_start_line: int,
    header_line_count: int,
    order: int,
    line_offset: int,
) -> int:
    """
    Absolute 1-based line at which an entry's content begins.

    Args:
        archive_start_line: Line of the archive header inside the script.
        header_line_count: Header line plus TOC lines.
        order: Rank of the entry in archive order.
        line_offset: Content lines of all preceding entries.
    """
    return (
        archive_start_line
        + header_line_count
        + (order + 1) * DELIMITER_LINES
        + line_offset
        + BOUNDARY_LINES
    )


@dataclass(frozen=True)
class RemappedSource:
    """Module source annotated with the line it starts on."""

    text: str
    filename: str
    first_line: int

    @property
    def line_shift(self) -> int:
        return self.first_line - 1


def remap(content: Union[bytes, str], filename: str, first_line: int) -> RemappedSource:
    """
    Annotate *content* with its line origin.

    Bytes are decoded as UTF-8, the encoding of the script that carries
    them; a coding cookie inside packed content has no effect there. A
    leading byte order mark is dropped.
    """
    if first_line < 1:
        raise ValueError("first_line is 1-based")
    if isinstance(content, bytes):
        text = content.decode("utf-8-sig")
    else:
        text = content
    return RemappedSource(text=text, filename=filename, first_line=first_line)


def compile_remapped(source: RemappedSource) -> CodeType:
    """
    Compile *source* with line numbers shifted to its true position.

    Syntax errors report the shifted line as well.
    """
    try:
        tree = ast.parse(source.text, source.filename, "exec")
    except SyntaxError as exc:
        if exc.lineno is not None:
            exc.lineno += source.line_shift
        if getattr(exc, "end_lineno", None) is not None:
            exc.end_lineno += source.line_shift
        raise
    if source.line_shift:
        ast.increment_lineno(tree, source.line_shift)
    return compile(tree, source.filename, "exec", dont_inherit=True)
