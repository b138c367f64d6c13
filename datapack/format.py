"""
DataPack archive format - constants and line helpers.

Single source of truth for the byte layout shared by the writer and the
reader. An archive is a run of Python comment lines, so it can trail a
script without being executed::

    # DATAPACK v1                                 <- header line
    # a/__init__.py,22,31,0;0                     <- TOC, one line per entry
    # a/b.py,68,24,1;2                               name,offset,length,order;line_offset
    #                                             <- region boundary
    ### a/__init__.py ###                         <- per-entry delimiter line
    #from .b import f                             <- stored content, each line
    #VERSION = 1                                     prefixed with the marker
    ### a/b.py ###
    #def f():
    #    return 1

TOC offsets are relative to the first byte of the data region and point
at the first stored byte of an entry (past its delimiter line). Lengths
are byte lengths of the stored, marker-prefixed content.

The first content line of entry ``k`` therefore sits at::

    archive_start_line + header_line_count
        + (order + 1) * DELIMITER_LINES + line_offset + BOUNDARY_LINES

where ``header_line_count`` counts the header line plus the TOC lines.

This module is embedded verbatim into every generated script, so it
must only depend on the standard library.
"""

from __future__ import annotations

import re
from typing import List, NamedTuple, Tuple

FORMAT_NAME = "DATAPACK"
FORMAT_VERSION = 1

HEADER_LINE = f"# {FORMAT_NAME} v{FORMAT_VERSION}\n".encode("ascii")
BOUNDARY_LINE = b"#\n"
LINE_MARKER = b"#"
TOC_PREFIX = b"# "
DELIMITER_TEMPLATE = "### {name} ###\n"

# Fixed lines the layout adds around stored content.
DELIMITER_LINES = 1
BOUNDARY_LINES = 1

TOC_FIELD_SEP = ","
META_SEP = ";"

BEGIN_CODE_MARKER = "# BEGIN DATAPACK CODE"
END_CODE_MARKER = "# END DATAPACK CODE"

# A line is everything up to and including \r\n, \r or \n; a trailing
# partial line counts as a line of its own.
_LINE_RE = re.compile(rb"[^\r\n]*(?:\r\n|\r|\n)|[^\r\n]+")


class TocRecord(NamedTuple):
    """One parsed table-of-contents line."""

    name: str
    offset: int
    length: int
    order: int
    line_offset: int


def split_lines(data: bytes) -> List[bytes]:
    """Split *data* into lines, keeping their terminators."""
    return _LINE_RE.findall(data)


def count_lines(data: bytes) -> int:
    """Number of physical lines *data* occupies."""
    return len(split_lines(data))


def ends_with_terminator(data: bytes) -> bool:
    return data.endswith((b"\n", b"\r"))


def add_markers(content: bytes) -> bytes:
    """Prefix every line of *content* with the comment marker."""
    return b"".join(LINE_MARKER + line for line in split_lines(content))


def strip_markers(stored: bytes) -> bytes:
    """Undo :func:`add_markers`."""
    out = []
    for line in split_lines(stored):
        if line.startswith(LINE_MARKER):
            line = line[len(LINE_MARKER):]
        out.append(line)
    return b"".join(out)


def delimiter_line(name: str) -> bytes:
    return DELIMITER_TEMPLATE.format(name=name).encode("utf-8")


def format_metadata(order: int, line_offset: int) -> str:
    return f"{order}{META_SEP}{line_offset}"


def parse_metadata(meta: str) -> Tuple[int, int]:
    order, line_offset = meta.split(META_SEP)
    return int(order), int(line_offset)


def format_toc_line(name: str, offset: int, length: int, order: int, line_offset: int) -> bytes:
    fields = (name, str(offset), str(length), format_metadata(order, line_offset))
    return TOC_PREFIX + TOC_FIELD_SEP.join(fields).encode("utf-8") + b"\n"


def parse_toc_line(line: bytes) -> TocRecord:
    """
    Parse one TOC line.

    Raises:
        ValueError: If the line does not follow the TOC grammar.
    """
    if not line.startswith(TOC_PREFIX):
        raise ValueError(f"TOC line does not start with {TOC_PREFIX!r}")
    body = line[len(TOC_PREFIX):].rstrip(b"\r\n").decode("utf-8")
    # Names may contain the separator, numeric fields never do.
    name, offset, length, meta = body.rsplit(TOC_FIELD_SEP, 3)
    order, line_offset = parse_metadata(meta)
    record = TocRecord(name, int(offset), int(length), order, line_offset)
    if not name or record.offset < 0 or record.length < 0 or order < 0 or line_offset < 0:
        raise ValueError("negative or empty TOC field")
    return record


def resource_key(name: str) -> str:
    """
    Normalize a module name to its TOC key.

    ``a.b`` and ``a/b.py`` both map to ``a/b.py``; ``a.b.py`` is read as
    the dotted name ``a.b``.
    """
    base = name[:-3] if name.endswith(".py") else name
    if "/" not in base:
        base = base.replace(".", "/")
    return base + ".py"


def module_keys(fullname: str) -> Tuple[str, str]:
    """TOC keys an import of *fullname* may be served from, package first."""
    base = fullname.replace(".", "/")
    return f"{base}/__init__.py", f"{base}.py"
