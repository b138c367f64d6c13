"""
Archive Writer - builds the datapack archive bytes.

Usage::

    archive = (
        ArchiveWriter()
        .add("a/__init__.py", "from .b import f\\n")
        .add("a/b.py", "def f():\\n    return 1\\n")
        .to_bytes()
    )

Entries are always laid out in sorted name order so the same input set
yields byte-identical archives regardless of insertion order. Layout is
computed in a single pass: every stored length is known before the data
region is concatenated, so TOC offsets never need backpatching.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Tuple, Union

from .faults import DuplicateResourceNameFault, EmptyInputFault, InvalidResourceNameFault
from .format import (
    BOUNDARY_LINE,
    HEADER_LINE,
    add_markers,
    count_lines,
    delimiter_line,
    ends_with_terminator,
    format_metadata,
    format_toc_line,
)

logger = logging.getLogger("datapack.writer")

Content = Union[bytes, str]

DUPLICATE_POLICIES = ("error", "replace")


@dataclass(frozen=True)
class PackedEntry:
    """Computed layout of one entry inside the archive."""

    name: str
    order: int
    line_offset: int
    line_count: int
    offset: int
    length: int

    @property
    def metadata(self) -> str:
        """The ``order;line_offset`` string stored in the TOC."""
        return format_metadata(self.order, self.line_offset)

    def to_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "order": self.order,
            "line_offset": self.line_offset,
            "line_count": self.line_count,
            "offset": self.offset,
            "length": self.length,
        }


def validate_name(name: str) -> str:
    """
    Check that *name* can be stored as a TOC key.

    Raises:
        InvalidResourceNameFault: If the name is empty, absolute, or
            contains a line terminator.
    """
    if not isinstance(name, str) or not name:
        raise InvalidResourceNameFault(str(name), "name must be a non-empty string")
    if "\n" in name or "\r" in name:
        raise InvalidResourceNameFault(name, "name must not contain a line terminator")
    if name.startswith("/"):
        raise InvalidResourceNameFault(name, "name must be relative")
    return name


class ArchiveWriter:
    """
    Collects ``(name, content)`` pairs and serializes them into an archive.

    The writer owns entry content until serialization; afterwards entries
    only exist as byte ranges described by the table of contents.

    Args:
        on_duplicate: ``"error"`` raises :class:`DuplicateResourceNameFault`
            when a name is added twice, ``"replace"`` keeps the last content.
    """

    __slots__ = ("_entries", "_on_duplicate")

    def __init__(self, *, on_duplicate: str = "error") -> None:
        if on_duplicate not in DUPLICATE_POLICIES:
            raise ValueError(
                f"on_duplicate must be one of {DUPLICATE_POLICIES}, got {on_duplicate!r}"
            )
        self._entries: Dict[str, bytes] = {}
        self._on_duplicate = on_duplicate

    # ── Input ────────────────────────────────────────────────────────

    def add(self, name: str, content: Content) -> "ArchiveWriter":
        """Add one resource. Returns ``self`` for chaining."""
        validate_name(name)
        if isinstance(content, str):
            content = content.encode("utf-8")
        if name in self._entries:
            if self._on_duplicate == "error":
                raise DuplicateResourceNameFault(name)
            logger.debug("Replacing duplicate resource %s", name)
        self._entries[name] = bytes(content)
        return self

    def add_many(
        self,
        resources: Union[Mapping[str, Content], Iterable[Tuple[str, Content]]],
    ) -> "ArchiveWriter":
        """Add several resources from a mapping or an iterable of pairs."""
        items = resources.items() if isinstance(resources, Mapping) else resources
        for name, content in items:
            self.add(name, content)
        return self

    # ── Introspection ────────────────────────────────────────────────

    def names(self) -> List[str]:
        """Entry names in archive order."""
        return sorted(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    # ── Layout ───────────────────────────────────────────────────────

    def _stored(self) -> List[Tuple[str, bytes]]:
        return [(name, add_markers(self._entries[name])) for name in sorted(self._entries)]

    @staticmethod
    def _compute_layout(stored: List[Tuple[str, bytes]]) -> List[PackedEntry]:
        layout: List[PackedEntry] = []
        position = 0
        line_offset = 0
        for order, (name, data) in enumerate(stored):
            position += len(delimiter_line(name))
            lines = count_lines(data)
            layout.append(
                PackedEntry(
                    name=name,
                    order=order,
                    line_offset=line_offset,
                    line_count=lines,
                    offset=position,
                    length=len(data),
                )
            )
            position += len(data)
            if data and not ends_with_terminator(data):
                position += 1  # padding newline
            line_offset += lines
        return layout

    def layout(self) -> List[PackedEntry]:
        """Compute ``order``, ``line_offset`` and byte ranges of every entry."""
        return self._compute_layout(self._stored())

    # ── Serialization ────────────────────────────────────────────────

    def to_bytes(self, *, require_entries: bool = True) -> bytes:
        """
        Serialize the archive.

        Raises:
            EmptyInputFault: If no entry was added and *require_entries*.
        """
        if require_entries and not self._entries:
            raise EmptyInputFault()

        stored = self._stored()
        layout = self._compute_layout(stored)

        parts: List[bytes] = [HEADER_LINE]
        for entry in layout:
            parts.append(
                format_toc_line(entry.name, entry.offset, entry.length, entry.order, entry.line_offset)
            )
        parts.append(BOUNDARY_LINE)

        for entry, (_name, data) in zip(layout, stored):
            parts.append(delimiter_line(entry.name))
            parts.append(data)
            if data and not ends_with_terminator(data):
                parts.append(b"\n")

        archive = b"".join(parts)
        logger.debug("Serialized %d resource(s) into %d archive bytes", len(layout), len(archive))
        return archive


def build_archive(
    resources: Union[Mapping[str, Content], Iterable[Tuple[str, Content]]],
    *,
    on_duplicate: str = "error",
) -> Tuple[bytes, List[PackedEntry]]:
    """Serialize *resources* and return ``(archive_bytes, layout)``."""
    writer = ArchiveWriter(on_duplicate=on_duplicate).add_many(resources)
    return writer.to_bytes(), writer.layout()
