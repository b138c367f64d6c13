"""
Archive Reader - parse-once table of contents with positioned reads.

The reader sits on top of a byte source holding an archive (the archive
may start anywhere inside the source; generated scripts carry it after
their bootstrap code) and offers:

- ``lookup``      - decoded content + positional metadata, or ``None``
- ``read_raw``    - the exact stored byte range of an entry
- ``entries``     - parsed TOC records in archive order
- ``first_line``  - absolute line of an entry's first content line

The TOC is parsed on first use and cached for the reader's lifetime.
Parsing is a small state machine guarded by a lock so concurrent first
callers never parse twice or observe a half-built dictionary.

This module is embedded verbatim into every generated script, so it
must only depend on the standard library.
"""

from __future__ import annotations

import io
import os
import re
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import BinaryIO, Dict, Iterator, List, Optional, Union

from .faults import MalformedArchiveFault
from .format import (
    BOUNDARY_LINE,
    END_CODE_MARKER,
    HEADER_LINE,
    TOC_PREFIX,
    count_lines,
    ends_with_terminator,
    parse_toc_line,
    strip_markers,
)
from .remap import absolute_line

Source = Union[bytes, bytearray, memoryview, str, "os.PathLike[str]", BinaryIO]

# The resolver call rendered at the end of a bootstrap block.
_BOOTSTRAP_OFFSET_RE = re.compile(rb"\.for_script\(__file__, offset=(\d+)\)")


class ReaderState(str, Enum):
    """Lifecycle of the lazily parsed table of contents."""

    UNPARSED = "unparsed"
    PARSING = "parsing"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class TocEntry:
    """One resource as described by the table of contents."""

    name: str
    offset: int
    length: int
    order: int
    line_offset: int
    first_line: int

    def to_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "offset": self.offset,
            "length": self.length,
            "order": self.order,
            "line_offset": self.line_offset,
            "first_line": self.first_line,
        }


@dataclass(frozen=True)
class LookupResult:
    """A resource read back from the archive."""

    name: str
    content: bytes
    order: int
    line_offset: int
    first_line: int

    @property
    def text(self) -> str:
        return self.content.decode("utf-8")


def locate_archive(data: bytes) -> int:
    """
    Find the byte offset of the archive inside a generated script.

    A generated script names its archive offset in the bootstrap, and
    that offset wins when it points at a header line. Otherwise the
    archive is the first header line that follows the bootstrap's end
    marker (or the very start of *data* for a bare archive).

    Raises:
        MalformedArchiveFault: If no archive header is present.
    """
    if data.startswith(HEADER_LINE):
        return 0
    start = 0
    end_marker = ("\n" + END_CODE_MARKER + "\n").encode("ascii")
    marker_at = data.find(end_marker)
    if marker_at >= 0:
        rendered = list(_BOOTSTRAP_OFFSET_RE.finditer(data, 0, marker_at))
        if rendered:
            offset = int(rendered[-1].group(1))
            if data.startswith(HEADER_LINE, offset):
                return offset
        start = marker_at + 1
    position = data.find(b"\n" + HEADER_LINE, start)
    if position < 0:
        raise MalformedArchiveFault("no datapack archive header found")
    return position + 1


class ArchiveReader:
    """
    Random-access reader for a datapack archive.

    Args:
        source: Archive bytes, a path to a file containing the archive,
            or a seekable binary file object.
        offset: Absolute byte position of the archive inside *source*.
    """

    __slots__ = (
        "_source",
        "_offset",
        "_label",
        "_lock",
        "_io_lock",
        "_state",
        "_error",
        "_toc",
        "_archive_start_line",
        "_header_line_count",
        "_data_start",
    )

    def __init__(self, source: Source, *, offset: int = 0) -> None:
        if offset < 0:
            raise ValueError("archive offset must not be negative")
        if isinstance(source, (bytearray, memoryview)):
            source = bytes(source)
        if isinstance(source, (str, os.PathLike)):
            source = os.fspath(source)
            label = source
        elif isinstance(source, bytes):
            label = "<bytes>"
        else:
            label = getattr(source, "name", None) or "<stream>"
        self._source = source
        self._offset = offset
        self._label = str(label)
        self._lock = threading.Lock()
        self._io_lock = threading.Lock()
        self._state = ReaderState.UNPARSED
        self._error: Optional[MalformedArchiveFault] = None
        self._toc: Dict[str, TocEntry] = {}
        self._archive_start_line = 0
        self._header_line_count = 0
        self._data_start = 0

    @classmethod
    def from_script(cls, path: Union[str, "os.PathLike[str]"]) -> "ArchiveReader":
        """Open the archive trailing a generated script."""
        path = os.fspath(path)
        with open(path, "rb") as fh:
            data = fh.read()
        try:
            offset = locate_archive(data)
        except MalformedArchiveFault as fault:
            raise MalformedArchiveFault(fault.reason, source=path) from None
        return cls(path, offset=offset)

    # ── Properties ───────────────────────────────────────────────────

    @property
    def source_label(self) -> str:
        """Path of the backing file, or a placeholder for in-memory sources."""
        return self._label

    @property
    def state(self) -> ReaderState:
        return self._state

    @property
    def offset(self) -> int:
        return self._offset

    @property
    def archive_start_line(self) -> int:
        """1-based line of the header line inside the whole source."""
        self._ensure_parsed()
        return self._archive_start_line

    @property
    def header_line_count(self) -> int:
        """Lines taken by the header line and the TOC."""
        self._ensure_parsed()
        return self._header_line_count

    @property
    def data_start(self) -> int:
        """Absolute byte position of the data region."""
        self._ensure_parsed()
        return self._data_start

    # ── I/O ──────────────────────────────────────────────────────────

    @contextmanager
    def _open(self) -> Iterator[BinaryIO]:
        if isinstance(self._source, bytes):
            yield io.BytesIO(self._source)
        elif isinstance(self._source, str):
            with open(self._source, "rb") as fh:
                yield fh
        else:
            with self._io_lock:
                yield self._source

    def _read_at(self, position: int, length: int) -> bytes:
        if isinstance(self._source, bytes):
            return self._source[position:position + length]
        with self._open() as fh:
            fh.seek(position)
            return fh.read(length)

    # ── Parsing ──────────────────────────────────────────────────────

    def _fail(self, reason: str) -> MalformedArchiveFault:
        return MalformedArchiveFault(reason, source=self._label)

    def _ensure_parsed(self) -> Dict[str, TocEntry]:
        if self._state is ReaderState.READY:
            return self._toc
        with self._lock:
            if self._state is ReaderState.READY:
                return self._toc
            if self._state is ReaderState.FAILED:
                assert self._error is not None
                raise self._error
            self._state = ReaderState.PARSING
            try:
                toc = self._parse()
            except MalformedArchiveFault as fault:
                self._error = fault
                self._state = ReaderState.FAILED
                raise
            except OSError as exc:
                self._error = self._fail(f"cannot read archive: {exc}")
                self._state = ReaderState.FAILED
                raise self._error from exc
            self._toc = toc
            self._state = ReaderState.READY
            return toc

    def _parse(self) -> Dict[str, TocEntry]:
        with self._open() as fh:
            fh.seek(0, io.SEEK_END)
            size = fh.tell()
            if self._offset > size:
                raise self._fail("archive offset lies beyond the end of the source")

            fh.seek(0)
            prefix = fh.read(self._offset)
            if prefix and not ends_with_terminator(prefix):
                raise self._fail("archive does not start at the beginning of a line")
            archive_start_line = count_lines(prefix) + 1

            header = fh.readline()
            if header != HEADER_LINE:
                if header.startswith(HEADER_LINE.split(b" v")[0] + b" v"):
                    raise self._fail(f"unsupported format version {header.strip()!r}")
                raise self._fail("missing datapack header line")

            records = []
            while True:
                line = fh.readline()
                if not line:
                    raise self._fail("table of contents is not terminated")
                if line == BOUNDARY_LINE:
                    break
                if not line.startswith(TOC_PREFIX):
                    raise self._fail(f"unexpected line in table of contents: {line[:60]!r}")
                try:
                    records.append(parse_toc_line(line))
                except ValueError as exc:
                    raise self._fail(
                        f"bad table of contents line {len(records) + 2}: {exc}"
                    ) from exc
            data_start = fh.tell()

        header_line_count = 1 + len(records)
        data_size = size - data_start
        toc: Dict[str, TocEntry] = {}
        previous_end = 0
        for expected_order, record in enumerate(sorted(records, key=lambda r: r.order)):
            if record.name in toc:
                raise self._fail(f"duplicate table of contents entry '{record.name}'")
            if record.order != expected_order:
                raise self._fail(f"entry '{record.name}' has out-of-sequence order {record.order}")
            if record.offset < previous_end:
                raise self._fail(f"entry '{record.name}' overlaps its predecessor")
            if record.offset + record.length > data_size:
                raise self._fail(f"entry '{record.name}' extends past the end of the archive")
            previous_end = record.offset + record.length
            toc[record.name] = TocEntry(
                name=record.name,
                offset=record.offset,
                length=record.length,
                order=record.order,
                line_offset=record.line_offset,
                first_line=absolute_line(
                    archive_start_line, header_line_count, record.order, record.line_offset
                ),
            )

        self._archive_start_line = archive_start_line
        self._header_line_count = header_line_count
        self._data_start = data_start
        return toc

    # ── Lookup ───────────────────────────────────────────────────────

    def entry(self, name: str) -> Optional[TocEntry]:
        """TOC record for *name*, or ``None``."""
        return self._ensure_parsed().get(name)

    def entries(self) -> List[TocEntry]:
        """All TOC records in archive order."""
        return sorted(self._ensure_parsed().values(), key=lambda e: e.order)

    def names(self) -> List[str]:
        return [e.name for e in self.entries()]

    def read_raw(self, name: str) -> Optional[bytes]:
        """The stored (marker-prefixed) bytes of *name*, or ``None``."""
        entry = self.entry(name)
        if entry is None:
            return None
        raw = self._read_at(self._data_start + entry.offset, entry.length)
        if len(raw) != entry.length:
            raise self._fail(f"short read for '{name}': {len(raw)} of {entry.length} bytes")
        return raw

    def lookup(self, name: str) -> Optional[LookupResult]:
        """
        Read one resource.

        Returns ``None`` when *name* is not packed: that is a normal
        negative answer, not an error.
        """
        entry = self.entry(name)
        if entry is None:
            return None
        raw = self.read_raw(name)
        assert raw is not None
        return LookupResult(
            name=name,
            content=strip_markers(raw),
            order=entry.order,
            line_offset=entry.line_offset,
            first_line=entry.first_line,
        )

    def first_line(self, name: str) -> Optional[int]:
        entry = self.entry(name)
        return entry.first_line if entry else None

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name in self._ensure_parsed()

    def __len__(self) -> int:
        return len(self._ensure_parsed())

    def __iter__(self) -> Iterator[str]:
        return iter(self.names())

    def __repr__(self) -> str:
        return f"<ArchiveReader {self._label} offset={self._offset} state={self._state.value}>"
