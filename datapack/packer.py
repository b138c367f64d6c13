"""
Packer - turns module sources into a self-contained script.

``datapack_modules`` is the one-call entry point::

    result = datapack_modules(module_names=["mypkg.util"], output="app.py")

Steps: collect sources (from the search path or from ``module_srcs``),
optionally strip them, lay out the archive, render the bootstrap, join
``preamble + bootstrap + postamble + archive`` and either return the
text or hand it to the output sink. Any fault aborts the whole run
before anything is written.
"""

from __future__ import annotations

import codecs
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from .bootstrap import BootstrapRenderer
from .faults import (
    DuplicateResourceNameFault,
    EmptyInputFault,
    InvalidResourceNameFault,
    ResourceEncodingFault,
)
from .format import resource_key
from .locator import collect_modules, module_name
from .sink import write_output
from .stripper import PythonStripper, Transformer, apply_transformer
from .writer import ArchiveWriter, PackedEntry, validate_name

logger = logging.getLogger("datapack.packer")

Content = Union[bytes, str]


@dataclass
class PackResult:
    """Outcome of a packing run."""

    status: int
    message: str
    content: Optional[str] = None
    output: Optional[Path] = None
    entries: List[PackedEntry] = field(default_factory=list)
    archive_offset: int = 0
    saved_bytes: Dict[str, int] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == 200

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "message": self.message,
            "output": str(self.output) if self.output else None,
            "archive_offset": self.archive_offset,
            "entries": [e.to_dict() for e in self.entries],
            "saved_bytes": dict(self.saved_bytes),
        }


def _collect_sources(
    module_names: Optional[Iterable[str]],
    module_srcs: Optional[Mapping[str, Content]],
    search_path: Optional[Sequence[str]],
    include_parents: bool,
) -> Dict[str, bytes]:
    if (module_names is None) == (module_srcs is None):
        raise ValueError("pass exactly one of module_names or module_srcs")

    sources: Dict[str, bytes] = {}
    if module_names is not None:
        for key, located in collect_modules(
            module_names, search_path, include_parents=include_parents
        ).items():
            _check_module_name(located.name, key)
            sources[key] = _drop_bom(located.read())
        return sources

    for name, content in module_srcs.items():
        validate_name(name)
        key = resource_key(name)
        _check_module_name(name, key)
        if key in sources:
            raise DuplicateResourceNameFault(key, metadata={"given": name})
        data = content.encode("utf-8") if isinstance(content, str) else bytes(content)
        sources[key] = _drop_bom(data)
    return sources


def _check_module_name(name: str, key: str) -> None:
    if not all(part.isidentifier() for part in module_name(key).split(".")):
        raise InvalidResourceNameFault(name, "not an importable module name")


def _drop_bom(content: bytes) -> bytes:
    """Remove a leading UTF-8 byte order mark."""
    if content.startswith(codecs.BOM_UTF8):
        return content[len(codecs.BOM_UTF8):]
    return content


def _check_encoding(sources: Mapping[str, bytes]) -> None:
    for name, content in sources.items():
        try:
            content.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ResourceEncodingFault(name, f"{exc.reason} at byte {exc.start}") from exc


def datapack_modules(
    *,
    module_names: Optional[Iterable[str]] = None,
    module_srcs: Optional[Mapping[str, Content]] = None,
    preamble: Optional[str] = None,
    postamble: Optional[str] = None,
    put_hook_at_the_end: bool = False,
    output: Optional[Union[str, Path]] = None,
    overwrite: bool = False,
    stripper: bool = False,
    stripper_maintain_linum: bool = False,
    stripper_ws: bool = True,
    stripper_comment: bool = True,
    stripper_doc: bool = True,
    stripper_log: bool = False,
    transformer: Optional[Transformer] = None,
    search_path: Optional[Sequence[str]] = None,
    include_parents: bool = True,
) -> PackResult:
    """
    Pack modules into a script that imports them lazily.

    Args:
        module_names: Modules to locate on *search_path* (``a.b`` or
            ``a/b.py``). Repeated names are packed once.
        module_srcs: ``{name: source}`` to pack as given.
        preamble: Text placed before the bootstrap, e.g. a shebang.
        postamble: Text placed after the bootstrap, e.g. the main program.
        put_hook_at_the_end: Append the resolver to ``sys.meta_path``
            instead of prepending it, so installed modules win.
        output: Write the script here instead of returning it.
        overwrite: Replace *output* if it already exists.
        stripper: Strip sources with :class:`PythonStripper`.
        transformer: Custom ``(name, bytes) -> bytes`` transformer,
            applied instead of the stripper.
        search_path: Directories for *module_names*, ``sys.path`` by default.
        include_parents: Also pack the ``__init__.py`` of parent packages.

    Returns:
        A :class:`PackResult` with status ``200``.

    Raises:
        ValueError: If both or neither of *module_names* and
            *module_srcs* are given.
        Fault: Any pack or I/O fault; nothing is written in that case.
    """
    sources = _collect_sources(module_names, module_srcs, search_path, include_parents)
    if not sources:
        raise EmptyInputFault()
    _check_encoding(sources)

    if transformer is None and stripper:
        transformer = PythonStripper(
            maintain_linum=stripper_maintain_linum,
            strip_ws=stripper_ws,
            strip_comment=stripper_comment,
            strip_doc=stripper_doc,
            strip_log=stripper_log,
        )
    saved: Dict[str, int] = {}
    if transformer is not None:
        sources, saved = apply_transformer(transformer, sources)
        _check_encoding(sources)

    writer = ArchiveWriter().add_many(sources)
    archive = writer.to_bytes()
    layout = writer.layout()

    renderer = BootstrapRenderer(at_end=put_hook_at_the_end)
    prefix, archive_offset = renderer.render_prefix(preamble=preamble, postamble=postamble)
    content = prefix + archive.decode("utf-8")
    logger.info(
        "Packed %d module(s), archive starts at byte %d", len(layout), archive_offset
    )

    if output is not None:
        path = write_output(output, content, overwrite=overwrite)
        return PackResult(
            status=200,
            message=f"Written to {path}",
            output=path,
            entries=layout,
            archive_offset=archive_offset,
            saved_bytes=saved,
        )
    return PackResult(
        status=200,
        message="OK",
        content=content,
        entries=layout,
        archive_offset=archive_offset,
        saved_bytes=saved,
    )
