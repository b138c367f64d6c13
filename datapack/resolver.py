"""
Lazy Resolver - serves packed modules to the import system.

A :class:`DataPackResolver` is both the meta path finder and the loader
for one archive. It is an ordinary object owned by whoever creates it:
hand it to ``sys.meta_path`` (or any other finder list) with
:meth:`DataPackResolver.install` and take it back out with
:meth:`DataPackResolver.uninstall`.

On ``import a.b`` the resolver looks for ``a/b/__init__.py`` and then
``a/b.py`` in the archive. A miss returns ``None`` so the rest of the
finder chain gets its turn. A hit reads exactly that entry and compiles
it with remapped line numbers.

Set ``DATAPACK_DEBUG=1`` to log a hit/miss line for every lookup.

This module is embedded verbatim into every generated script, so it
must only depend on the standard library.
"""

from __future__ import annotations

import importlib.abc
import logging
import os
import sys
from dataclasses import dataclass
from importlib.machinery import ModuleSpec
from types import CodeType, ModuleType
from typing import List, Optional, Sequence, Tuple, Union

from .faults import MalformedArchiveFault
from .format import module_keys
from .reader import ArchiveReader
from .remap import RemappedSource, compile_remapped, remap

logger = logging.getLogger("datapack.resolver")

DEBUG_ENV_VAR = "DATAPACK_DEBUG"


def debug_enabled() -> bool:
    """Whether the trace toggle is switched on in the environment."""
    return os.environ.get(DEBUG_ENV_VAR, "").strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class ResolvedSource:
    """A module found in the archive, ready to compile."""

    fullname: str
    key: str
    is_package: bool
    source: RemappedSource

    @property
    def first_line(self) -> int:
        return self.source.first_line


class DataPackResolver(importlib.abc.MetaPathFinder, importlib.abc.Loader):
    """
    Meta path finder and loader backed by an :class:`ArchiveReader`.

    Args:
        reader: Reader for the packed archive.
        filename: Path reported in code objects and tracebacks. Defaults
            to the reader's backing file.
        debug: Trace lookups. ``None`` reads ``DATAPACK_DEBUG``.
    """

    def __init__(
        self,
        reader: ArchiveReader,
        filename: Optional[str] = None,
        *,
        debug: Optional[bool] = None,
    ) -> None:
        self._reader = reader
        self._filename = filename or reader.source_label
        self._debug = debug_enabled() if debug is None else debug
        self._meta_path: Optional[List[object]] = None

    @classmethod
    def for_script(
        cls,
        script: str,
        *,
        offset: int,
        debug: Optional[bool] = None,
    ) -> "DataPackResolver":
        """Resolver for the archive trailing *script* at byte *offset*."""
        script = os.path.abspath(script)
        return cls(ArchiveReader(script, offset=offset), script, debug=debug)

    @property
    def reader(self) -> ArchiveReader:
        return self._reader

    @property
    def filename(self) -> str:
        return self._filename

    def __repr__(self) -> str:
        return f"<DataPackResolver {self._filename}>"

    # ── Registration ─────────────────────────────────────────────────

    def install(
        self,
        meta_path: Optional[List[object]] = None,
        *,
        at_end: bool = False,
    ) -> "DataPackResolver":
        """
        Register with a finder chain, at the front or at the end.

        Raises:
            ImportError: If this resolver is already in the chain.
        """
        chain = sys.meta_path if meta_path is None else meta_path
        if any(finder is self for finder in chain):
            raise ImportError(f"datapack resolver for {self._filename} is already installed")
        if at_end:
            chain.append(self)
        else:
            chain.insert(0, self)
        self._meta_path = chain
        self._trace("Hook installed at the %s of the finder chain", "end" if at_end else "front")
        return self

    def uninstall(self) -> None:
        """Remove the resolver from the chain it was installed into."""
        chain = self._meta_path
        if chain is None:
            return
        for index, finder in enumerate(chain):
            if finder is self:
                del chain[index]
                break
        self._meta_path = None

    @property
    def installed(self) -> bool:
        return self._meta_path is not None

    # ── Resolution ───────────────────────────────────────────────────

    def _trace(self, message: str, *args: object) -> None:
        if self._debug:
            logger.warning("[datapacker] " + message, *args)

    @staticmethod
    def normalize(fullname: str) -> Tuple[str, str]:
        """Archive keys for *fullname*: package ``__init__`` first, then module."""
        return module_keys(fullname)

    def resolve(self, fullname: str) -> Optional[ResolvedSource]:
        """
        Look *fullname* up in the archive.

        Returns ``None`` when it is not packed.

        Raises:
            MalformedArchiveFault: If the archive cannot be read.
        """
        self._trace("Hook called with arguments: (%s)", fullname)
        for key, is_package in zip(self.normalize(fullname), (True, False)):
            found = self._reader.lookup(key)
            if found is None:
                continue
            self._trace("%s FOUND in packed modules", key)
            try:
                source = remap(found.content, self._filename, found.first_line)
            except UnicodeDecodeError as exc:
                raise MalformedArchiveFault(
                    f"entry '{key}' is not UTF-8: {exc.reason} at byte {exc.start}",
                    source=self._reader.source_label,
                ) from exc
            return ResolvedSource(
                fullname=fullname,
                key=key,
                is_package=is_package,
                source=source,
            )
        self._trace("%s NOT found in packed modules", fullname)
        return None

    def _guarded_resolve(self, fullname: str) -> Optional[ResolvedSource]:
        try:
            return self.resolve(fullname)
        except MalformedArchiveFault as fault:
            raise ImportError(
                f"DataPacker error loading {fullname}: {fault.message}", name=fullname
            ) from fault

    def _resolve_or_fail(self, fullname: str) -> ResolvedSource:
        resolved = self._guarded_resolve(fullname)
        if resolved is None:
            raise ImportError(f"No module named {fullname!r} in {self._filename}", name=fullname)
        return resolved

    def _virtual_path(self, key: str) -> str:
        return os.path.join(self._filename, *key.split("/"))

    # ── MetaPathFinder ───────────────────────────────────────────────

    def find_spec(
        self,
        fullname: str,
        path: Optional[Sequence[str]] = None,
        target: Optional[ModuleType] = None,
    ) -> Optional[ModuleSpec]:
        resolved = self._guarded_resolve(fullname)
        if resolved is None:
            return None

        spec = ModuleSpec(
            fullname,
            self,
            origin=self._virtual_path(resolved.key),
            loader_state=resolved,
            is_package=resolved.is_package,
        )
        if resolved.is_package:
            assert spec.submodule_search_locations is not None
            spec.submodule_search_locations.append(os.path.dirname(spec.origin))
        spec.has_location = True
        return spec

    # ── Loader ───────────────────────────────────────────────────────

    def create_module(self, spec: ModuleSpec) -> Optional[ModuleType]:
        return None

    def exec_module(self, module: ModuleType) -> None:
        spec = module.__spec__
        assert spec is not None, "module must have a spec"
        resolved = spec.loader_state
        if not isinstance(resolved, ResolvedSource):
            resolved = self._resolve_or_fail(spec.name)
        exec(compile_remapped(resolved.source), module.__dict__)

    def get_code(self, fullname: str) -> CodeType:
        return compile_remapped(self._resolve_or_fail(fullname).source)

    def get_source(self, fullname: str) -> str:
        return self._resolve_or_fail(fullname).source.text

    def is_package(self, fullname: str) -> bool:
        return self._resolve_or_fail(fullname).is_package

    def get_filename(self, fullname: str) -> str:
        return self._virtual_path(self._resolve_or_fail(fullname).key)


def install_resolver(
    source: Union[str, ArchiveReader],
    *,
    offset: int = 0,
    at_end: bool = False,
    meta_path: Optional[List[object]] = None,
) -> DataPackResolver:
    """Build a resolver for *source* and register it."""
    reader = source if isinstance(source, ArchiveReader) else ArchiveReader(source, offset=offset)
    return DataPackResolver(reader).install(meta_path, at_end=at_end)
