"""
Resource locator - finds module source files on a search path.

Lookup is a plain filesystem walk over the search path (``sys.path`` by
default). Nothing is imported, so locating ``a.b`` never executes
``a/__init__.py``.
"""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

from .faults import ResourceNotFoundFault
from .format import resource_key

logger = logging.getLogger("datapack.locator")


@dataclass(frozen=True)
class LocatedModule:
    """A module source file found on the search path."""

    name: str
    key: str
    path: str

    @property
    def is_package(self) -> bool:
        return self.key.endswith("/__init__.py")

    def read(self) -> bytes:
        with open(self.path, "rb") as fh:
            return fh.read()


def module_name(name: str) -> str:
    """Dotted module name for a dotted or slash-form *name*."""
    key = resource_key(name)
    base = key[: -len(".py")]
    if base.endswith("/__init__"):
        base = base[: -len("/__init__")]
    return base.replace("/", ".")


def _candidates(dotted: str) -> List[str]:
    base = dotted.replace(".", "/")
    return [f"{base}/__init__.py", f"{base}.py"]


def locate_module(name: str, search_path: Optional[Sequence[str]] = None) -> LocatedModule:
    """
    Find the source file of module *name*.

    Args:
        name: ``a.b``, ``a/b.py`` or ``a/b/__init__.py``.
        search_path: Directories to search, ``sys.path`` when omitted.

    Raises:
        ResourceNotFoundFault: If no directory holds the module.
    """
    dotted = module_name(name)
    dirs = list(sys.path if search_path is None else search_path)
    for directory in dirs:
        directory = directory or os.curdir
        for key in _candidates(dotted):
            path = os.path.join(directory, *key.split("/"))
            if os.path.isfile(path):
                logger.debug("Located %s at %s", dotted, path)
                return LocatedModule(name=dotted, key=key, path=path)
    raise ResourceNotFoundFault(name, metadata={"search_path": dirs})


def parent_packages(dotted: str) -> List[str]:
    """``a.b.c`` -> ``["a", "a.b"]``."""
    parts = dotted.split(".")
    return [".".join(parts[:i]) for i in range(1, len(parts))]


def collect_modules(
    names: Iterable[str],
    search_path: Optional[Sequence[str]] = None,
    *,
    include_parents: bool = True,
) -> Dict[str, LocatedModule]:
    """
    Locate every module in *names*, keyed by archive name.

    Names repeated in the input are located once. With *include_parents*
    the ``__init__.py`` of each enclosing package is added as well; a
    namespace package without one is simply skipped.
    """
    found: Dict[str, LocatedModule] = {}
    for name in names:
        located = locate_module(name, search_path)
        if located.key in found:
            logger.debug("Skipping repeated module %s", name)
            continue
        found[located.key] = located
        if not include_parents:
            continue
        for parent in parent_packages(located.name):
            key = f"{parent.replace('.', '/')}/__init__.py"
            if key in found:
                continue
            try:
                package = locate_module(key, search_path)
            except ResourceNotFoundFault:
                logger.debug("No __init__.py for parent package %s", parent)
                continue
            if not package.is_package:
                continue
            found[package.key] = package
    return dict(sorted(found.items()))
