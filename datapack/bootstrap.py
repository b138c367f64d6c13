"""
Bootstrap renderer - the code that precedes the archive in a generated
script.

The bootstrap carries its own copy of the runtime modules (faults,
format, remap, reader, resolver) so a generated script runs without
``datapack`` being installed. At startup it executes those sources into
a private ``_datapack_runtime`` package, builds a resolver for the
script's own archive and registers it with ``sys.meta_path``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from importlib import resources
from typing import List, Optional, Tuple

from jinja2 import Environment, StrictUndefined

from .format import BEGIN_CODE_MARKER, END_CODE_MARKER

logger = logging.getLogger("datapack.bootstrap")

RUNTIME_PACKAGE = "_datapack_runtime"

# Execution order: every module only imports modules listed before it.
RUNTIME_MODULES: Tuple[str, ...] = ("faults", "format", "remap", "reader", "resolver")

BOOTSTRAP_TEMPLATE = '''\
{{ begin_marker }}
def _datapack_install():
    import sys
    import types

    package = sys.modules.get("{{ package }}")
    if package is None:
        package = types.ModuleType("{{ package }}")
        package.__path__ = []
        package.__package__ = "{{ package }}"
        sys.modules["{{ package }}"] = package
    sources = {
{%- for module in modules %}
        {{ module.name|pyrepr }}: {{ module.source|pyrepr }},
{%- endfor %}
    }
    for name in {{ order|pyrepr }}:
        fullname = "{{ package }}." + name
        if fullname in sys.modules:
            continue
        module = types.ModuleType(fullname)
        module.__package__ = "{{ package }}"
        sys.modules[fullname] = module
        exec(compile(sources[name], "<datapack runtime " + name + ">", "exec"), module.__dict__)
        setattr(package, name, module)
    resolver = sys.modules["{{ package }}.resolver"].DataPackResolver
    return resolver.for_script(__file__, offset={{ archive_offset }}).install(at_end={{ at_end }})


_datapack_resolver = _datapack_install()
del _datapack_install
{{ end_marker }}
'''


@dataclass(frozen=True)
class RuntimeModule:
    """Source of one runtime module carried by the bootstrap."""

    name: str
    source: str


def _environment() -> Environment:
    env = Environment(
        autoescape=False,
        keep_trailing_newline=True,
        undefined=StrictUndefined,
    )
    env.filters["pyrepr"] = repr
    return env


def runtime_sources() -> List[RuntimeModule]:
    """Read the runtime module sources shipped with this package."""
    package = resources.files(__package__)
    return [
        RuntimeModule(name, package.joinpath(f"{name}.py").read_text(encoding="utf-8"))
        for name in RUNTIME_MODULES
    ]


class BootstrapRenderer:
    """
    Renders the bootstrap block for a given archive position.

    The archive offset appears inside the bootstrap itself, so callers
    use :meth:`render_prefix` which iterates until the rendered text and
    the offset it names agree.
    """

    __slots__ = ("_template", "_modules", "_at_end")

    def __init__(self, *, at_end: bool = False, modules: Optional[List[RuntimeModule]] = None) -> None:
        self._template = _environment().from_string(BOOTSTRAP_TEMPLATE)
        self._modules = modules if modules is not None else runtime_sources()
        self._at_end = at_end

    def render(self, archive_offset: int) -> str:
        return self._template.render(
            begin_marker=BEGIN_CODE_MARKER,
            end_marker=END_CODE_MARKER,
            package=RUNTIME_PACKAGE,
            modules=self._modules,
            order=[m.name for m in self._modules],
            archive_offset=archive_offset,
            at_end=self._at_end,
        )

    def render_prefix(
        self,
        *,
        preamble: Optional[str] = None,
        postamble: Optional[str] = None,
    ) -> Tuple[str, int]:
        """
        Render ``preamble + bootstrap + postamble``.

        Returns:
            ``(prefix_text, archive_offset)`` where the offset is the UTF-8
            byte length of the prefix, i.e. where the archive will start.
        """
        offset = 0
        for _ in range(8):
            prefix = join_sections(preamble, self.render(offset), postamble)
            size = len(prefix.encode("utf-8"))
            if size == offset:
                logger.debug("Bootstrap rendered, archive starts at byte %d", offset)
                return prefix, offset
            offset = size
        raise RuntimeError("bootstrap offset did not converge")


def join_sections(*sections: Optional[str]) -> str:
    """Concatenate the non-empty sections, each ending with a newline."""
    parts = []
    for text in sections:
        if not text:
            continue
        parts.append(text if text.endswith("\n") else text + "\n")
    return "".join(parts)
