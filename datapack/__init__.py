"""
datapack - Pack Python modules into one script that imports them lazily.

Complete integration of:
- Writer: deterministic archive layout appended to a script as comments
- Reader: parse-once table of contents with positioned reads
- Resolver: meta path finder/loader serving packed modules on import
- Remap: tracebacks point at the true line inside the generated script
- Packer: locate, strip, lay out and write in one call
"""

__version__ = "0.1.0"

# ============================================================================
# Archive
# ============================================================================

from .format import FORMAT_VERSION, module_keys, resource_key
from .writer import ArchiveWriter, PackedEntry, build_archive
from .reader import ArchiveReader, LookupResult, ReaderState, TocEntry, locate_archive
from .remap import RemappedSource, absolute_line, compile_remapped, remap

# ============================================================================
# Runtime
# ============================================================================

from .resolver import DataPackResolver, ResolvedSource, install_resolver

# ============================================================================
# Packing
# ============================================================================

from .bootstrap import BootstrapRenderer
from .locator import LocatedModule, collect_modules, locate_module
from .stripper import PythonStripper
from .sink import write_output
from .packer import PackResult, datapack_modules
from .config import ConfigLoader, PackConfig

# ============================================================================
# Faults
# ============================================================================

from .faults import (
    Fault,
    FaultDomain,
    Severity,
    PackFault,
    ResourceNotFoundFault,
    DuplicateResourceNameFault,
    InvalidResourceNameFault,
    EmptyInputFault,
    TransformerFailureFault,
    ResourceEncodingFault,
    MalformedArchiveFault,
    OutputAlreadyExistsFault,
    ConfigInvalidFault,
)

__all__ = [
    "__version__",
    "FORMAT_VERSION",
    "module_keys",
    "resource_key",
    "ArchiveWriter",
    "PackedEntry",
    "build_archive",
    "ArchiveReader",
    "LookupResult",
    "ReaderState",
    "TocEntry",
    "locate_archive",
    "RemappedSource",
    "absolute_line",
    "compile_remapped",
    "remap",
    "DataPackResolver",
    "ResolvedSource",
    "install_resolver",
    "BootstrapRenderer",
    "LocatedModule",
    "collect_modules",
    "locate_module",
    "PythonStripper",
    "write_output",
    "PackResult",
    "datapack_modules",
    "ConfigLoader",
    "PackConfig",
    "Fault",
    "FaultDomain",
    "Severity",
    "PackFault",
    "ResourceNotFoundFault",
    "DuplicateResourceNameFault",
    "InvalidResourceNameFault",
    "EmptyInputFault",
    "TransformerFailureFault",
    "ResourceEncodingFault",
    "MalformedArchiveFault",
    "OutputAlreadyExistsFault",
    "ConfigInvalidFault",
]
