"""
DataPack faults - structured fault types.

Every failure raised by the packer or the archive reader is a ``Fault``:
a typed exception carrying a stable machine-readable ``code``, a
human-readable ``message``, a ``FaultDomain`` and free-form ``metadata``.

This module is embedded verbatim into every generated script, so it
must only depend on the standard library.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional


class Severity(str, Enum):
    """Fault severity levels."""
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    FATAL = "fatal"


class FaultDomain:
    """
    Fault domains (taxonomy).

    Identifies the functional area where a fault occurred.
    """

    def __init__(self, name: str, description: str = ""):
        self.name = name
        self.value = name
        self.description = description

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"FaultDomain(name='{self.name}')"

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, FaultDomain):
            return self.name == other.name
        return str(self) == str(other)

    def __hash__(self) -> int:
        return hash(self.name)


FaultDomain.PACK = FaultDomain("pack", "Archive construction errors")
FaultDomain.ARCHIVE = FaultDomain("archive", "Archive reading errors")
FaultDomain.IO = FaultDomain("io", "I/O operations")
FaultDomain.CONFIG = FaultDomain("config", "Configuration errors")


DOMAIN_DEFAULTS = {
    FaultDomain.PACK: Severity.FATAL,
    FaultDomain.ARCHIVE: Severity.ERROR,
    FaultDomain.IO: Severity.ERROR,
    FaultDomain.CONFIG: Severity.FATAL,
}


class Fault(Exception):
    """
    Base fault class.

    Attributes:
        code: Stable machine-readable identifier (e.g. "MALFORMED_ARCHIVE")
        message: Human-readable summary
        domain: Fault domain
        severity: Fault severity
        metadata: Additional context data (resource name, path, ...)
    """

    def __init__(
        self,
        code: str | None = None,
        message: str | None = None,
        *,
        domain: FaultDomain | None = None,
        severity: Optional[Severity] = None,
        metadata: Optional[dict[str, Any]] = None,
    ):
        self.code = code if code is not None else getattr(self, "code", None)
        self.message = message if message is not None else getattr(self, "message", None)
        self.domain = domain if domain is not None else getattr(self, "domain", None)

        if self.code is None or self.message is None or self.domain is None:
            raise TypeError(f"{self.__class__.__name__} missing required code, message, or domain")

        super().__init__(self.message)

        self.severity = severity or DOMAIN_DEFAULTS.get(self.domain, Severity.ERROR)
        self.metadata = metadata or {}

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(code={self.code!r}, domain={self.domain.value}, "
            f"severity={self.severity.value})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize fault to a dictionary suitable for logging / JSON output."""
        return {
            "code": self.code,
            "message": self.message,
            "domain": self.domain.value,
            "severity": self.severity.value,
            "metadata": self.metadata,
        }


# ============================================================================
# PACK Faults
# ============================================================================

class PackFault(Fault):
    """Base class for faults raised while building an archive."""

    def __init__(self, code: str, message: str, *, metadata: Optional[dict[str, Any]] = None):
        super().__init__(
            code=code,
            message=message,
            domain=FaultDomain.PACK,
            metadata=metadata,
        )


class ResourceNotFoundFault(PackFault):
    """A requested module could not be located on the search path."""

    def __init__(self, name: str, **kwargs):
        super().__init__(
            code="RESOURCE_NOT_FOUND",
            message=f"Can't find module '{name}'",
            metadata={"name": name, **kwargs.get("metadata", {})},
        )
        self.name = name


class DuplicateResourceNameFault(PackFault):
    """The same resource name was added twice."""

    def __init__(self, name: str, **kwargs):
        super().__init__(
            code="DUPLICATE_RESOURCE_NAME",
            message=f"Resource '{name}' was added more than once",
            metadata={"name": name, **kwargs.get("metadata", {})},
        )
        self.name = name


class InvalidResourceNameFault(PackFault):
    """A resource name cannot be stored in the table of contents."""

    def __init__(self, name: str, reason: str, **kwargs):
        super().__init__(
            code="INVALID_RESOURCE_NAME",
            message=f"Invalid resource name {name!r}: {reason}",
            metadata={"name": name, "reason": reason, **kwargs.get("metadata", {})},
        )
        self.name = name


class EmptyInputFault(PackFault):
    """Nothing to pack."""

    def __init__(self, **kwargs):
        super().__init__(
            code="EMPTY_INPUT",
            message="No resources to pack, at least one is required",
            metadata=kwargs.get("metadata", {}),
        )


class TransformerFailureFault(PackFault):
    """The content transformer (stripper) failed on a resource."""

    def __init__(self, name: str, reason: str, **kwargs):
        super().__init__(
            code="TRANSFORMER_FAILURE",
            message=f"Transformer failed on '{name}': {reason}",
            metadata={"name": name, "reason": reason, **kwargs.get("metadata", {})},
        )
        self.name = name


class ResourceEncodingFault(PackFault):
    """A resource is not valid UTF-8 and cannot be embedded in the script."""

    def __init__(self, name: str, reason: str, **kwargs):
        super().__init__(
            code="RESOURCE_ENCODING",
            message=f"Resource '{name}' is not valid UTF-8: {reason}",
            metadata={"name": name, "reason": reason, **kwargs.get("metadata", {})},
        )
        self.name = name


# ============================================================================
# ARCHIVE Faults
# ============================================================================

class MalformedArchiveFault(Fault):
    """The archive header or table of contents cannot be parsed."""

    def __init__(self, reason: str, *, source: str = "", **kwargs):
        where = f" in {source}" if source else ""
        super().__init__(
            code="MALFORMED_ARCHIVE",
            message=f"Malformed datapack archive{where}: {reason}",
            domain=FaultDomain.ARCHIVE,
            metadata={"reason": reason, "source": source, **kwargs.get("metadata", {})},
        )
        self.reason = reason


# ============================================================================
# IO Faults
# ============================================================================

class OutputAlreadyExistsFault(Fault):
    """The output sink refuses to replace an existing file."""

    def __init__(self, path: str, **kwargs):
        super().__init__(
            code="OUTPUT_EXISTS",
            message=f"Won't overwrite existing file '{path}' (pass --overwrite to replace it)",
            domain=FaultDomain.IO,
            metadata={"path": path, **kwargs.get("metadata", {})},
        )
        self.path = path


# ============================================================================
# CONFIG Faults
# ============================================================================

class ConfigInvalidFault(Fault):
    """Configuration value is invalid."""

    def __init__(self, key: str, reason: str, **kwargs):
        super().__init__(
            code="CONFIG_INVALID",
            message=f"Configuration key '{key}' is invalid: {reason}",
            domain=FaultDomain.CONFIG,
            metadata={"key": key, "reason": reason, **kwargs.get("metadata", {})},
        )
        self.key = key
