"""
Shared test fixtures and helpers for the datapack test suite.
"""

import sys
from pathlib import Path
from typing import Dict, List

import pytest

from datapack.reader import ArchiveReader
from datapack.writer import ArchiveWriter


SAMPLE_SOURCES: Dict[str, str] = {
    "a/__init__.py": "from .b import f\nVERSION = 1\n",
    "a/b.py": "def f():\n    return 1\n",
}

# Byte-exact archive for SAMPLE_SOURCES.
SAMPLE_ARCHIVE = (
    b"# DATAPACK v1\n"
    b"# a/__init__.py,22,31,0;0\n"
    b"# a/b.py,68,24,1;2\n"
    b"#\n"
    b"### a/__init__.py ###\n"
    b"#from .b import f\n"
    b"#VERSION = 1\n"
    b"### a/b.py ###\n"
    b"#def f():\n"
    b"#    return 1\n"
)


# ============================================================================
# Archive Helpers
# ============================================================================


def make_archive(sources: Dict[str, str]) -> bytes:
    """Serialize *sources* with a fresh writer."""
    return ArchiveWriter().add_many(sources).to_bytes()


def make_reader(sources: Dict[str, str], prefix: bytes = b"") -> ArchiveReader:
    """Reader over ``prefix + archive``."""
    return ArchiveReader(prefix + make_archive(sources), offset=len(prefix))


def write_tree(root: Path, files: Dict[str, str]) -> Path:
    """Create ``{relative_path: text}`` under *root*."""
    for rel, text in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
    return root


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def sample_sources() -> Dict[str, str]:
    return dict(SAMPLE_SOURCES)


@pytest.fixture
def sample_archive() -> bytes:
    return SAMPLE_ARCHIVE


@pytest.fixture
def meta_path() -> List[object]:
    """A private finder chain, so tests never touch ``sys.meta_path``."""
    return []


@pytest.fixture
def forget_modules():
    """Drop the named modules from ``sys.modules`` after the test."""
    names: List[str] = []

    def register(*prefixes: str) -> None:
        names.extend(prefixes)

    yield register

    for prefix in names:
        for key in [k for k in sys.modules if k == prefix or k.startswith(prefix + ".")]:
            del sys.modules[key]
