"""
Output sink - persists a generated script.

Writes go through a temporary file in the target directory followed by
``os.replace``, so a reader never sees a half-written script.
"""

from __future__ import annotations

import logging
import os
import stat
import tempfile
from pathlib import Path
from typing import Union

from .faults import OutputAlreadyExistsFault

logger = logging.getLogger("datapack.sink")

PathLike = Union[str, "os.PathLike[str]"]


def write_output(path: PathLike, data: Union[bytes, str], *, overwrite: bool = False) -> Path:
    """
    Write *data* to *path*.

    Scripts starting with a shebang are marked executable.

    Raises:
        OutputAlreadyExistsFault: If *path* exists and *overwrite* is false.
    """
    target = Path(path)
    if isinstance(data, str):
        data = data.encode("utf-8")
    if target.exists() and not overwrite:
        raise OutputAlreadyExistsFault(str(target))

    directory = target.parent if str(target.parent) else Path(".")
    fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=directory)
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
        mode = 0o644
        if data.startswith(b"#!"):
            mode |= stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, target)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise

    logger.info("Wrote %d bytes to %s", len(data), target)
    return target
