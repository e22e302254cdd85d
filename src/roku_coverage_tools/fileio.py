"""All-or-nothing file replacement."""

from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path


def atomic_write_bytes(path: Path, data: bytes) -> int:
    """Replace *path* with *data* in one step.

    Writes to a temporary file in the same directory and renames it over the
    target, so readers never see a half-written file.  The target's permission
    bits are carried over when it already exists.

    Returns the number of bytes written.  ``OSError`` propagates to the caller.
    """
    directory = path.parent
    fd, tmp_path = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=directory)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        if path.exists():
            shutil.copymode(path, tmp_path)
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise
    return len(data)
