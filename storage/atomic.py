"""
Atomic file writing with fsync to prevent corrupt or half-written PEM files.

Pattern:
  1. Write to a temporary file in the same directory
  2. Set the final permissions and fsync
  3. Publish: rename over the target, or hard-link when the target must not
     already exist (``overwrite=False``), which fails if another writer got
     there first

Partial writes are never visible under the final name.
"""
from __future__ import annotations

import os
import tempfile
from pathlib import Path


def atomic_write_bytes(
    path: Path,
    content: bytes,
    mode: int | None = None,
    overwrite: bool = True,
) -> None:
    """
    Atomically write bytes to *path*.

    *mode* is applied to the temp file before publishing, so a private key is
    never readable by others even for an instant.  With ``overwrite=False`` an
    existing *path* raises FileExistsError and is left untouched.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    # Same directory as the target, so rename/link stay on one filesystem
    fd, temp_path = tempfile.mkstemp(
        prefix=f".{path.name}.",
        suffix=".tmp",
        dir=str(path.parent),
    )

    try:
        with os.fdopen(fd, "wb") as f:
            if mode is not None:
                os.fchmod(f.fileno(), mode)
            f.write(content)
            f.flush()
            os.fsync(f.fileno())

        if overwrite:
            os.replace(temp_path, path)
        else:
            os.link(temp_path, path)
            os.unlink(temp_path)
    except BaseException:
        try:
            os.unlink(temp_path)
        except OSError:
            pass
        raise
