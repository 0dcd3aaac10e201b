"""
All-or-nothing retention of the files an issuance run creates.

ArtifactGuard records every path the run is about to create, and refuses
paths that already exist.  When the guarded block finishes normally only the
transient artifacts (CSR) are removed; when it is left by any exception,
including KeyboardInterrupt and SystemExit, every recorded path is removed so
no orphaned private key or half-written certificate stays behind.  Output
directories the guard created are removed too when they are left empty.
"""
from __future__ import annotations

import errno
import logging
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

logger = logging.getLogger(__name__)


class ArtifactGuard:
    """Context manager tracking generated files for cleanup."""

    def __init__(self) -> None:
        self._durable: list[Path] = []
        self._transient: list[Path] = []
        self._directories: list[Path] = []

    def track(self, path: Path, transient: bool = False) -> Path:
        """
        Claim *path* before it is created; returns it for chaining.

        A path that already exists belongs to someone else: FileExistsError is
        raised and nothing is recorded, so cleanup can never remove it.
        """
        if path.exists():
            raise FileExistsError(errno.EEXIST, os.strerror(errno.EEXIST), str(path))
        (self._transient if transient else self._durable).append(path)
        return path

    def release(self, path: Path) -> None:
        """Stop tracking *path*; it survives cleanup whatever happens."""
        for paths in (self._durable, self._transient):
            while path in paths:
                paths.remove(path)

    def make_dirs(self, directory: Path) -> Path:
        """Create *directory* and its missing parents; on failure the new ones are removed if empty."""
        missing: list[Path] = []
        current = directory
        while not current.exists() and current.parent != current:
            missing.append(current)
            current = current.parent
        directory.mkdir(parents=True, exist_ok=True)
        # Deepest first, so rmdir can walk back up
        self._directories.extend(missing)
        return directory

    @property
    def tracked(self) -> list[Path]:
        return [*self._durable, *self._transient]

    def __enter__(self) -> "ArtifactGuard":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is None:
            _remove_all(self._transient)
        else:
            logger.warning("Removing generated files after failure: %s",
                           ", ".join(str(p) for p in self.tracked) or "none")
            _remove_all(self.tracked)
            _remove_empty_dirs(self._directories)
        return False


@contextmanager
def scratch_file(content: str, prefix: str = "leafcert.", suffix: str = ".cnf") -> Iterator[Path]:
    """Write *content* to a private temp file and remove it when the block exits."""
    fd, name = tempfile.mkstemp(prefix=prefix, suffix=suffix)
    path = Path(name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        yield path
    finally:
        _remove(path)


def _remove_all(paths: list[Path]) -> None:
    for path in paths:
        _remove(path)


def _remove_empty_dirs(directories: list[Path]) -> None:
    for directory in directories:
        try:
            directory.rmdir()
            logger.debug("Removed directory %s", directory)
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.debug("Keeping directory %s: %s", directory, exc)


def _remove(path: Path) -> None:
    try:
        path.unlink()
        logger.debug("Removed %s", path)
    except FileNotFoundError:
        pass
    except OSError as exc:
        # Cleanup must not mask the original failure
        logger.error("Could not remove %s: %s", path, exc)
