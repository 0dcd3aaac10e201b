"""
Thin wrapper around the ``openssl`` command-line tool.

Every invocation returns a ToolkitResult instead of raising on a non-zero
exit, so callers decide which failures are fatal and how to name them.
Commands that may prompt the operator (CA passphrase) run with the terminal
inherited rather than captured.
"""
from __future__ import annotations

import logging
import shutil
import subprocess
from collections.abc import Mapping
from dataclasses import dataclass

from issuer.errors import ToolkitError, ToolkitMissingError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolkitResult:
    args: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class OpenSSLToolkit:
    def __init__(self, binary: str = "openssl") -> None:
        self.binary = binary

    def locate(self) -> str:
        """Return the resolved binary path or raise ToolkitMissingError."""
        path = shutil.which(self.binary)
        if path is None:
            raise ToolkitMissingError(f"{self.binary} command not found. Please install it.")
        return path

    def run(
        self,
        *args: str,
        capture: bool = True,
        env: Mapping[str, str] | None = None,
    ) -> ToolkitResult:
        """Run ``openssl <args>`` and wait for it to finish."""
        argv = (self.binary, *args)
        logger.debug("Running %s", " ".join(argv))
        try:
            proc = subprocess.run(
                argv,
                capture_output=capture,
                text=True,
                env=dict(env) if env is not None else None,
                check=False,
            )
        except FileNotFoundError as exc:
            raise ToolkitMissingError(f"{self.binary} command not found. Please install it.") from exc
        return ToolkitResult(
            args=argv,
            returncode=proc.returncode,
            stdout=proc.stdout or "",
            stderr=proc.stderr or "",
        )

    def query(self, *args: str) -> str:
        """Run a read-only command and return its stdout; non-zero exit raises ToolkitError."""
        result = self.run(*args)
        if not result.ok:
            raise ToolkitError(f"openssl {args[0]} failed", result.returncode, result.stderr)
        return result.stdout
