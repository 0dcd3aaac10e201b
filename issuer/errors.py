"""
Exceptions raised by the issuance pipeline.

Every failure is terminal: the CLI logs the message and exits with
``exit_code``.  ``category`` names the stage that failed.
"""
from __future__ import annotations


class IssuanceError(Exception):
    """Base class for all certificate issuance failures."""

    category = "issuance"
    exit_code = 1


class ToolkitMissingError(IssuanceError):
    """The configured cryptography toolkit cannot be found."""

    category = "environment"


class PreconditionError(IssuanceError):
    """CA material missing, FQDN unusable, or output already present."""

    category = "precondition"


class CAExpiredError(IssuanceError):
    """The CA has expired or expires within a day."""

    category = "derivation"


class CSRGenerationError(IssuanceError):
    """The key or the certificate signing request could not be created."""

    category = "generation"


class SigningError(IssuanceError):
    """The CA refused to sign (wrong passphrase, unreadable key, bad input)."""

    category = "signing"


class ToolkitError(IssuanceError):
    """A read-only toolkit query exited with an unexpected status."""

    category = "environment"

    def __init__(self, summary: str, returncode: int, stderr: str = "") -> None:
        self.returncode = returncode
        self.stderr = stderr
        detail = stderr.strip()
        super().__init__(f"{summary} (exit {returncode})" + (f": {detail}" if detail else ""))
