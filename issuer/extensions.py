"""
X.509v3 extension assembly for the leaf certificate.

An ExtensionPlan is the single description of what the signer must add.  It
renders to an OpenSSL ``-extfile`` config for the subprocess backend; the
library backend turns the same plan into ``cryptography`` extension objects
(see issuer/crypto.py).
"""
from __future__ import annotations

from dataclasses import dataclass, field

EXTENSIONS_SECTION = "v3_req"
ALT_NAMES_SECTION = "alt_names"

# Fixed lines for the extended profile, in the order they are written.
_EXTENDED_LINES = (
    "basicConstraints = critical, CA:FALSE",
    "keyUsage = critical, digitalSignature, keyEncipherment",
    "extendedKeyUsage = serverAuth, clientAuth",
    "subjectKeyIdentifier = hash",
    "authorityKeyIdentifier = keyid,issuer",
)


def parse_san_argument(value: str | None) -> list[str]:
    """
    Split a comma-separated SAN argument ("a,b") into names.

    Whitespace around names is trimmed and empty entries are dropped.
    Duplicates are kept and hostnames are not validated.
    """
    if not value:
        return []
    return [name.strip() for name in value.split(",") if name.strip()]


@dataclass(frozen=True)
class ExtensionPlan:
    fqdn: str
    sans: list[str] = field(default_factory=list)
    profile: str = "extended"

    @property
    def extended(self) -> bool:
        return self.profile == "extended"

    @property
    def san_entries(self) -> list[str]:
        """DNS names in signing order: the FQDN first, then the extra SANs."""
        return [self.fqdn, *self.sans]

    @property
    def is_empty(self) -> bool:
        """True when the basic profile has nothing to add beyond the CSR."""
        return not self.extended and not self.sans

    def render_config(self) -> str | None:
        """Return the OpenSSL extension config text, or None if there is none."""
        if self.is_empty:
            return None

        lines = [f"[{EXTENSIONS_SECTION}]"]
        if self.extended:
            lines.extend(_EXTENDED_LINES)
        lines.append(f"subjectAltName = @{ALT_NAMES_SECTION}")
        lines.append("")
        lines.append(f"[{ALT_NAMES_SECTION}]")
        for index, name in enumerate(self.san_entries, start=1):
            lines.append(f"DNS.{index} = {name}")
        return "\n".join(lines) + "\n"
