"""
Subject (distinguished name) derivation.

The new certificate inherits the CA's subject in certificate order, minus the
CA's Common Name (and, for the extended profile, its Locality), followed by
``CN=<fqdn>`` and an optional ``emailAddress=<email>``.

Components are ``(key, value)`` pairs keyed by OpenSSL short names, so the same
derivation works whether the CA subject was read with ``cryptography`` or
parsed from ``openssl x509 -noout -subject`` output.

Multi-valued RDNs are flattened into separate components.
"""
from __future__ import annotations

from cryptography import x509
from cryptography.x509.oid import NameOID, ObjectIdentifier

Component = tuple[str, str]

# OpenSSL short names for the attributes a CA subject realistically carries.
_OID_TO_SHORT: dict[ObjectIdentifier, str] = {
    NameOID.COUNTRY_NAME: "C",
    NameOID.STATE_OR_PROVINCE_NAME: "ST",
    NameOID.LOCALITY_NAME: "L",
    NameOID.ORGANIZATION_NAME: "O",
    NameOID.ORGANIZATIONAL_UNIT_NAME: "OU",
    NameOID.COMMON_NAME: "CN",
    NameOID.EMAIL_ADDRESS: "emailAddress",
    NameOID.STREET_ADDRESS: "street",
    NameOID.DOMAIN_COMPONENT: "DC",
    NameOID.USER_ID: "UID",
    NameOID.SERIAL_NUMBER: "serialNumber",
    NameOID.TITLE: "title",
    NameOID.GIVEN_NAME: "GN",
    NameOID.SURNAME: "SN",
    NameOID.INITIALS: "initials",
    NameOID.PSEUDONYM: "pseudonym",
    NameOID.GENERATION_QUALIFIER: "generationQualifier",
    NameOID.DN_QUALIFIER: "dnQualifier",
}
_SHORT_TO_OID = {short: oid for oid, short in _OID_TO_SHORT.items()}

BASIC_STRIP = ("CN",)
EXTENDED_STRIP = ("CN", "L")


def strip_keys_for_profile(profile: str) -> tuple[str, ...]:
    """Return the CA subject keys that must not be inherited for *profile*."""
    return EXTENDED_STRIP if profile == "extended" else BASIC_STRIP


# ─── Reading ──────────────────────────────────────────────────────────────────


def components_from_name(name: x509.Name) -> list[Component]:
    """Flatten a ``cryptography`` Name into ordered short-name components."""
    components: list[Component] = []
    for rdn in name.rdns:
        for attr in rdn:
            key = _OID_TO_SHORT.get(attr.oid, attr.oid.dotted_string)
            value = attr.value if isinstance(attr.value, str) else attr.value.hex()
            components.append((key, value))
    return components


def parse_subject_line(line: str) -> list[Component]:
    """
    Parse ``openssl x509 -noout -subject`` output into components.

    Accepts ``subject=C = DE, O = "ACME, Inc.", CN = CA Cert``.  Commas and
    plus signs inside double quotes or escaped with a backslash stay part of
    the value; the spaces around ``=`` are optional.
    """
    text = line.strip()
    if text.startswith("subject="):
        text = text[len("subject="):]

    components: list[Component] = []
    for rdn in _split_unquoted(text, ","):
        # Multi-valued RDNs print as "O = A + OU = B"
        for field in _split_unquoted(rdn, "+"):
            field = field.strip()
            if not field:
                continue
            key, sep, value = _partition_unquoted(field, "=")
            if not sep:
                raise ValueError(f"subject component {field!r} has no '='")
            components.append((key.strip(), _unquote(value.strip())))
    return components


def _split_unquoted(text: str, delimiter: str) -> list[str]:
    parts: list[str] = []
    current: list[str] = []
    in_quotes = False
    escaped = False
    for ch in text:
        if escaped:
            current.append(ch)
            escaped = False
        elif ch == "\\":
            current.append(ch)
            escaped = True
        elif ch == '"':
            current.append(ch)
            in_quotes = not in_quotes
        elif ch == delimiter and not in_quotes:
            parts.append("".join(current))
            current = []
        else:
            current.append(ch)
    parts.append("".join(current))
    return parts


def _partition_unquoted(text: str, delimiter: str) -> tuple[str, str, str]:
    parts = _split_unquoted(text, delimiter)
    if len(parts) == 1:
        return text, "", ""
    return parts[0], delimiter, delimiter.join(parts[1:])


def _unquote(value: str) -> str:
    """Drop surrounding double quotes and resolve backslash escapes."""
    if len(value) >= 2 and value[0] == value[-1] == '"':
        value = value[1:-1]
    out: list[str] = []
    chars = iter(value)
    for ch in chars:
        if ch == "\\":
            out.append(next(chars, ""))
        else:
            out.append(ch)
    return "".join(out)


# ─── Deriving ─────────────────────────────────────────────────────────────────


def derive_subject(
    ca_components: list[Component],
    fqdn: str,
    email: str | None = None,
    strip: tuple[str, ...] = BASIC_STRIP,
) -> list[Component]:
    """
    Build the leaf subject from the CA's components.

    Every component whose key is in *strip* is dropped (all occurrences), so
    the result carries exactly one ``CN``.
    """
    stripped = {k.upper() for k in strip}
    subject = [(k, v) for k, v in ca_components if k.upper() not in stripped]
    subject.append(("CN", fqdn))
    if email:
        subject.append(("emailAddress", email))
    return subject


def format_subject(components: list[Component]) -> str:
    """Render components in OpenSSL ``-subj`` form: ``/C=DE/O=ACME/CN=host``."""
    return "".join(f"/{key}={_escape(value)}" for key, value in components)


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace("/", "\\/")


def to_x509_name(components: list[Component]) -> x509.Name:
    """Convert components back into a ``cryptography`` Name."""
    attributes = []
    for key, value in components:
        oid = _SHORT_TO_OID.get(key)
        if oid is None:
            try:
                oid = ObjectIdentifier(key)
            except ValueError as exc:
                raise ValueError(f"unknown subject attribute {key!r}") from exc
        attributes.append(x509.NameAttribute(oid, value))
    return x509.Name(attributes)
