"""
Leaf private-key generation, CSR creation and CA signing with ``cryptography``.

Boundary: this module owns every in-process cryptographic operation.  File
layout, cleanup and the OpenSSL subprocess path live elsewhere.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import dsa, ec, ed448, ed25519, rsa
from cryptography.hazmat.primitives.asymmetric.types import (
    CertificateIssuerPrivateKeyTypes,
    CertificatePublicKeyTypes,
)
from cryptography.x509.oid import ExtendedKeyUsageOID

from issuer.extensions import ExtensionPlan

_SIGNING_KEY_TYPES = (
    rsa.RSAPrivateKey,
    ec.EllipticCurvePrivateKey,
    dsa.DSAPrivateKey,
    ed25519.Ed25519PrivateKey,
    ed448.Ed448PrivateKey,
)


def generate_rsa_key(key_size: int = 2048) -> rsa.RSAPrivateKey:
    """Generate an RSA private key for the leaf certificate."""
    return rsa.generate_private_key(public_exponent=65537, key_size=key_size)


def private_key_to_pem(key: rsa.RSAPrivateKey) -> bytes:
    """Serialize a private key to unencrypted PKCS#8 PEM (as `openssl genpkey` does)."""
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


def create_csr(
    private_key: rsa.RSAPrivateKey,
    subject: x509.Name,
) -> x509.CertificateSigningRequest:
    """Create a SHA-256 signed CSR binding *private_key* to *subject*."""
    builder = x509.CertificateSigningRequestBuilder().subject_name(subject)
    return builder.sign(private_key, hashes.SHA256())


def load_certificate(path: Path) -> x509.Certificate:
    """Load a PEM certificate from *path*."""
    return x509.load_pem_x509_certificate(path.read_bytes())


def load_private_key(path: Path, passphrase: bytes | None = None) -> CertificateIssuerPrivateKeyTypes:
    """
    Load a PEM private key usable for signing certificates.

    Raises TypeError when the key is encrypted and no passphrase was given (or
    the reverse), ValueError when the passphrase is wrong or the data is not a
    key.
    """
    key = serialization.load_pem_private_key(path.read_bytes(), password=passphrase)
    if not isinstance(key, _SIGNING_KEY_TYPES):
        raise ValueError(f"{type(key).__name__} cannot sign certificates")
    return key  # type: ignore[return-value]


def build_extensions(
    plan: ExtensionPlan,
    subject_public_key: CertificatePublicKeyTypes,
    ca_cert: x509.Certificate,
) -> list[tuple[x509.ExtensionType, bool]]:
    """
    Translate an ExtensionPlan into ``(extension, critical)`` pairs.

    Mirrors ExtensionPlan.render_config(): SANs always carry the FQDN first,
    and the extended profile adds the fixed server/client leaf extensions.
    """
    if plan.is_empty:
        return []

    extensions: list[tuple[x509.ExtensionType, bool]] = []
    if plan.extended:
        extensions.extend([
            (x509.BasicConstraints(ca=False, path_length=None), True),
            (
                x509.KeyUsage(
                    digital_signature=True,
                    content_commitment=False,
                    key_encipherment=True,
                    data_encipherment=False,
                    key_agreement=False,
                    key_cert_sign=False,
                    crl_sign=False,
                    encipher_only=False,
                    decipher_only=False,
                ),
                True,
            ),
            (
                x509.ExtendedKeyUsage([
                    ExtendedKeyUsageOID.SERVER_AUTH,
                    ExtendedKeyUsageOID.CLIENT_AUTH,
                ]),
                False,
            ),
            (x509.SubjectKeyIdentifier.from_public_key(subject_public_key), False),
            (_authority_key_identifier(ca_cert), False),
        ])

    extensions.append((
        x509.SubjectAlternativeName([x509.DNSName(name) for name in plan.san_entries]),
        False,
    ))
    return extensions


def _authority_key_identifier(ca_cert: x509.Certificate) -> x509.AuthorityKeyIdentifier:
    try:
        ski = ca_cert.extensions.get_extension_for_class(x509.SubjectKeyIdentifier)
    except x509.ExtensionNotFound:
        return x509.AuthorityKeyIdentifier.from_issuer_public_key(ca_cert.public_key())  # type: ignore[arg-type]
    return x509.AuthorityKeyIdentifier.from_issuer_subject_key_identifier(ski.value)


def sign_csr(
    csr: x509.CertificateSigningRequest,
    ca_cert: x509.Certificate,
    ca_key: CertificateIssuerPrivateKeyTypes,
    validity_days: int,
    plan: ExtensionPlan,
    now: datetime,
) -> x509.Certificate:
    """Issue a certificate for *csr*, valid from *now* for *validity_days* days."""
    if not csr.is_signature_valid:
        raise ValueError("CSR signature does not verify")

    builder = (
        x509.CertificateBuilder()
        .subject_name(csr.subject)
        .issuer_name(ca_cert.subject)
        .public_key(csr.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(now + timedelta(days=validity_days))
    )
    for extension, critical in build_extensions(plan, csr.public_key(), ca_cert):
        builder = builder.add_extension(extension, critical=critical)

    # Ed25519/Ed448 sign without a separate digest
    algorithm = None if isinstance(ca_key, (ed25519.Ed25519PrivateKey, ed448.Ed448PrivateKey)) else hashes.SHA256()
    return builder.sign(ca_key, algorithm)
