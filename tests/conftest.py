"""
Shared pytest fixtures.

CA fixture
----------
`make_ca` writes a throwaway CA certificate and key into tmp_path, with a
chosen subject, expiry and optional passphrase.  `issuer_settings` builds a
Settings object pointing at such a CA and at a fresh output directory, so
no test ever touches ~/ssl-build.

OpenSSL availability
--------------------
Tests that drive the real `openssl` binary are marked `requires_openssl` and
skipped when it is not on PATH.
"""
from __future__ import annotations

import shutil
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from config import Settings

# Whole seconds, so validity arithmetic in tests is exact.
FIXED_NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)

CA_PASSPHRASE = "correct horse"

DEFAULT_CA_SUBJECT = [
    (NameOID.COUNTRY_NAME, "DE"),
    (NameOID.ORGANIZATION_NAME, "ACME"),
    (NameOID.COMMON_NAME, "CA Cert"),
]


requires_openssl = pytest.mark.skipif(
    shutil.which("openssl") is None,
    reason="openssl binary not on PATH",
)


@dataclass
class LocalCA:
    cert_path: Path
    key_path: Path
    cert: x509.Certificate
    key: rsa.RSAPrivateKey


@pytest.fixture(scope="session")
def ca_private_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture()
def make_ca(tmp_path: Path, ca_private_key):
    """Factory: make_ca(subject=..., not_after=..., passphrase=...) -> LocalCA."""

    def _make(
        subject=None,
        not_after: datetime | None = None,
        passphrase: str | None = None,
        not_before: datetime | None = None,
    ) -> LocalCA:
        attrs = subject if subject is not None else DEFAULT_CA_SUBJECT
        name = x509.Name([x509.NameAttribute(oid, value) for oid, value in attrs])
        not_before = not_before or FIXED_NOW - timedelta(days=365)
        not_after = not_after or FIXED_NOW + timedelta(days=3650)

        cert = (
            x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(name)
            .public_key(ca_private_key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(not_before)
            .not_valid_after(not_after)
            .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
            .add_extension(
                x509.SubjectKeyIdentifier.from_public_key(ca_private_key.public_key()),
                critical=False,
            )
            .sign(ca_private_key, hashes.SHA256())
        )

        ca_dir = tmp_path / "ssl-build"
        ca_dir.mkdir(exist_ok=True)
        cert_path = ca_dir / "RHN-ORG-TRUSTED-SSL-CERT"
        key_path = ca_dir / "RHN-ORG-PRIVATE-SSL-KEY"

        encryption = (
            serialization.BestAvailableEncryption(passphrase.encode())
            if passphrase
            else serialization.NoEncryption()
        )
        cert_path.write_bytes(cert.public_bytes(serialization.Encoding.PEM))
        key_path.write_bytes(
            ca_private_key.private_bytes(
                serialization.Encoding.PEM,
                serialization.PrivateFormat.TraditionalOpenSSL,
                encryption,
            )
        )
        return LocalCA(cert_path=cert_path, key_path=key_path, cert=cert, key=ca_private_key)

    return _make


@pytest.fixture()
def output_dir(tmp_path: Path) -> Path:
    d = tmp_path / "out"
    d.mkdir()
    return d


@pytest.fixture()
def issuer_settings(make_ca, output_dir: Path):
    """Factory: issuer_settings(ca=None, **overrides) -> Settings for the cryptography backend."""

    def _settings(ca: LocalCA | None = None, **overrides) -> Settings:
        ca = ca or make_ca()
        values = {
            "CA_CERT_PATH": str(ca.cert_path),
            "CA_KEY_PATH": str(ca.key_path),
            "CA_KEY_PASSPHRASE": "",
            "CERT_OUTPUT_DIR": str(output_dir),
            "ISSUER_BACKEND": "cryptography",
            "EXTENSION_PROFILE": "extended",
        }
        values.update(overrides)
        return Settings(**values)

    return _settings
