"""
Issuer backends: who actually performs the cryptographic work.

CryptographyBackend does everything in-process with the ``cryptography``
library.  OpenSSLBackend shells out to the ``openssl`` binary.  Both take
and produce the same files, so the pipeline in issuer/pipeline.py does not
care which one it drives.
"""
from __future__ import annotations

import getpass
import logging
import os
import stat
from datetime import datetime
from pathlib import Path
from typing import Callable, Protocol

from cryptography import x509
from cryptography.hazmat.primitives import serialization

from config import Settings
from issuer import crypto
from issuer.errors import CSRGenerationError, PreconditionError, SigningError
from issuer.extensions import EXTENSIONS_SECTION, ExtensionPlan
from issuer.subject import Component, components_from_name, format_subject, parse_subject_line, to_x509_name
from issuer.toolkit import OpenSSLToolkit
from issuer.validity import parse_openssl_date
from storage.artifacts import scratch_file
from storage.atomic import atomic_write_bytes

logger = logging.getLogger(__name__)

KEY_FILE_MODE = stat.S_IRUSR | stat.S_IWUSR  # 0o600
CERT_FILE_MODE = 0o644

# Environment variable handed to `openssl -passin env:...`
PASSPHRASE_ENV = "CA_KEY_PASSPHRASE"

CSR_FAILED = "Failed to create CSR. Check subject format."
SIGNING_FAILED = "Certificate signing failed. Check the CA password or paths."


class IssuerBackend(Protocol):
    name: str

    def check_environment(self) -> None: ...

    def read_ca_subject(self, ca_cert: Path) -> list[Component]: ...

    def read_ca_not_after(self, ca_cert: Path) -> datetime: ...

    def generate_key(self, key_path: Path, key_size: int) -> None: ...

    def create_csr(self, key_path: Path, csr_path: Path, subject: list[Component]) -> None: ...

    def sign(
        self,
        csr_path: Path,
        cert_path: Path,
        ca_cert: Path,
        ca_key: Path,
        validity_days: int,
        plan: ExtensionPlan,
        now: datetime,
    ) -> None: ...


# ─── In-process ───────────────────────────────────────────────────────────────


class CryptographyBackend:
    name = "cryptography"

    def __init__(self, passphrase: str = "", prompt: Callable[[str], str] = getpass.getpass) -> None:
        self.passphrase = passphrase
        self.prompt = prompt

    def check_environment(self) -> None:
        # The library is an install-time dependency; nothing to look up.
        return None

    def read_ca_subject(self, ca_cert: Path) -> list[Component]:
        return components_from_name(self._load_ca_cert(ca_cert).subject)

    def read_ca_not_after(self, ca_cert: Path) -> datetime:
        return self._load_ca_cert(ca_cert).not_valid_after_utc

    def generate_key(self, key_path: Path, key_size: int) -> None:
        key = crypto.generate_rsa_key(key_size=key_size)
        atomic_write_bytes(key_path, crypto.private_key_to_pem(key), mode=KEY_FILE_MODE, overwrite=False)

    def create_csr(self, key_path: Path, csr_path: Path, subject: list[Component]) -> None:
        try:
            key = serialization.load_pem_private_key(key_path.read_bytes(), password=None)
            csr = crypto.create_csr(key, to_x509_name(subject))  # type: ignore[arg-type]
        except (ValueError, TypeError) as exc:
            raise CSRGenerationError(f"{CSR_FAILED} ({exc})") from exc
        atomic_write_bytes(csr_path, csr.public_bytes(serialization.Encoding.PEM))

    def sign(
        self,
        csr_path: Path,
        cert_path: Path,
        ca_cert: Path,
        ca_key: Path,
        validity_days: int,
        plan: ExtensionPlan,
        now: datetime,
    ) -> None:
        try:
            csr = x509.load_pem_x509_csr(csr_path.read_bytes())
            issuer_cert = crypto.load_certificate(ca_cert)
            issuer_key = self._load_ca_key(ca_key)
            cert = crypto.sign_csr(csr, issuer_cert, issuer_key, validity_days, plan, now)
        except (ValueError, TypeError) as exc:
            raise SigningError(f"{SIGNING_FAILED} ({exc})") from exc
        atomic_write_bytes(
            cert_path,
            cert.public_bytes(serialization.Encoding.PEM),
            mode=CERT_FILE_MODE,
            overwrite=False,
        )

    def _load_ca_cert(self, ca_cert: Path) -> x509.Certificate:
        try:
            return crypto.load_certificate(ca_cert)
        except ValueError as exc:
            raise PreconditionError(f"Cannot read CA certificate {ca_cert}: {exc}") from exc

    def _load_ca_key(self, ca_key: Path):
        passphrase = self.passphrase.encode() if self.passphrase else None
        try:
            return crypto.load_private_key(ca_key, passphrase)
        except TypeError:
            if passphrase is not None:
                # Passphrase configured but the key is not encrypted
                return crypto.load_private_key(ca_key, None)
        try:
            entered = self.prompt(f"Enter pass phrase for {ca_key}:")
        except EOFError as exc:
            # No terminal to read the passphrase from (closed stdin, CI)
            raise SigningError(f"{SIGNING_FAILED} (no passphrase available for {ca_key})") from exc
        return crypto.load_private_key(ca_key, entered.encode())


# ─── Subprocess ───────────────────────────────────────────────────────────────


class OpenSSLBackend:
    name = "openssl"

    def __init__(self, toolkit: OpenSSLToolkit, passphrase: str = "") -> None:
        self.toolkit = toolkit
        self.passphrase = passphrase

    def check_environment(self) -> None:
        self.toolkit.locate()

    def read_ca_subject(self, ca_cert: Path) -> list[Component]:
        out = self.toolkit.query(
            "x509", "-in", str(ca_cert), "-noout", "-subject", "-nameopt", "oneline,-esc_msb",
        )
        try:
            return parse_subject_line(out.strip().splitlines()[0])
        except (IndexError, ValueError) as exc:
            raise PreconditionError(f"Cannot parse CA subject {out.strip()!r}: {exc}") from exc

    def read_ca_not_after(self, ca_cert: Path) -> datetime:
        out = self.toolkit.query("x509", "-in", str(ca_cert), "-noout", "-enddate")
        try:
            return parse_openssl_date(out)
        except ValueError as exc:
            raise PreconditionError(f"Cannot parse CA expiry {out.strip()!r}: {exc}") from exc

    def generate_key(self, key_path: Path, key_size: int) -> None:
        result = self.toolkit.run(
            "genpkey", "-algorithm", "RSA", "-out", str(key_path),
            "-pkeyopt", f"rsa_keygen_bits:{key_size}",
        )
        if not result.ok:
            raise CSRGenerationError(f"Failed to generate private key: {result.stderr.strip()}")
        os.chmod(key_path, KEY_FILE_MODE)

    def create_csr(self, key_path: Path, csr_path: Path, subject: list[Component]) -> None:
        result = self.toolkit.run(
            "req", "-new", "-utf8", "-key", str(key_path), "-out", str(csr_path),
            "-subj", format_subject(subject),
        )
        if not result.ok:
            raise CSRGenerationError(f"{CSR_FAILED} ({result.stderr.strip()})")

    def sign(
        self,
        csr_path: Path,
        cert_path: Path,
        ca_cert: Path,
        ca_key: Path,
        validity_days: int,
        plan: ExtensionPlan,
        now: datetime,
    ) -> None:
        # openssl stamps notBefore from its own clock; *now* only drives the day count
        args = [
            "x509", "-req", "-in", str(csr_path),
            "-CA", str(ca_cert), "-CAkey", str(ca_key),
            "-CAcreateserial", "-out", str(cert_path),
            "-days", str(validity_days), "-sha256",
        ]
        env = None
        if self.passphrase:
            env = {**os.environ, PASSPHRASE_ENV: self.passphrase}
            args += ["-passin", f"env:{PASSPHRASE_ENV}"]

        config = plan.render_config()
        if config is None:
            logger.info("No SANs requested. Creating standard certificate.")
            result = self.toolkit.run(*args, capture=False, env=env)
        else:
            with scratch_file(config, prefix=f".{plan.fqdn}.ext.") as extfile:
                logger.debug("Extension config %s:\n%s", extfile, config)
                result = self.toolkit.run(
                    *args, "-extfile", str(extfile), "-extensions", EXTENSIONS_SECTION,
                    capture=False, env=env,
                )

        if not result.ok:
            raise SigningError(SIGNING_FAILED)


def make_backend(settings: Settings) -> IssuerBackend:
    """Return the backend selected by ``ISSUER_BACKEND``."""
    if settings.ISSUER_BACKEND == "openssl":
        return OpenSSLBackend(OpenSSLToolkit(settings.OPENSSL_BINARY), passphrase=settings.CA_KEY_PASSPHRASE)
    return CryptographyBackend(passphrase=settings.CA_KEY_PASSPHRASE)
