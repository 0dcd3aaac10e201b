"""
Leaf certificate issuance pipeline.

  preflight → derive subject → validity window → key → CSR → sign

Nothing is written to disk until preflight, subject derivation and the
validity check have all passed.  From key generation onward every created
file is held by an ArtifactGuard: on success only the key and certificate
remain, on any failure (or interrupt) all of them are removed.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

from config import Settings
from issuer.backends import IssuerBackend, make_backend
from issuer.errors import PreconditionError
from issuer.extensions import ExtensionPlan
from issuer.subject import Component, derive_subject, format_subject, strip_keys_for_profile
from issuer.validity import compute_validity_days
from storage.artifacts import ArtifactGuard

logger = logging.getLogger(__name__)


@dataclass
class IssueRequest:
    fqdn: str
    sans: list[str] = field(default_factory=list)
    email: str | None = None


@dataclass
class OutputPaths:
    key: Path
    csr: Path
    cert: Path

    @classmethod
    def for_fqdn(cls, output_dir: Path, fqdn: str) -> "OutputPaths":
        return cls(
            key=output_dir / f"{fqdn}.key.pem",
            csr=output_dir / f"{fqdn}.csr.pem",
            cert=output_dir / f"{fqdn}.crt.pem",
        )


@dataclass
class IssueResult:
    key_path: Path
    cert_path: Path
    subject: str
    validity_days: int


def preflight(request: IssueRequest, settings: Settings, backend: IssuerBackend) -> OutputPaths:
    """
    Check everything that can be checked without side effects.

    Raises ToolkitMissingError or PreconditionError; creates nothing.
    """
    fqdn = request.fqdn.strip() if request.fqdn else ""
    if not fqdn:
        raise PreconditionError("No FQDN provided.")
    if "/" in fqdn or "\\" in fqdn or fqdn in (".", ".."):
        raise PreconditionError(f"FQDN {fqdn!r} cannot be used as a file name.")

    backend.check_environment()

    ca_cert, ca_key = settings.ca_cert_file, settings.ca_key_file
    if not ca_cert.is_file() or not ca_key.is_file():
        raise PreconditionError(
            "CA certificate or key not found at the specified paths.\n"
            f"CA Certificate expected at: {ca_cert}\n"
            f"CA Key expected at: {ca_key}"
        )

    paths = OutputPaths.for_fqdn(settings.output_dir, fqdn)
    if paths.cert.exists():
        raise PreconditionError(f"Certificate file '{paths.cert}' already exists. Aborting.")
    if paths.key.exists():
        raise PreconditionError(f"Private key file '{paths.key}' already exists. Aborting.")
    if paths.csr.exists():
        raise PreconditionError(
            f"CSR file '{paths.csr}' already exists, possibly left by an interrupted run. "
            "Remove it and retry."
        )
    return paths


def derive_leaf_subject(
    request: IssueRequest,
    settings: Settings,
    backend: IssuerBackend,
) -> list[Component]:
    """Read the CA subject and turn it into the leaf subject."""
    logger.info("Reading subject info from CA...")
    ca_components = backend.read_ca_subject(settings.ca_cert_file)
    return derive_subject(
        ca_components,
        request.fqdn.strip(),
        email=request.email or None,
        strip=strip_keys_for_profile(settings.EXTENSION_PROFILE),
    )


@contextmanager
def _creating(guard: ArtifactGuard, path: Path, transient: bool = False) -> Iterator[None]:
    """Track *path* while a backend creates it; a file another writer published is never ours."""
    try:
        guard.track(path, transient=transient)
        yield
    except FileExistsError as exc:
        guard.release(path)
        raise PreconditionError(
            f"File '{path}' appeared while issuing; another run may be using it. Aborting."
        ) from exc


def issue_certificate(
    request: IssueRequest,
    settings: Settings,
    backend: IssuerBackend | None = None,
    now: datetime | None = None,
) -> IssueResult:
    """
    Issue ``<fqdn>.key.pem`` and ``<fqdn>.crt.pem`` signed by the configured CA.

    Raises an IssuanceError subclass on any failure, after removing every file
    this call created.
    """
    if backend is None:
        backend = make_backend(settings)
    if now is None:
        now = datetime.now(tz=timezone.utc)
    now = now.replace(microsecond=0)

    paths = preflight(request, settings, backend)
    fqdn = request.fqdn.strip()
    logger.info("--- Starting Certificate Generation for: %s (backend=%s) ---", fqdn, backend.name)

    subject = derive_leaf_subject(request, settings, backend)
    subject_text = format_subject(subject)
    logger.info("New certificate subject will be: %s", subject_text)

    logger.info("Reading expiration date from CA...")
    not_after = backend.read_ca_not_after(settings.ca_cert_file)
    validity_days = compute_validity_days(not_after, now)
    logger.info(
        "CA expires in %d days. Setting new certificate validity to %d days.",
        validity_days + 1,
        validity_days,
    )

    plan = ExtensionPlan(fqdn=fqdn, sans=list(request.sans), profile=settings.EXTENSION_PROFILE)
    if request.sans:
        logger.info("SANs requested: %s", ", ".join(request.sans))

    with ArtifactGuard() as guard:
        guard.make_dirs(paths.key.parent)

        logger.info("Generating private key: %s...", paths.key)
        with _creating(guard, paths.key):
            backend.generate_key(paths.key, settings.CERT_KEY_SIZE)

        logger.info("Generating CSR: %s...", paths.csr)
        with _creating(guard, paths.csr, transient=True):
            backend.create_csr(paths.key, paths.csr, subject)

        logger.info("Signing certificate with CA key...")
        with _creating(guard, paths.cert):
            backend.sign(
                paths.csr,
                paths.cert,
                settings.ca_cert_file,
                settings.ca_key_file,
                validity_days,
                plan,
                now,
            )

    return IssueResult(
        key_path=paths.key,
        cert_path=paths.cert,
        subject=subject_text,
        validity_days=validity_days,
    )
