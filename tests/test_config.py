"""
Tests for Settings: defaults, environment overrides, validation, path expansion.
"""
from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from config import Settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Run from an empty directory so a developer's .env does not leak in."""
    monkeypatch.chdir(tmp_path)
    for name in ("CA_CERT_PATH", "CA_KEY_PATH", "CERT_KEY_SIZE", "ISSUER_BACKEND", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)


def test_defaults_point_at_ssl_build():
    s = Settings()
    assert s.CA_CERT_PATH == "~/ssl-build/RHN-ORG-TRUSTED-SSL-CERT"
    assert s.CA_KEY_PATH == "~/ssl-build/RHN-ORG-PRIVATE-SSL-KEY"
    assert s.ISSUER_BACKEND == "cryptography"
    assert s.EXTENSION_PROFILE == "extended"
    assert s.CERT_KEY_SIZE == 2048


def test_tilde_is_expanded(monkeypatch, tmp_path):
    monkeypatch.setenv("HOME", str(tmp_path))
    s = Settings()
    assert s.ca_cert_file == tmp_path / "ssl-build" / "RHN-ORG-TRUSTED-SSL-CERT"
    assert s.ca_key_file == tmp_path / "ssl-build" / "RHN-ORG-PRIVATE-SSL-KEY"
    assert s.output_dir == Path(".")


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("CA_CERT_PATH", "/etc/pki/ca.crt")
    monkeypatch.setenv("ISSUER_BACKEND", "openssl")
    s = Settings()
    assert s.ca_cert_file == Path("/etc/pki/ca.crt")
    assert s.ISSUER_BACKEND == "openssl"


def test_dotenv_file_is_read(tmp_path):
    (tmp_path / ".env").write_text("CA_KEY_PATH=/srv/ca/key.pem\n")
    assert Settings().CA_KEY_PATH == "/srv/ca/key.pem"


def test_small_key_size_rejected():
    with pytest.raises(ValidationError):
        Settings(CERT_KEY_SIZE=1024)


def test_unknown_backend_rejected():
    with pytest.raises(ValidationError):
        Settings(ISSUER_BACKEND="gnutls")


def test_log_level_normalised():
    assert Settings(LOG_LEVEL="debug").LOG_LEVEL == "DEBUG"
    with pytest.raises(ValidationError):
        Settings(LOG_LEVEL="chatty")
