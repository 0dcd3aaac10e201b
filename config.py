"""
Application configuration via Pydantic Settings.
All values can be overridden by environment variables or a .env file.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

MIN_KEY_SIZE = 2048


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── CA material ────────────────────────────────────────────────────────
    # "~" is expanded to the invoking user's home directory.
    CA_CERT_PATH: str = "~/ssl-build/RHN-ORG-TRUSTED-SSL-CERT"
    CA_KEY_PATH: str = "~/ssl-build/RHN-ORG-PRIVATE-SSL-KEY"
    # Empty = prompt for the passphrase when the CA key is encrypted
    CA_KEY_PASSPHRASE: str = ""

    # ── Output ─────────────────────────────────────────────────────────────
    CERT_OUTPUT_DIR: str = "."
    CERT_KEY_SIZE: int = MIN_KEY_SIZE

    # ── Toolkit ────────────────────────────────────────────────────────────
    ISSUER_BACKEND: Literal["cryptography", "openssl"] = "cryptography"
    OPENSSL_BINARY: str = "openssl"
    EXTENSION_PROFILE: Literal["extended", "basic"] = "extended"

    # ── Logging ────────────────────────────────────────────────────────────
    LOG_LEVEL: str = "INFO"

    @field_validator("CERT_KEY_SIZE")
    @classmethod
    def validate_key_size(cls, v: int) -> int:
        if v < MIN_KEY_SIZE:
            raise ValueError(f"CERT_KEY_SIZE must be at least {MIN_KEY_SIZE} bits")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"LOG_LEVEL {v!r} is not a logging level name")
        return level

    @property
    def ca_cert_file(self) -> Path:
        return Path(self.CA_CERT_PATH).expanduser()

    @property
    def ca_key_file(self) -> Path:
        return Path(self.CA_KEY_PATH).expanduser()

    @property
    def output_dir(self) -> Path:
        return Path(self.CERT_OUTPUT_DIR).expanduser()


# Module-level singleton read by the CLI, which hands it to the pipeline.
settings = Settings()
