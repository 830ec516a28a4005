"""
Vault Configuration: Key store and client settings.

Reads settings from environment variables:
    CRYPTO_KEY_PATH = <directory holding the key material>
    CRYPTO_KEY = <private key file name>
    CRYPTO_KEY_SIZE = <RSA modulus size in bits>
    ADDRESS = <host:port of the vault service>

Security Note:
    Never log key material. Only log file paths, key sizes and fingerprints.
"""
import os
import logging
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger("passkeeper.vault")

DEFAULT_KEY_SIZE = 4096
MIN_KEY_SIZE = 2048

_TRUE_VALUES = ("1", "true", "yes", "on")


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUE_VALUES


class KeyStoreConfig(BaseModel):
    """Validated key store configuration."""

    key_dir: Path = Field(default=Path("."))
    private_key_file: str = Field(default="private.pem")
    public_key_file: str = Field(default="public.pem")
    cert_file: str = Field(default="cert.pem")
    key_size: int = Field(default=DEFAULT_KEY_SIZE)
    cert_organization: str = Field(default="passManager")
    cert_country: str = Field(default="RU")
    cert_validity_days: int = Field(default=3650, ge=1)
    regenerate_on_corruption: bool = Field(default=False)
    lock_timeout: float = Field(default=30.0, gt=0)

    @field_validator("key_size")
    @classmethod
    def validate_key_size(cls, v: int) -> int:
        """RSA modulus must be at least 2048 bits and byte aligned."""
        if v < MIN_KEY_SIZE:
            raise ValueError(
                f"key_size must be at least {MIN_KEY_SIZE} bits, got {v}"
            )
        if v % 256:
            raise ValueError(f"key_size must be a multiple of 256, got {v}")
        return v

    @field_validator("cert_country")
    @classmethod
    def validate_country(cls, v: str) -> str:
        """Certificate country must be an ISO 3166 two-letter code."""
        if len(v) != 2 or not v.isalpha():
            raise ValueError(f"cert_country must be a two-letter code: {v!r}")
        return v.upper()

    @field_validator("private_key_file", "public_key_file", "cert_file")
    @classmethod
    def validate_file_name(cls, v: str) -> str:
        if not v:
            raise ValueError("Key file name cannot be empty")
        return v

    @property
    def private_key_path(self) -> Path:
        return self.key_dir / self.private_key_file

    @property
    def public_key_path(self) -> Path:
        return self.key_dir / self.public_key_file

    @property
    def cert_path(self) -> Path:
        return self.key_dir / self.cert_file

    @classmethod
    def from_env(cls) -> "KeyStoreConfig":
        """Create KeyStoreConfig by loading values from environment.

        Unset variables fall back to the field defaults.

        Returns:
            Populated KeyStoreConfig instance.
        """
        values: dict = {}
        mapping = {
            "key_dir": "CRYPTO_KEY_PATH",
            "private_key_file": "CRYPTO_KEY",
            "public_key_file": "CRYPTO_PUBLIC_KEY",
            "cert_file": "CRYPTO_CERT",
            "key_size": "CRYPTO_KEY_SIZE",
            "cert_organization": "CRYPTO_CERT_ORG",
            "cert_country": "CRYPTO_CERT_COUNTRY",
            "cert_validity_days": "CRYPTO_CERT_DAYS",
            "lock_timeout": "CRYPTO_LOCK_TIMEOUT",
        }
        for field, env_name in mapping.items():
            raw = os.environ.get(env_name)
            if raw:
                values[field] = raw
        values["regenerate_on_corruption"] = _env_flag("CRYPTO_REGENERATE")
        config = cls(**values)
        logger.debug(
            "Key store config: dir=%s key_size=%d", config.key_dir, config.key_size,
        )
        return config


class ClientConfig(BaseModel):
    """Validated vault client configuration."""

    address: str = Field(default="localhost:8080")
    scheme: str = Field(default="http")
    request_timeout: float = Field(default=30.0, gt=0)

    @field_validator("scheme")
    @classmethod
    def validate_scheme(cls, v: str) -> str:
        """Validate URL scheme is supported."""
        if v not in ("http", "https"):
            raise ValueError(f"Unsupported scheme: {v}")
        return v

    @field_validator("address")
    @classmethod
    def validate_address(cls, v: str) -> str:
        v = v.strip().rstrip("/")
        if not v:
            raise ValueError("Vault service address cannot be empty")
        return v

    @property
    def base_url(self) -> str:
        if "://" in self.address:
            return self.address
        return f"{self.scheme}://{self.address}"

    @classmethod
    def from_env(cls) -> "ClientConfig":
        """Create ClientConfig by loading values from environment."""
        values: dict = {}
        address = os.environ.get("ADDRESS")
        if address:
            values["address"] = address
        timeout = os.environ.get("REQUEST_TIMEOUT")
        if timeout:
            values["request_timeout"] = timeout
        return cls(**values)
