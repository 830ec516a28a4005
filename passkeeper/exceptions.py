"""
Vault Exceptions: error kinds raised by the key store, the chunked cipher,
the field orchestrator and the HTTP client.

Nothing in passkeeper terminates the process; every failure is raised to the
caller, who decides whether it is fatal.
"""
from typing import Optional


class VaultError(Exception):
    """Base class for every passkeeper error."""


# ---------------------------------------------------------------------------
# Key store
# ---------------------------------------------------------------------------

class KeyStoreError(VaultError):
    """Key material could not be loaded or produced."""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


class KeyNotFound(KeyStoreError):
    """A key file is absent. Safe to generate a new pair."""


class KeyParseFailure(KeyStoreError):
    """A key file exists but cannot be decoded, or the pair does not match."""


class KeyGenerationFailure(KeyStoreError):
    """Key pair or certificate generation failed."""


class FileIOFailure(KeyStoreError):
    """A key artifact could not be opened or written."""


# ---------------------------------------------------------------------------
# Cipher
# ---------------------------------------------------------------------------

class CipherError(VaultError):
    """Chunked cipher failure.

    ``field`` and ``record_type`` are filled by the field orchestrator so the
    caller knows which part of which record failed.
    """

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        record_type: Optional[str] = None,
    ):
        super().__init__(message)
        self.field = field
        self.record_type = record_type

    def __str__(self) -> str:
        msg = super().__str__()
        if self.field:
            return f"{self.record_type or 'record'}.{self.field}: {msg}"
        return msg


class CipherTextLengthInvalid(CipherError):
    """Ciphertext length is not a multiple of the key block size."""


class EncryptionFailure(CipherError):
    """The asymmetric primitive refused to encrypt a chunk."""


class DecryptionFailure(CipherError):
    """A block could not be decrypted (wrong key, wrong label or tampering)."""


# ---------------------------------------------------------------------------
# Boundary
# ---------------------------------------------------------------------------

class IdentityError(VaultError):
    """Missing or malformed bearer credential."""


class VaultRequestError(VaultError):
    """The vault service answered with an error status."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status
