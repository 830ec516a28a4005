"""Passkeeper.

Client for a remote password vault that never sees plaintext.
"""
from .version import __version__
from .exceptions import (
    VaultError,
    KeyNotFound,
    KeyParseFailure,
    KeyGenerationFailure,
    FileIOFailure,
    CipherTextLengthInvalid,
    EncryptionFailure,
    DecryptionFailure,
)
from .records import Credential, Card, Note, Blob, VaultRecord

__all__ = [
    "__version__",
    "VaultError",
    "KeyNotFound",
    "KeyParseFailure",
    "KeyGenerationFailure",
    "FileIOFailure",
    "CipherTextLengthInvalid",
    "EncryptionFailure",
    "DecryptionFailure",
    "Credential",
    "Card",
    "Note",
    "Blob",
    "VaultRecord",
]
