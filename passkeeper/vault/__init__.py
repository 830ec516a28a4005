"""Vault: client-side field encryption for the password keeper.

Security Note (Threat Model):
    The vault service is a blind store: it only ever receives ciphertext
    produced with the client's RSA public key. The private key never leaves
    the key directory of the client. Decrypted values live in process memory
    while they are displayed; protecting that memory is out of scope.
"""

from .config import KeyStoreConfig, ClientConfig
from .crypto import ChunkedCipher, encrypt, decrypt, max_chunk, key_size_bytes
from .keystore import KeyPair, load_or_create, load_from_config
from .fields import FieldCipher, encrypt_fields, decrypt_fields, decrypt_all

__all__ = [
    "KeyStoreConfig",
    "ClientConfig",
    "ChunkedCipher",
    "encrypt",
    "decrypt",
    "max_chunk",
    "key_size_bytes",
    "KeyPair",
    "load_or_create",
    "load_from_config",
    "FieldCipher",
    "encrypt_fields",
    "decrypt_fields",
    "decrypt_all",
]
