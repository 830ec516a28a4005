"""
Record field encryption.

Applies the chunked cipher to the sensitive fields of a vault record. Each
field is encrypted on its own, so the service can keep one opaque column per
field. ``uid`` and ``owner_id`` are never touched.

Records are never modified in place: a new record is returned only after
every field succeeded, so a failing field cannot leak a half-encrypted
record onto the wire.
"""
import logging
from collections.abc import Iterable
from typing import TypeVar

from cryptography.hazmat.primitives.asymmetric import rsa

from ..exceptions import CipherError
from ..records import VaultRecord
from .crypto import ChunkedCipher, OAEP_LABEL, decrypt, encrypt

logger = logging.getLogger("passkeeper.vault")

R = TypeVar("R", bound=VaultRecord)


def _transform(record: R, func, direction: str) -> R:
    updates = {}
    for name in record.sensitive_fields:
        try:
            updates[name] = func(getattr(record, name))
        except CipherError as err:
            err.field = name
            err.record_type = type(record).__name__
            logger.error(
                "Failed to %s %s.%s uid=%s: %s",
                direction, err.record_type, name, record.uid, type(err).__name__,
            )
            raise
    return record.model_copy(update=updates)


def encrypt_fields(
    record: R,
    public_key: rsa.RSAPublicKey,
    label: bytes = OAEP_LABEL,
) -> R:
    """Return a copy of ``record`` with every sensitive field encrypted.

    Raises:
        EncryptionFailure: Naming the field that failed.
    """
    return _transform(
        record, lambda value: encrypt(value, public_key, label), "encrypt",
    )


def decrypt_fields(
    record: R,
    private_key: rsa.RSAPrivateKey,
    label: bytes = OAEP_LABEL,
) -> R:
    """Return a copy of ``record`` with every sensitive field decrypted.

    Raises:
        CipherTextLengthInvalid: If a field is not a whole number of blocks.
        DecryptionFailure: Naming the field that failed.
    """
    return _transform(
        record, lambda value: decrypt(value, private_key, label), "decrypt",
    )


def decrypt_all(
    records: Iterable[R],
    private_key: rsa.RSAPrivateKey,
    label: bytes = OAEP_LABEL,
) -> list[R]:
    """Decrypt every record of a collection returned by the service."""
    return [decrypt_fields(record, private_key, label) for record in records]


class FieldCipher:
    """Encrypts and decrypts record fields with an injected ChunkedCipher."""

    def __init__(self, cipher: ChunkedCipher):
        self._cipher = cipher

    @property
    def cipher(self) -> ChunkedCipher:
        return self._cipher

    def seal(self, record: R) -> R:
        return _transform(record, self._cipher.encrypt, "encrypt")

    def open(self, record: R) -> R:
        return _transform(record, self._cipher.decrypt, "decrypt")

    def open_all(self, records: Iterable[R]) -> list[R]:
        return [self.open(record) for record in records]
