"""
Vault Crypto Core: Chunked RSA-OAEP encryption of arbitrary length fields.

A single RSA-OAEP call accepts at most ``key_bytes - 2*hash_bytes - 2``
plaintext bytes and always emits ``key_bytes`` ciphertext bytes. Longer
values are split into chunks, each encrypted independently:

    plaintext  = [chunk 0][chunk 1]...[chunk n-1]   (each <= max_chunk)
    ciphertext = [block 0][block 1]...[block n-1]   (each == key_bytes)

Padding is OAEP(MGF1(SHA-256), SHA-256) with a fixed label, so encrypting the
same value twice yields different ciphertext.

Security Note:
    Never log plaintext or ciphertext values.
    Any decryption error is final; a wrong key cannot succeed on retry.
"""
import logging

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from ..exceptions import (
    CipherTextLengthInvalid,
    DecryptionFailure,
    EncryptionFailure,
)

logger = logging.getLogger("passkeeper.vault")

OAEP_LABEL = b"OAEP Encrypted"
HASH_SIZE = hashes.SHA256.digest_size  # 32 bytes


def _oaep(label: bytes = OAEP_LABEL) -> padding.OAEP:
    return padding.OAEP(
        mgf=padding.MGF1(algorithm=hashes.SHA256()),
        algorithm=hashes.SHA256(),
        label=label,
    )


def key_size_bytes(key: rsa.RSAPublicKey | rsa.RSAPrivateKey) -> int:
    """Size in bytes of one ciphertext block for ``key``."""
    return (key.key_size + 7) // 8


def max_chunk(key: rsa.RSAPublicKey | rsa.RSAPrivateKey) -> int:
    """Largest plaintext chunk a single OAEP call accepts for ``key``."""
    return key_size_bytes(key) - 2 * HASH_SIZE - 2


# ---------------------------------------------------------------------------
# Chunked encryption
# ---------------------------------------------------------------------------

def encrypt(
    plaintext: bytes,
    public_key: rsa.RSAPublicKey,
    label: bytes = OAEP_LABEL,
) -> bytes:
    """Encrypt ``plaintext`` of any length under ``public_key``.

    Args:
        plaintext: Data to encrypt. Empty input yields empty output.
        public_key: RSA public key of the vault owner.
        label: OAEP label for domain separation.

    Returns:
        Concatenated ciphertext blocks, ``ceil(len / max_chunk) * key_bytes``
        bytes long.

    Raises:
        EncryptionFailure: If the primitive rejects a chunk.
    """
    step = max_chunk(public_key)
    pad = _oaep(label)
    blocks = []
    for start in range(0, len(plaintext), step):
        try:
            blocks.append(
                public_key.encrypt(bytes(plaintext[start:start + step]), pad)
            )
        except (ValueError, TypeError) as err:
            raise EncryptionFailure(
                f"Failed to encrypt chunk at offset {start}: {err}"
            ) from err
    return b"".join(blocks)


def decrypt(
    ciphertext: bytes,
    private_key: rsa.RSAPrivateKey,
    label: bytes = OAEP_LABEL,
) -> bytes:
    """Decrypt the output of :func:`encrypt`.

    Args:
        ciphertext: Concatenated ciphertext blocks.
        private_key: RSA private key matching the encrypting public key.
        label: OAEP label used on encryption.

    Returns:
        Recovered plaintext bytes.

    Raises:
        CipherTextLengthInvalid: If the length is not a multiple of the
            key block size.
        DecryptionFailure: If any block fails to decrypt.
    """
    step = key_size_bytes(private_key)
    if len(ciphertext) % step:
        raise CipherTextLengthInvalid(
            f"ciphertext length {len(ciphertext)} is not a multiple of "
            f"the {step}-byte block size"
        )
    pad = _oaep(label)
    chunks = []
    for start in range(0, len(ciphertext), step):
        try:
            chunks.append(
                private_key.decrypt(bytes(ciphertext[start:start + step]), pad)
            )
        except ValueError as err:
            raise DecryptionFailure(
                f"Failed to decrypt block {start // step}"
            ) from err
    return b"".join(chunks)


class ChunkedCipher:
    """Chunked RSA-OAEP cipher bound to one key pair.

    The key pair is injected once at startup and never changes afterwards.
    """

    def __init__(self, key_pair, label: bytes = OAEP_LABEL):
        self._key_pair = key_pair
        self._label = label

    @property
    def key_pair(self):
        return self._key_pair

    @property
    def block_size(self) -> int:
        return key_size_bytes(self._key_pair.public_key)

    @property
    def max_chunk(self) -> int:
        return max_chunk(self._key_pair.public_key)

    def encrypt(self, plaintext: bytes) -> bytes:
        return encrypt(plaintext, self._key_pair.public_key, self._label)

    def decrypt(self, ciphertext: bytes) -> bytes:
        return decrypt(ciphertext, self._key_pair.private_key, self._label)

    def ciphertext_size(self, plaintext_size: int) -> int:
        """Length of the ciphertext produced for ``plaintext_size`` bytes."""
        blocks = -(-plaintext_size // self.max_chunk)
        return blocks * self.block_size
