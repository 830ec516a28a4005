"""Shared fixtures.

Key generation is the slow part of every test, so pairs are built once per
session at 2048 bits.
"""
import pytest

from passkeeper.exceptions import EncryptionFailure
from passkeeper.vault.config import KeyStoreConfig
from passkeeper.vault.crypto import ChunkedCipher
from passkeeper.vault.keystore import generate_key_pair

TEST_KEY_SIZE = 2048


@pytest.fixture(scope="session")
def key_pair():
    """Key pair A."""
    return generate_key_pair(TEST_KEY_SIZE)


@pytest.fixture(scope="session")
def other_key_pair():
    """Key pair B, unrelated to A."""
    return generate_key_pair(TEST_KEY_SIZE)


@pytest.fixture
def cipher(key_pair):
    return ChunkedCipher(key_pair)


class RefusingCipher(ChunkedCipher):
    """Encrypts ``allowed`` values, then refuses every later one."""

    def __init__(self, key_pair, allowed: int = 1):
        super().__init__(key_pair)
        self.allowed = allowed
        self.calls = 0

    def encrypt(self, plaintext: bytes) -> bytes:
        self.calls += 1
        if self.calls > self.allowed:
            raise EncryptionFailure("primitive refused the chunk")
        return super().encrypt(plaintext)


@pytest.fixture
def refusing_cipher(key_pair):
    """Cipher that fails on the second field it encrypts."""
    return RefusingCipher(key_pair)


@pytest.fixture
def keystore_config(tmp_path):
    """Key store config rooted in a temp dir with fast key size."""
    return KeyStoreConfig(key_dir=tmp_path, key_size=TEST_KEY_SIZE)
