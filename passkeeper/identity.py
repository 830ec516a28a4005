"""Boundary between the vault client and the vault service.

The service only ever receives ciphertext. At registration and login it
answers with its own public key and an opaque bearer token; the client keeps
the token for every later request. The service key is informational: field
encryption always uses the client's own key pair.
"""
from dataclasses import dataclass
from typing import Any, Optional, Protocol, Union, runtime_checkable

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from pydantic import BaseModel, Field, field_validator

from .exceptions import IdentityError
from .records import VaultRecord

AUTHORIZATION_HEADER = "Authorization"
BEARER_SCHEME = "Bearer"


@dataclass(frozen=True)
class OwnerIdentity:
    """Owner of a request, as resolved by the identity provider."""

    owner_id: str

    def __post_init__(self):
        if not self.owner_id:
            raise IdentityError("owner_id cannot be empty")

    def __str__(self) -> str:
        return self.owner_id


class KeyAndToken(BaseModel):
    """Registration/login answer: service public key plus bearer token.

    ``key`` is either PEM text or the ``{"N": <modulus>, "E": <exponent>}``
    object the service serializes its RSA key as.
    """

    key: Union[str, dict[str, int], None] = None
    token: str = Field(min_length=1)

    @field_validator("key")
    @classmethod
    def validate_key(cls, v: Any) -> Any:
        if isinstance(v, dict) and not {"N", "E"} <= set(v):
            raise ValueError("RSA key object must carry 'N' and 'E'")
        return v

    def server_public_key(self) -> Optional[rsa.RSAPublicKey]:
        """Parse the service key; ``None`` when the service sent none.

        Raises:
            IdentityError: If the key cannot be parsed.
        """
        if self.key is None:
            return None
        if isinstance(self.key, dict):
            try:
                return rsa.RSAPublicNumbers(
                    e=int(self.key["E"]), n=int(self.key["N"]),
                ).public_key()
            except (ValueError, TypeError) as err:
                raise IdentityError(f"Invalid service public key: {err}") from err
        try:
            key = serialization.load_pem_public_key(self.key.encode("ascii"))
        except (ValueError, TypeError, UnsupportedAlgorithm) as err:
            raise IdentityError(f"Invalid service public key: {err}") from err
        if not isinstance(key, rsa.RSAPublicKey):
            raise IdentityError("Service public key is not an RSA key")
        return key

    @classmethod
    def for_key(cls, public_key: rsa.RSAPublicKey, token: str) -> "KeyAndToken":
        pem = public_key.public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.PKCS1,
        )
        return cls(key=pem.decode("ascii"), token=token)


def bearer_header(token: str) -> dict[str, str]:
    """Authorization header carrying ``token``."""
    if not token:
        raise IdentityError("Not authenticated: no bearer token, call login() first")
    return {AUTHORIZATION_HEADER: f"{BEARER_SCHEME} {token}"}


def parse_bearer(header: Optional[str]) -> str:
    """Extract the token from an ``Authorization: Bearer <token>`` value.

    Raises:
        IdentityError: If the header is empty or malformed.
    """
    if not header:
        raise IdentityError("empty auth header")
    parts = header.split(" ")
    if len(parts) != 2 or parts[0] != BEARER_SCHEME or not parts[1]:
        raise IdentityError("invalid auth header")
    return parts[1]


@runtime_checkable
class IdentityProvider(Protocol):
    """Issues and verifies opaque bearer tokens."""

    def issue_token(self, owner: OwnerIdentity) -> KeyAndToken:
        ...

    def verify_token(self, token: str) -> OwnerIdentity:
        ...


@runtime_checkable
class BlindStore(Protocol):
    """Persists encrypted records it cannot read, keyed by owner and uid."""

    def put(self, owner: OwnerIdentity, record: VaultRecord) -> int:
        ...

    def get(self, owner: OwnerIdentity, kind: str) -> list[VaultRecord]:
        ...

    def update(self, owner: OwnerIdentity, record: VaultRecord) -> None:
        ...

    def delete(self, owner: OwnerIdentity, kind: str, uid: int) -> None:
        ...
