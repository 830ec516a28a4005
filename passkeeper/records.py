"""Vault records.

Four record shapes share one contract: a storage-assigned ``uid``, an
``owner_id`` supplied by the identity provider, and a set of sensitive byte
fields listed in ``sensitive_fields``. Only the sensitive fields are ever
encrypted; ``uid`` and ``owner_id`` pass through untouched.

On the wire a record is a JSON object whose sensitive fields are base64
strings. Field names match the vault service API.
"""
import base64
import binascii
from typing import Any, ClassVar, Optional

import orjson
from pydantic import BaseModel, ConfigDict, Field


class VaultRecord(BaseModel):
    """Base class for every record stored in the vault."""

    model_config = ConfigDict(populate_by_name=True)

    # field names holding secret bytes
    sensitive_fields: ClassVar[tuple[str, ...]] = ()
    # endpoint segment used by the vault service (/api/data/<kind>)
    kind: ClassVar[str] = ""

    uid: int = 0
    owner_id: Optional[str] = Field(default=None, exclude=True)

    def sensitive_values(self) -> dict[str, bytes]:
        return {name: getattr(self, name) for name in self.sensitive_fields}

    def to_wire(self) -> dict[str, Any]:
        """Return the JSON-ready mapping sent to the service.

        ``owner_id`` is never sent: the service derives it from the token.
        """
        data = self.model_dump(by_alias=True)
        for name in self.sensitive_fields:
            alias = self._alias(name)
            data[alias] = base64.b64encode(getattr(self, name)).decode("ascii")
        return data

    def to_json(self) -> bytes:
        return orjson.dumps(self.to_wire())

    @classmethod
    def from_wire(cls, data: dict[str, Any], owner_id: Optional[str] = None):
        """Build a record from a service JSON object.

        Sensitive fields are read under their wire name, or under their
        attribute name when the wire name is absent.

        Raises:
            ValueError: If a sensitive field is not valid base64.
        """
        values = dict(data)
        for name in cls.sensitive_fields:
            alias = cls._alias(name)
            # accept the attribute name too; the wire name wins when both are sent
            by_name = values.pop(name, None) if name != alias else None
            raw = values.get(alias, by_name)
            if raw is None:
                values[alias] = b""
                continue
            try:
                values[alias] = base64.b64decode(raw, validate=True)
            except (binascii.Error, TypeError) as err:
                raise ValueError(
                    f"{cls.__name__}.{name} is not valid base64"
                ) from err
        record = cls.model_validate(values)
        if owner_id is not None:
            record.owner_id = owner_id
        return record

    @classmethod
    def from_json(cls, payload: bytes | str, owner_id: Optional[str] = None):
        return cls.from_wire(orjson.loads(payload), owner_id=owner_id)

    @classmethod
    def _alias(cls, name: str) -> str:
        field = cls.model_fields[name]
        return field.alias or name


class Credential(VaultRecord):
    """Login/password pair."""

    sensitive_fields: ClassVar[tuple[str, ...]] = ("login", "secret")
    kind: ClassVar[str] = "password"

    uid: int = Field(default=0, alias="uid_pass")
    login: bytes = Field(default=b"", alias="data_pass")
    secret: bytes = Field(default=b"", alias="pass")


class Card(VaultRecord):
    """Payment card."""

    sensitive_fields: ClassVar[tuple[str, ...]] = ("number", "holder", "cvc")
    kind: ClassVar[str] = "cards"

    uid: int = Field(default=0, alias="UID")
    number: bytes = Field(default=b"", alias="number")
    holder: bytes = Field(default=b"", alias="name")
    cvc: bytes = Field(default=b"", alias="cvc")


class Note(VaultRecord):
    """Free text."""

    sensitive_fields: ClassVar[tuple[str, ...]] = ("text",)
    kind: ClassVar[str] = "text"

    uid: int = Field(default=0, alias="uid_text")
    text: bytes = Field(default=b"", alias="text")


class Blob(VaultRecord):
    """Arbitrary binary data."""

    sensitive_fields: ClassVar[tuple[str, ...]] = ("data",)
    kind: ClassVar[str] = "binary"

    uid: int = Field(default=0, alias="uid_binary")
    data: bytes = Field(default=b"", alias="data")


RECORD_TYPES: dict[str, type[VaultRecord]] = {
    cls.kind: cls for cls in (Credential, Card, Note, Blob)
}


def record_type(kind: str) -> type[VaultRecord]:
    """Return the record class served under ``kind``.

    Raises:
        KeyError: If ``kind`` is not a known record kind.
    """
    try:
        return RECORD_TYPES[kind]
    except KeyError:
        raise KeyError(
            f"Unknown record kind {kind!r} (expected one of {sorted(RECORD_TYPES)})"
        ) from None
