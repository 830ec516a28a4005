"""
VaultManager: Async client for the vault service.

Provides the public API used by front ends:
- ``register(login, password)`` / ``login(login, password)``: obtain a bearer token
- ``add(record)``: encrypt sensitive fields and store the record
- ``get(kind)``: fetch and decrypt every record of a kind
- ``update(record)``: encrypt sensitive fields and replace the record
- ``delete(kind, uid)``: remove a record

Security Note:
    Plaintext never leaves this module: records are sealed before they are
    serialized and opened after they are parsed. Only log record kinds,
    uids and status codes.
"""
import logging
from typing import Any, Optional

import aiohttp
import orjson
from pydantic import ValidationError

from .exceptions import VaultRequestError
from .identity import KeyAndToken, bearer_header
from .records import VaultRecord, record_type
from .vault.config import ClientConfig
from .vault.fields import FieldCipher

logger = logging.getLogger("passkeeper.client")

_STATUS_MESSAGES = {
    400: "login or password is empty",
    401: "unauthorized",
    409: "login is already registered",
    500: "server error",
}


def _json_dumps(obj: Any) -> str:
    return orjson.dumps(obj).decode("utf-8")


class VaultManager:
    """Vault service client bound to one local key pair.

    The FieldCipher (and through it the key pair) is injected; the manager
    never loads or generates keys itself.
    """

    def __init__(
        self,
        fields: FieldCipher,
        config: Optional[ClientConfig] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self._fields = fields
        self._config = config or ClientConfig()
        self._session = session
        self._owns_session = session is None
        self._token: str = ""
        self._server_key = None

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> "VaultManager":
        self._ensure_session()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._config.request_timeout),
                json_serialize=_json_dumps,
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
        self._session = None

    @property
    def token(self) -> str:
        return self._token

    @property
    def server_public_key(self):
        """Service public key received at register/login (informational)."""
        return self._server_key

    @property
    def authenticated(self) -> bool:
        return bool(self._token)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _url(self, path: str) -> str:
        return f"{self._config.base_url}{path}"

    @staticmethod
    def _check(status: int, body: str, action: str) -> None:
        if status < 400:
            return
        message = _STATUS_MESSAGES.get(status, f"unexpected status {status}")
        if body:
            message = f"{message}: {body.strip()}"
        logger.warning("%s failed with status %d", action, status)
        raise VaultRequestError(f"{action}: {message}", status=status)

    @staticmethod
    def _malformed(action: str, status: int, err: Exception) -> VaultRequestError:
        logger.warning("%s returned a malformed reply: %s", action, type(err).__name__)
        return VaultRequestError(
            f"{action}: malformed service reply: {err}", status=status,
        )

    async def _send(self, path: str, payload: dict, action: str) -> None:
        session = self._ensure_session()
        async with session.post(
            self._url(path), json=payload, headers=bearer_header(self._token),
        ) as resp:
            body = await resp.text()
            self._check(resp.status, body, action)

    async def _authenticate(self, path: str, login: str, password: str) -> KeyAndToken:
        if not login or not password:
            raise VaultRequestError(_STATUS_MESSAGES[400], status=400)
        session = self._ensure_session()
        async with session.post(
            self._url(path), json={"login": login, "password": password},
        ) as resp:
            action = path.rsplit("/", 1)[-1]
            body = await resp.text()
            self._check(resp.status, body, action)
            try:
                # stdlib json keeps arbitrary precision RSA moduli intact
                answer = KeyAndToken.model_validate(await resp.json(content_type=None))
            except (ValueError, ValidationError) as err:
                raise self._malformed(action, resp.status, err) from err
        self._token = answer.token
        self._server_key = answer.server_public_key()
        return answer

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def register(self, login: str, password: str) -> KeyAndToken:
        """Register a new account and keep the issued token.

        Raises:
            VaultRequestError: 409 if the login exists, 400 if empty, or a
                reply without a usable token.
        """
        answer = await self._authenticate("/api/register", login, password)
        logger.info("Registered vault account %s", login)
        return answer

    async def login(self, login: str, password: str) -> KeyAndToken:
        """Log in and keep the issued token.

        Raises:
            VaultRequestError: 401 on wrong credentials, or a malformed reply.
        """
        answer = await self._authenticate("/api/login", login, password)
        logger.info("Logged in as %s", login)
        return answer

    async def add(self, record: VaultRecord) -> None:
        """Encrypt ``record``'s sensitive fields and store it.

        Raises:
            CipherError: If a field cannot be encrypted; nothing is sent.
            VaultRequestError: If the service rejects the record.
        """
        sealed = self._fields.seal(record)
        await self._send(f"/api/data/{record.kind}", sealed.to_wire(), f"add {record.kind}")
        logger.debug("Added %s record", record.kind)

    async def update(self, record: VaultRecord) -> None:
        """Encrypt ``record``'s sensitive fields and replace the stored one."""
        sealed = self._fields.seal(record)
        await self._send(
            f"/api/data/update/{record.kind}", sealed.to_wire(), f"update {record.kind}",
        )
        logger.debug("Updated %s record uid=%s", record.kind, record.uid)

    async def delete(self, kind: str, uid: int) -> None:
        """Delete the record ``uid`` of ``kind``."""
        cls = record_type(kind)
        await self._send(
            f"/api/data/delete/{kind}", cls(uid=uid).to_wire(), f"delete {kind}",
        )
        logger.debug("Deleted %s record uid=%s", kind, uid)

    async def get(self, kind: str) -> list[VaultRecord]:
        """Fetch every record of ``kind`` and decrypt it.

        Returns:
            Decrypted records; empty list when the service has none (204).

        Raises:
            CipherError: If any record fails to decrypt.
            VaultRequestError: On error statuses or a malformed reply.
        """
        cls = record_type(kind)
        session = self._ensure_session()
        async with session.get(
            self._url(f"/api/data/{kind}"), headers=bearer_header(self._token),
        ) as resp:
            if resp.status == 204:
                return []
            status = resp.status
            body = await resp.read()
            self._check(status, body.decode("utf-8", "replace"), f"get {kind}")
        try:
            rows = orjson.loads(body) if body else []
            if not isinstance(rows, list):
                raise ValueError(f"expected a JSON array, got {type(rows).__name__}")
            records = [cls.from_wire(row) for row in rows]
        except (ValueError, TypeError) as err:
            raise self._malformed(f"get {kind}", status, err) from err
        logger.debug("Fetched %d %s record(s)", len(records), kind)
        return self._fields.open_all(records)
