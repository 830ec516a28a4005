"""
Vault Key Store: Load or bootstrap the client's RSA key pair.

On first run a key pair and a self-signed certificate are generated and
written to the key directory as PEM files:

    cert.pem     CERTIFICATE        X.509, self-signed, loopback only
    private.pem  RSA PRIVATE KEY    PKCS#1
    public.pem   RSA PUBLIC KEY     PKCS#1

Later runs load the same pair. Each file is written atomically (temp file then
rename) and generation runs under an exclusive lock file so
concurrent clients never mint two identities for the same directory.

Security Note:
    Never log key material. Only log paths and fingerprints.
"""
import os
import time
import errno
import fcntl
import hashlib
import logging
import datetime
import ipaddress
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from ..exceptions import (
    FileIOFailure,
    KeyGenerationFailure,
    KeyNotFound,
    KeyParseFailure,
)
from .config import KeyStoreConfig
from .crypto import key_size_bytes, max_chunk

logger = logging.getLogger("passkeeper.vault")

PUBLIC_EXPONENT = 65537
CERT_SERIAL = 1658
LOCK_FILE = ".keystore.lock"
_LOCK_POLL = 0.1

PathLike = Union[str, os.PathLike]


@dataclass(frozen=True)
class KeyPair:
    """RSA key pair, immutable once loaded."""

    private_key: rsa.RSAPrivateKey
    public_key: rsa.RSAPublicKey

    @property
    def key_size(self) -> int:
        return self.public_key.key_size

    @property
    def key_size_bytes(self) -> int:
        return key_size_bytes(self.public_key)

    @property
    def max_chunk(self) -> int:
        return max_chunk(self.public_key)

    def private_pem(self) -> bytes:
        return self.private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.TraditionalOpenSSL,
            encryption_algorithm=serialization.NoEncryption(),
        )

    def public_pem(self) -> bytes:
        return self.public_key.public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.PKCS1,
        )

    def fingerprint(self) -> str:
        """SHA-256 of the DER public key, hex encoded (32 chars)."""
        der = self.public_key.public_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PublicFormat.PKCS1,
        )
        return hashlib.sha256(der).hexdigest()[:32]

    def matches(self) -> bool:
        """True if the public key belongs to the private key."""
        return (
            self.private_key.public_key().public_numbers()
            == self.public_key.public_numbers()
        )


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

def _read_pem(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except (FileNotFoundError, NotADirectoryError) as err:
        raise KeyNotFound(f"Key file not found: {path}", path=str(path)) from err
    except OSError as err:
        raise KeyParseFailure(
            f"Key file exists but cannot be read: {path}: {err}",
            path=str(path),
        ) from err


def load_private_key(path: PathLike) -> rsa.RSAPrivateKey:
    """Load a PEM encoded RSA private key.

    Raises:
        KeyNotFound: If the file does not exist.
        KeyParseFailure: If the file is unreadable or not an RSA key.
    """
    path = Path(path)
    data = _read_pem(path)
    try:
        key = serialization.load_pem_private_key(data, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as err:
        raise KeyParseFailure(
            f"Malformed private key file: {path}", path=str(path)
        ) from err
    if not isinstance(key, rsa.RSAPrivateKey):
        raise KeyParseFailure(
            f"Private key in {path} is not an RSA key", path=str(path)
        )
    return key


def load_public_key(path: PathLike) -> rsa.RSAPublicKey:
    """Load a PEM encoded RSA public key (PKCS#1 or SubjectPublicKeyInfo).

    Raises:
        KeyNotFound: If the file does not exist.
        KeyParseFailure: If the file is unreadable or not an RSA key.
    """
    path = Path(path)
    data = _read_pem(path)
    try:
        key = serialization.load_pem_public_key(data)
    except (ValueError, TypeError, UnsupportedAlgorithm) as err:
        raise KeyParseFailure(
            f"Malformed public key file: {path}", path=str(path)
        ) from err
    if not isinstance(key, rsa.RSAPublicKey):
        raise KeyParseFailure(
            f"Public key in {path} is not an RSA key", path=str(path)
        )
    return key


def load_key_pair(private_path: PathLike, public_path: PathLike) -> KeyPair:
    """Load both halves of a key pair and check they belong together.

    Raises:
        KeyNotFound: If either file is absent.
        KeyParseFailure: If either file is malformed or the keys differ.
    """
    private_key = load_private_key(private_path)
    public_key = load_public_key(public_path)
    pair = KeyPair(private_key=private_key, public_key=public_key)
    if not pair.matches():
        raise KeyParseFailure(
            f"Public key {public_path} does not match private key {private_path}",
            path=str(public_path),
        )
    return pair


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------

def generate_key_pair(key_size: int) -> KeyPair:
    """Generate a fresh RSA key pair from the OS random source.

    Raises:
        KeyGenerationFailure: If the backend refuses to generate the key.
    """
    try:
        private_key = rsa.generate_private_key(
            public_exponent=PUBLIC_EXPONENT, key_size=key_size,
        )
    except (ValueError, UnsupportedAlgorithm) as err:
        raise KeyGenerationFailure(
            f"Unable to generate a {key_size}-bit RSA key: {err}"
        ) from err
    return KeyPair(private_key=private_key, public_key=private_key.public_key())


def build_certificate(
    key_pair: KeyPair,
    config: KeyStoreConfig,
    now: Optional[datetime.datetime] = None,
) -> x509.Certificate:
    """Build a self-signed certificate for ``key_pair``.

    The certificate is restricted to 127.0.0.1 and ::1 and is valid from
    ``now`` for ``config.cert_validity_days`` days.

    Raises:
        KeyGenerationFailure: If signing fails.
    """
    now = now or datetime.datetime.now(datetime.timezone.utc)
    subject = x509.Name([
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, config.cert_organization),
        x509.NameAttribute(NameOID.COUNTRY_NAME, config.cert_country),
    ])
    try:
        builder = (
            x509.CertificateBuilder()
            .subject_name(subject)
            .issuer_name(subject)
            .public_key(key_pair.public_key)
            .serial_number(CERT_SERIAL)
            .not_valid_before(now)
            .not_valid_after(now + datetime.timedelta(days=config.cert_validity_days))
            .add_extension(
                x509.SubjectAlternativeName([
                    x509.IPAddress(ipaddress.IPv4Address("127.0.0.1")),
                    x509.IPAddress(ipaddress.IPv6Address("::1")),
                ]),
                critical=False,
            )
            .add_extension(
                x509.SubjectKeyIdentifier.from_public_key(key_pair.public_key),
                critical=False,
            )
            .add_extension(
                x509.KeyUsage(
                    digital_signature=True,
                    content_commitment=False,
                    key_encipherment=False,
                    data_encipherment=False,
                    key_agreement=False,
                    key_cert_sign=False,
                    crl_sign=False,
                    encipher_only=False,
                    decipher_only=False,
                ),
                critical=True,
            )
            .add_extension(
                x509.ExtendedKeyUsage([
                    ExtendedKeyUsageOID.CLIENT_AUTH,
                    ExtendedKeyUsageOID.SERVER_AUTH,
                ]),
                critical=False,
            )
        )
        return builder.sign(private_key=key_pair.private_key, algorithm=hashes.SHA256())
    except (ValueError, TypeError) as err:
        raise KeyGenerationFailure(
            f"Unable to build self-signed certificate: {err}"
        ) from err


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------

def write_atomic(path: PathLike, data: bytes, mode: int = 0o644) -> None:
    """Write ``data`` to ``path`` so readers see the old file or the new one.

    Raises:
        FileIOFailure: If the directory or the file cannot be written.
    """
    path = Path(path)
    tmp_name = None
    try:
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{path.name}.", suffix=".tmp", dir=path.parent,
        )
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, path)
        tmp_name = None
    except OSError as err:
        raise FileIOFailure(
            f"Unable to write key artifact {path}: {err}", path=str(path)
        ) from err
    finally:
        if tmp_name is not None:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass


class _DirectoryLock:
    """Exclusive ``flock`` on a lock file inside the key directory."""

    def __init__(self, directory: Path, timeout: float):
        self._path = directory / LOCK_FILE
        self._timeout = timeout
        self._fd: Optional[int] = None

    def __enter__(self) -> "_DirectoryLock":
        try:
            self._fd = os.open(self._path, os.O_RDWR | os.O_CREAT, 0o600)
        except OSError as err:
            raise FileIOFailure(
                f"Unable to open lock file {self._path}: {err}",
                path=str(self._path),
            ) from err
        deadline = time.monotonic() + self._timeout
        while True:
            try:
                fcntl.flock(self._fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                return self
            except OSError as err:
                if err.errno not in (errno.EAGAIN, errno.EACCES):
                    self._close()
                    raise FileIOFailure(
                        f"Unable to lock {self._path}: {err}",
                        path=str(self._path),
                    ) from err
                if time.monotonic() >= deadline:
                    self._close()
                    raise FileIOFailure(
                        f"Timed out waiting for key store lock {self._path}",
                        path=str(self._path),
                    ) from err
                time.sleep(_LOCK_POLL)

    def __exit__(self, *exc) -> None:
        if self._fd is not None:
            fcntl.flock(self._fd, fcntl.LOCK_UN)
        self._close()

    def _close(self) -> None:
        if self._fd is not None:
            os.close(self._fd)
            self._fd = None


def persist_key_material(
    key_pair: KeyPair,
    certificate: x509.Certificate,
    private_path: Path,
    public_path: Path,
    cert_path: Path,
) -> None:
    """Write certificate, private key and public key.

    The public key goes last: a pair is only loadable once both halves are in
    place, so an interrupted run leaves nothing that loads as a valid pair.
    """
    write_atomic(
        cert_path, certificate.public_bytes(serialization.Encoding.PEM), 0o644,
    )
    write_atomic(private_path, key_pair.private_pem(), 0o600)
    write_atomic(public_path, key_pair.public_pem(), 0o644)


def _resolve(path: PathLike, output_dir: Path) -> Path:
    path = Path(path)
    return path if path.is_absolute() else output_dir / path


def load_or_create(
    private_path: PathLike,
    public_path: PathLike,
    output_dir: PathLike,
    config: Optional[KeyStoreConfig] = None,
) -> KeyPair:
    """Load the client key pair, generating it on first run.

    Relative key paths are resolved against ``output_dir`` so generation
    writes exactly where the next load will read.

    Args:
        private_path: Private key file.
        public_path: Public key file.
        output_dir: Directory for generated artifacts and the lock file.
        config: Key size, certificate subject and recovery policy.

    Returns:
        The loaded or freshly generated KeyPair.

    Raises:
        KeyParseFailure: If key files exist but are malformed and
            ``config.regenerate_on_corruption`` is false.
        KeyGenerationFailure: If a new pair cannot be generated.
        FileIOFailure: If an artifact cannot be written.
    """
    output_dir = Path(output_dir)
    config = config or KeyStoreConfig(key_dir=output_dir)
    private_path = _resolve(private_path, output_dir)
    public_path = _resolve(public_path, output_dir)
    cert_path = _resolve(config.cert_file, output_dir)

    try:
        pair = load_key_pair(private_path, public_path)
        logger.debug("Loaded key pair %s from %s", pair.fingerprint(), private_path)
        return pair
    except KeyNotFound as err:
        logger.info("No key pair at %s (%s), generating", output_dir, err)
    except KeyParseFailure as err:
        if not config.regenerate_on_corruption:
            logger.error("Key material at %s is unusable: %s", output_dir, err)
            raise
        logger.warning("Replacing unusable key material at %s: %s", output_dir, err)

    try:
        output_dir.mkdir(parents=True, exist_ok=True)
    except OSError as err:
        raise FileIOFailure(
            f"Unable to create key directory {output_dir}: {err}",
            path=str(output_dir),
        ) from err

    with _DirectoryLock(output_dir, config.lock_timeout):
        # another process may have finished generating while we waited
        try:
            pair = load_key_pair(private_path, public_path)
            logger.info("Key pair %s created by a concurrent client", pair.fingerprint())
            return pair
        except KeyNotFound:
            pass
        except KeyParseFailure:
            if not config.regenerate_on_corruption:
                raise

        pair = generate_key_pair(config.key_size)
        certificate = build_certificate(pair, config)
        persist_key_material(pair, certificate, private_path, public_path, cert_path)

    logger.info(
        "Generated %d-bit key pair %s in %s",
        pair.key_size, pair.fingerprint(), output_dir,
    )
    return pair


def load_from_config(config: KeyStoreConfig) -> KeyPair:
    """Shortcut for :func:`load_or_create` with paths taken from ``config``."""
    return load_or_create(
        config.private_key_file,
        config.public_key_file,
        config.key_dir,
        config=config,
    )
