"""Nostr identity storage for nostrcli.

Generates, encrypts, persists and loads the user's single identity keypair.
The file is a versioned JSON envelope so that later releases can change the
encryption scheme without breaking existing identities:

```text
{"version": 1, "scheme": "scrypt-aes256gcm", "pubkey": "<hex>",
 "kdf": {"n": 32768, "r": 8, "p": 1, "salt": "<b64>"},
 "nonce": "<b64>", "ciphertext": "<b64>"}

{"version": 1, "scheme": "plaintext", "pubkey": "<hex>", "secret_key": "<hex>"}
```

With a password, the secret is sealed with AES-256-GCM under a scrypt-derived
key. The envelope header (version, scheme, pubkey) is bound as associated
data, so the cached public key cannot be swapped without ``load()`` failing.
Without a password the secret is stored in hex with ``0600`` permissions and
an ``identity_unprotected`` warning is logged; set
``allow_unencrypted=False`` to refuse this instead.

Files written by earlier releases (``{"secret_key": ..., "password": ...}``,
no ``version`` field) are still readable and are treated as version 0.

Warning:
    Secret keys and passwords are never logged. A
    [Keypair][nostrcli.models.keys.Keypair] returned by
    [load()][nostrcli.utils.keys.KeyStore.load] should be held only for the
    duration of the session that needs it.

Examples:
    ```python
    store = KeyStore(KeyStoreConfig(path="~/.nostr-cli-app/keys.json"))
    keypair = store.generate()
    store.encrypt_and_persist(keypair, "correct horse")
    store.public_key()            # no password needed
    store.load("correct horse")   # Keypair
    ```
"""

from __future__ import annotations

import base64
import binascii
import hmac
import json
import logging
import os
from pathlib import Path
from typing import Any

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt
from pydantic import BaseModel, Field, field_validator

from nostrcli.exceptions import (
    AuthenticationError,
    ConfigurationError,
    NotFoundError,
    StorageError,
)
from nostrcli.models._validation import is_hex
from nostrcli.models.keys import Keypair
from nostrcli.utils.files import atomic_write


logger = logging.getLogger("utils.keys")

DEFAULT_DATA_DIR = Path("~/.nostr-cli-app")
ENVELOPE_VERSION = 1
SCHEME_ENCRYPTED = "scrypt-aes256gcm"
SCHEME_PLAINTEXT = "plaintext"

_KEY_SIZE = 32
_NONCE_SIZE = 12


class ScryptConfig(BaseModel):
    """Cost parameters for the scrypt key-derivation function.

    The defaults (``n=2**15, r=8``) use 32 MiB of memory per derivation.
    Parameters are recorded in each envelope, so changing them only affects
    newly written files.
    """

    n: int = Field(default=2**15, ge=2, description="CPU/memory cost (power of two)")
    r: int = Field(default=8, ge=1, description="Block size")
    p: int = Field(default=1, ge=1, description="Parallelization")
    salt_size: int = Field(default=16, ge=16, le=64, description="Random salt length in bytes")

    @field_validator("n")
    @classmethod
    def _power_of_two(cls, v: int) -> int:
        if v & (v - 1):
            raise ValueError("n must be a power of two")
        return v


class KeyStoreConfig(BaseModel):
    """Where and how the identity is stored.

    Attributes:
        path: Location of the key envelope (``~`` is expanded).
        kdf: Scrypt parameters for password-protected envelopes.
        allow_unencrypted: Permit password-less storage (with a warning).
    """

    path: Path = Field(default=DEFAULT_DATA_DIR / "keys.json", validate_default=True)
    kdf: ScryptConfig = Field(default_factory=ScryptConfig)
    allow_unencrypted: bool = Field(default=True)

    @field_validator("path")
    @classmethod
    def _expand_path(cls, v: Path) -> Path:
        return v.expanduser()


def _b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _b64decode(value: Any, name: str) -> bytes:
    if not isinstance(value, str):
        raise AuthenticationError(f"key file field {name!r} is missing or not a string")
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        raise AuthenticationError(f"key file field {name!r} is not valid base64") from None


def _associated_data(version: int, scheme: str, pubkey: str) -> bytes:
    header = {"version": version, "scheme": scheme, "pubkey": pubkey}
    return json.dumps(header, sort_keys=True, separators=(",", ":")).encode("utf-8")


def _derive_key(password: str, salt: bytes, n: int, r: int, p: int) -> bytes:
    return Scrypt(salt=salt, length=_KEY_SIZE, n=n, r=r, p=p).derive(password.encode("utf-8"))


class KeyStore:
    """Owns the on-disk identity envelope.

    Not safe for concurrent writers: a single CLI process owns the file.

    See Also:
        [KeyStoreConfig][nostrcli.utils.keys.KeyStoreConfig]: Storage options.
        [Client][nostrcli.core.client.Client]: Holds the loaded keypair for
            the lifetime of a session.
    """

    def __init__(self, config: KeyStoreConfig | None = None) -> None:
        self._config = config or KeyStoreConfig()

    @property
    def config(self) -> KeyStoreConfig:
        return self._config

    @property
    def path(self) -> Path:
        return self._config.path

    def exists(self) -> bool:
        """Return True if an identity file is present."""
        return self.path.is_file()

    @staticmethod
    def generate() -> Keypair:
        """Return a new keypair from the OS cryptographic random source."""
        return Keypair.generate()

    def encrypt_and_persist(
        self,
        keypair: Keypair,
        password: str | None = None,
        *,
        overwrite: bool = True,
    ) -> Path:
        """Write *keypair* to disk, encrypted when *password* is given.

        Args:
            keypair: Identity to store.
            password: Encryption password. ``None`` or ``""`` stores the
                secret unencrypted.
            overwrite: Replace an existing identity. When False and a file
                exists, raise instead.

        Returns:
            The path written.

        Raises:
            StorageError: If a file exists and *overwrite* is False.
            ConfigurationError: If no password is given and unencrypted
                storage is disabled.
        """
        if not overwrite and self.exists():
            raise StorageError(f"an identity already exists at {self.path}")

        if password:
            envelope = self._seal(keypair, password)
        else:
            if not self._config.allow_unencrypted:
                raise ConfigurationError("a password is required: unencrypted key storage is disabled")
            logger.warning(
                "identity_unprotected path=%s pubkey=%s", self.path, keypair.public_key
            )
            envelope = {
                "version": ENVELOPE_VERSION,
                "scheme": SCHEME_PLAINTEXT,
                "pubkey": keypair.public_key,
                "secret_key": keypair.secret_hex(),
            }

        atomic_write(self.path, json.dumps(envelope, indent=2).encode("utf-8"))
        logger.info(
            "identity_saved path=%s pubkey=%s scheme=%s",
            self.path,
            keypair.public_key,
            envelope["scheme"],
        )
        return self.path

    def import_key(self, secret: str, password: str | None = None, *, overwrite: bool = True) -> Keypair:
        """Parse a hex or ``nsec1`` secret and persist it.

        Raises:
            ValueError: If *secret* is not a valid secret key.
        """
        keypair = Keypair.parse(secret)
        self.encrypt_and_persist(keypair, password, overwrite=overwrite)
        return keypair

    def load(self, password: str | None = None) -> Keypair:
        """Decrypt and return the stored keypair.

        Raises:
            NotFoundError: If no identity has been stored.
            AuthenticationError: If the password is wrong or missing, or the
                file is corrupt (unknown scheme included) or has been
                tampered with.
            StorageError: If the envelope was written by a newer release.
        """
        envelope = self._read()
        version = envelope.get("version", 0)

        if version == 0:
            return self._load_legacy(envelope, password)

        scheme = envelope.get("scheme")
        pubkey = envelope.get("pubkey")
        if not is_hex(pubkey, 64):
            raise AuthenticationError("key file has no valid public key")

        if scheme == SCHEME_PLAINTEXT:
            keypair = self._parse_secret(envelope.get("secret_key"))
        elif scheme == SCHEME_ENCRYPTED:
            if not password:
                raise AuthenticationError("a password is required to unlock this identity")
            keypair = self._open(envelope, version, pubkey, password)
        else:
            raise AuthenticationError(f"key file is corrupt: unsupported scheme {scheme!r}")

        if keypair.public_key != pubkey:
            raise AuthenticationError("stored public key does not match the secret key")
        logger.debug("identity_loaded pubkey=%s", pubkey)
        return keypair

    def public_key(self) -> str:
        """Return the cached hex public key without decrypting.

        Raises:
            NotFoundError: If no identity has been stored.
            StorageError: If the file carries no usable public key.
        """
        envelope = self._read()
        if envelope.get("version", 0) == 0:
            secret = envelope.get("secret_key")
            if isinstance(secret, str):
                try:
                    return Keypair.parse(secret).public_key
                except ValueError:
                    pass
            raise StorageError("legacy key file has no readable public key")

        pubkey = envelope.get("pubkey")
        if not is_hex(pubkey, 64):
            raise StorageError("key file has no valid public key")
        return pubkey

    def requires_password(self) -> bool:
        """Return True if [load()][nostrcli.utils.keys.KeyStore.load] needs a password.

        Raises:
            NotFoundError: If no identity has been stored.
        """
        envelope = self._read()
        if envelope.get("version", 0) == 0:
            return bool(envelope.get("password"))
        return envelope.get("scheme") != SCHEME_PLAINTEXT

    def delete(self) -> bool:
        """Destroy the stored identity. Returns False if there was none."""
        try:
            self.path.unlink()
        except FileNotFoundError:
            return False
        logger.info("identity_deleted path=%s", self.path)
        return True

    # -- Internals ----------------------------------------------------------

    def _read(self) -> dict[str, Any]:
        try:
            raw = self.path.read_bytes()
        except FileNotFoundError:
            raise NotFoundError(f"no identity found at {self.path}") from None
        except OSError as e:
            raise StorageError(f"cannot read {self.path}: {e}") from e

        try:
            envelope = json.loads(raw)
        except (ValueError, UnicodeDecodeError):
            raise AuthenticationError(f"key file {self.path} is corrupt") from None
        if not isinstance(envelope, dict):
            raise AuthenticationError(f"key file {self.path} is corrupt")

        version = envelope.get("version", 0)
        if isinstance(version, bool) or not isinstance(version, int) or version < 0:
            raise AuthenticationError(f"key file {self.path} has an invalid version")
        if version > ENVELOPE_VERSION:
            raise StorageError(
                f"key file version {version} is newer than supported version {ENVELOPE_VERSION}"
            )
        return envelope

    def _seal(self, keypair: Keypair, password: str) -> dict[str, Any]:
        kdf = self._config.kdf
        salt = os.urandom(kdf.salt_size)
        nonce = os.urandom(_NONCE_SIZE)
        key = _derive_key(password, salt, kdf.n, kdf.r, kdf.p)
        aad = _associated_data(ENVELOPE_VERSION, SCHEME_ENCRYPTED, keypair.public_key)
        ciphertext = AESGCM(key).encrypt(nonce, keypair.secret_bytes(), aad)
        return {
            "version": ENVELOPE_VERSION,
            "scheme": SCHEME_ENCRYPTED,
            "pubkey": keypair.public_key,
            "kdf": {"n": kdf.n, "r": kdf.r, "p": kdf.p, "salt": _b64encode(salt)},
            "nonce": _b64encode(nonce),
            "ciphertext": _b64encode(ciphertext),
        }

    def _open(self, envelope: dict[str, Any], version: int, pubkey: str, password: str) -> Keypair:
        params = envelope.get("kdf")
        if not isinstance(params, dict):
            raise AuthenticationError("key file has no KDF parameters")
        n, r, p = params.get("n"), params.get("r"), params.get("p")
        if not all(isinstance(v, int) and not isinstance(v, bool) and v > 0 for v in (n, r, p)):
            raise AuthenticationError("key file has invalid KDF parameters")

        salt = _b64decode(params.get("salt"), "kdf.salt")
        nonce = _b64decode(envelope.get("nonce"), "nonce")
        ciphertext = _b64decode(envelope.get("ciphertext"), "ciphertext")
        if len(nonce) != _NONCE_SIZE:
            raise AuthenticationError("key file has an invalid nonce")

        try:
            key = _derive_key(password, salt, n, r, p)
            secret = AESGCM(key).decrypt(nonce, ciphertext, _associated_data(version, SCHEME_ENCRYPTED, pubkey))
        except InvalidTag:
            raise AuthenticationError("wrong password or corrupt key file") from None
        except ValueError as e:
            raise AuthenticationError(f"key file cannot be decrypted: {e}") from None
        return self._parse_secret(secret.hex())

    def _load_legacy(self, envelope: dict[str, Any], password: str | None) -> Keypair:
        stored = envelope.get("password")
        if not isinstance(stored, str):
            raise AuthenticationError("legacy key file is corrupt")
        if not hmac.compare_digest((password or "").encode("utf-8"), stored.encode("utf-8")):
            raise AuthenticationError("wrong password")
        logger.warning("identity_legacy_format path=%s", self.path)
        return self._parse_secret(envelope.get("secret_key"))

    @staticmethod
    def _parse_secret(secret: Any) -> Keypair:
        if not isinstance(secret, str):
            raise AuthenticationError("key file has no secret key")
        try:
            return Keypair.parse(secret)
        except ValueError:
            raise AuthenticationError("key file contains an invalid secret key") from None
