"""
Immutable Nostr identity keypair.

Wraps ``nostr_sdk.Keys`` in a frozen dataclass so that the rest of the
client handles a single, explicitly-owned identity object instead of raw
secret strings. The public key is always derived from the secret key by
the SDK; it is never stored independently on the instance.

Warning:
    The wrapped ``Keys`` object holds the private key in memory. Never log,
    serialize, or ``repr()`` the secret: [Keypair][nostrcli.models.keys.Keypair]
    overrides ``__repr__`` to show the public key only. Use
    [secret_bytes()][nostrcli.models.keys.Keypair.secret_bytes] transiently
    for signing and let the result go out of scope.

See Also:
    [nostrcli.utils.keys.KeyStore][nostrcli.utils.keys.KeyStore]: Encrypts
        and persists keypairs at rest.
    [nostrcli.nips.nip01.codec][]: Signs event ids with a keypair.
"""

from __future__ import annotations

from dataclasses import dataclass

from nostr_sdk import Keys, NostrSdkError, PublicKey

from ._validation import validate_instance


@dataclass(frozen=True, slots=True)
class Keypair:
    """A secp256k1 private key and its derived BIP-340 x-only public key.

    Examples:
        ```python
        keypair = Keypair.generate()
        keypair.public_key   # 64-char lowercase hex
        keypair.npub         # 'npub1...'

        same = Keypair.parse(keypair.nsec())
        assert same.public_key == keypair.public_key
        ```
    """

    _keys: Keys

    def __post_init__(self) -> None:
        validate_instance(self._keys, Keys, "_keys")

    def __repr__(self) -> str:
        return f"Keypair(public_key={self.public_key!r})"

    @classmethod
    def generate(cls) -> Keypair:
        """Generate a fresh keypair from the OS cryptographic random source."""
        return cls(Keys.generate())

    @classmethod
    def parse(cls, secret: str) -> Keypair:
        """Build a keypair from a hex or ``nsec1`` bech32 secret key.

        Raises:
            ValueError: If the secret is empty or not a valid secp256k1 key.
        """
        value = secret.strip()
        if not value:
            raise ValueError("secret key must not be empty")
        try:
            return cls(Keys.parse(value))
        except NostrSdkError as e:
            raise ValueError(f"invalid secret key: {e}") from None

    @property
    def public_key(self) -> str:
        """Public key as 64-char lowercase hex."""
        return self._keys.public_key().to_hex()

    @property
    def npub(self) -> str:
        """Public key as NIP-19 bech32 (``npub1...``)."""
        return self._keys.public_key().to_bech32()

    def secret_hex(self) -> str:
        """Secret key as 64-char lowercase hex."""
        return self._keys.secret_key().to_hex()

    def secret_bytes(self) -> bytes:
        """Secret key as 32 raw bytes."""
        return bytes.fromhex(self.secret_hex())

    def nsec(self) -> str:
        """Secret key as NIP-19 bech32 (``nsec1...``)."""
        return self._keys.secret_key().to_bech32()


def parse_public_key(value: str) -> str:
    """Return the hex form of a hex, ``npub1`` or ``nostr:`` public key.

    Raises:
        ValueError: If *value* is not a valid public key.
    """
    try:
        return PublicKey.parse(value.strip()).to_hex()
    except NostrSdkError as e:
        raise ValueError(f"invalid public key: {e}") from None


def encode_npub(public_key: str) -> str:
    """Return the ``npub1...`` form of a hex public key.

    Raises:
        ValueError: If *public_key* is not a valid public key.
    """
    try:
        return PublicKey.parse(public_key).to_bech32()
    except NostrSdkError as e:
        raise ValueError(f"invalid public key: {e}") from None
