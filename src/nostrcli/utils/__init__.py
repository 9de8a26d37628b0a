"""Local persistence: identity key storage and the relay list.

The utils layer sits in the middle of the diamond DAG, depending only on
[nostrcli.models][nostrcli.models]. It performs file I/O and
cryptography but no network I/O.

Attributes:
    keys: [KeyStore][nostrcli.utils.keys.KeyStore] -- scrypt + AES-256-GCM
        encrypted identity envelope with a cached public key.
    relays: [RelayListStore][nostrcli.utils.relays.RelayListStore] --
        versioned ``relays.json`` list of normalized relay URLs.
    files: Atomic owner-only writes shared by both stores.

Note:
    The utils layer has **zero** imports from ``nostrcli.core``. This strict
    dependency boundary keeps the diamond DAG intact.
"""

from nostrcli.utils.keys import KeyStore, KeyStoreConfig, ScryptConfig
from nostrcli.utils.relays import RelayListStore


__all__ = [
    "KeyStore",
    "KeyStoreConfig",
    "RelayListStore",
    "ScryptConfig",
]
