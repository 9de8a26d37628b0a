r"""nostrcli -- command-line client for the Nostr protocol.

Manages a single encrypted identity, publishes signed NIP-01 text notes to
many relays at once, and reads a deduplicated, time-ordered feed back from
them.

Architecture follows a **diamond DAG** dependency structure where imports
flow strictly downward:

```text
               __main__        Command line
                  |
                core           Relay pool, connections, feed, client facade
               /    \
            nips    utils      NIP-01 codec and framing; key and relay storage
               \    /
               models          Pure frozen dataclasses (zero I/O)
```

Attributes:
    models: Keypair, Event, EventDraft, Filter, Relay and enums.
    nips: NIP-01 canonical serialization, ids, signatures, wire messages.
    utils: Encrypted key storage and the relay list file.
    core: RelayConnection, RelayPool, FeedAggregator, Client, logging.
    exceptions: Error hierarchy shared by every layer.

Note:
    For lightweight usage, import directly from subpackages::

        from nostrcli.models import Filter
        from nostrcli.core import Client

    Top-level imports (``from nostrcli import Client``) use lazy loading
    and resolve on first access.
"""

import importlib
from importlib.metadata import version as _get_version


__version__ = _get_version("nostrcli")

__all__ = [
    "Client",
    "ClientConfig",
    "Event",
    "EventDraft",
    "FeedAggregator",
    "FeedSnapshot",
    "Filter",
    "KeyStore",
    "Keypair",
    "Logger",
    "NostrCliError",
    "PoolConfig",
    "Relay",
    "RelayConnection",
    "RelayPool",
]

_LAZY_IMPORTS: dict[str, tuple[str, str]] = {
    "Client": ("nostrcli.core", "Client"),
    "ClientConfig": ("nostrcli.core", "ClientConfig"),
    "FeedAggregator": ("nostrcli.core", "FeedAggregator"),
    "FeedSnapshot": ("nostrcli.core", "FeedSnapshot"),
    "Logger": ("nostrcli.core", "Logger"),
    "PoolConfig": ("nostrcli.core", "PoolConfig"),
    "RelayConnection": ("nostrcli.core", "RelayConnection"),
    "RelayPool": ("nostrcli.core", "RelayPool"),
    "Event": ("nostrcli.models", "Event"),
    "EventDraft": ("nostrcli.models", "EventDraft"),
    "Filter": ("nostrcli.models", "Filter"),
    "Keypair": ("nostrcli.models", "Keypair"),
    "Relay": ("nostrcli.models", "Relay"),
    "KeyStore": ("nostrcli.utils", "KeyStore"),
    "NostrCliError": ("nostrcli.exceptions", "NostrCliError"),
}


def __getattr__(name: str) -> object:
    if name in _LAZY_IMPORTS:
        module_path, attr_name = _LAZY_IMPORTS[name]
        module = importlib.import_module(module_path)
        value = getattr(module, attr_name)
        globals()[name] = value  # Cache for subsequent access
        return value
    raise AttributeError(f"module 'nostrcli' has no attribute {name!r}")


def __dir__() -> list[str]:
    return __all__
