"""Pure frozen dataclasses for Nostr identities, events, filters, and relays.

The models layer is the foundation of the diamond DAG. It performs no I/O
and depends on no other nostrcli package. Signed values use
``@dataclass(frozen=True, slots=True)`` for immutability; all validation
happens in ``__post_init__`` so invalid instances never escape the
constructor.

Attributes:
    Keypair: secp256k1 identity wrapping ``nostr_sdk.Keys``.
    EventDraft: Mutable, unsigned event under composition.
    Event: Immutable signed event with NIP-01 JSON conversion.
    Filter: Subscription constraints with local matching.
    Relay: Validated, normalized relay URL with network detection.
    RelayStatus: Connection state of a relay.
    PublishStatus: Per-relay publish outcome.

See Also:
    [nostrcli.nips.nip01][]: Canonical serialization, ids and signatures.
    [nostrcli.core][]: Relay connections, pool, and feed aggregation.
"""

from .constants import EVENT_KIND_MAX, EventKind, NetworkType, PublishStatus, RelayStatus
from .event import Event, EventDraft
from .filter import Filter
from .keys import Keypair, encode_npub, parse_public_key
from .relay import Relay, normalize_relay_url


__all__ = [
    "EVENT_KIND_MAX",
    "Event",
    "EventDraft",
    "EventKind",
    "Filter",
    "Keypair",
    "NetworkType",
    "PublishStatus",
    "Relay",
    "RelayStatus",
    "encode_npub",
    "normalize_relay_url",
    "parse_public_key",
]
