"""Enumerations shared by models, nips and core.

Kept in a leaf module so that any layer can import them without pulling in
the others.

See Also:
    [nostrcli.models.relay][]: Uses [NetworkType][nostrcli.models.constants.NetworkType]
        for the host of each relay URL.
    [nostrcli.core.pool][]: Uses [RelayStatus][nostrcli.models.constants.RelayStatus]
        and [PublishStatus][nostrcli.models.constants.PublishStatus] for relay
        bookkeeping and publish outcomes.
"""

from __future__ import annotations

from enum import IntEnum, StrEnum


class NetworkType(StrEnum):
    """Which network a relay host lives on.

    Decided once, when a [Relay][nostrcli.models.relay.Relay] is built; overlay
    networks are reached through a SOCKS proxy.

    Attributes:
        CLEARNET: Public internet relay.
        TOR: ``.onion`` host.
        I2P: ``.i2p`` host.
        LOKI: ``.loki`` host.
        LOCAL: localhost, loopback, private or link-local address.
        UNKNOWN: Unusable host; never stored on a Relay.

    Examples:
        ```python
        Relay("wss://yabu.me").network          # NetworkType.CLEARNET
        Relay("ws://example2z.onion").network   # NetworkType.TOR
        Relay("ws://localhost:7777").network    # NetworkType.LOCAL
        ```
    """

    CLEARNET = "clearnet"
    TOR = "tor"
    I2P = "i2p"
    LOKI = "loki"
    LOCAL = "local"
    UNKNOWN = "unknown"


class RelayStatus(StrEnum):
    """Connection state of a single relay.

    Transitions: ``DISCONNECTED -> CONNECTING -> CONNECTED -> (DISCONNECTED |
    BACKING_OFF -> CONNECTING)``. A relay in ``BACKING_OFF`` is waiting for
    its next reconnection attempt.
    """

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    BACKING_OFF = "backing_off"


class PublishStatus(StrEnum):
    """Per-relay outcome of a publish request.

    Attributes:
        ACCEPTED: The relay answered ``OK`` with ``true``.
        REJECTED: The relay answered ``OK`` with ``false`` (reason attached).
        UNREACHABLE: The relay was not connected, or the exchange failed or
            timed out.
    """

    ACCEPTED = "accepted"
    REJECTED = "rejected"
    UNREACHABLE = "unreachable"


class EventKind(IntEnum):
    """Well-known Nostr event kinds handled by the client.

    Attributes:
        SET_METADATA: profile metadata, kind 0 (NIP-01).
        TEXT_NOTE: short text note, kind 1 (NIP-01).
        CONTACTS: follow list, kind 3 (NIP-02).
    """

    SET_METADATA = 0
    TEXT_NOTE = 1
    CONTACTS = 3


# Kinds are unsigned 16-bit integers
EVENT_KIND_MAX = 0xFFFF
