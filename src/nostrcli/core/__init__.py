"""Core layer: relay networking, feed aggregation, and the client facade.

Sits at the top of the diamond DAG -- depends on ``nostrcli.models``,
``nostrcli.nips`` and ``nostrcli.utils`` and is used by the command line.

Attributes:
    RelayConnection: One NIP-01 session with one relay; transport hooks are
        implemented by [WebSocketRelayConnection][nostrcli.core.connection.WebSocketRelayConnection].
    RelayPool: One task per relay with reconnect backoff, subscription
        reissue, publish fan-out and a notification queue.
        See [RelayPool][nostrcli.core.pool.RelayPool].
    FeedAggregator: Verified, deduplicated, time-ordered, bounded feed.
        See [FeedAggregator][nostrcli.core.feed.FeedAggregator].
    Client: Facade exposing identity, relay list, publish and feed
        operations. See [Client][nostrcli.core.client.Client].
    Logger: Structured logger supporting key=value and JSON output modes.
        See [Logger][nostrcli.core.logger.Logger].
    YAML: Safe YAML loading with ``yaml.safe_load()``.
        See [load_yaml()][nostrcli.core.yaml.load_yaml].

Examples:
    ```python
    from nostrcli.core import Client

    async with Client() as client:
        client.load_identity(password)
        await client.publish(client.build_and_sign_note("gm"))
    ```
"""

from .client import DEFAULT_RELAYS, Client, ClientConfig
from .connection import (
    Backoff,
    BackoffConfig,
    ConnectionConfig,
    RelayConnection,
    WebSocketRelayConnection,
)
from .feed import FeedAggregator, FeedConfig, FeedSnapshot
from .logger import Logger, StructuredFormatter, format_kv_pairs
from .pool import (
    EndOfStoredEvents,
    PoolConfig,
    PublishOutcome,
    PublishResult,
    ReceivedEvent,
    RelayNotice,
    RelayNotification,
    RelayPool,
    RelayRecord,
    SubscriptionClosed,
)
from .yaml import load_yaml


__all__ = [
    "DEFAULT_RELAYS",
    "Backoff",
    "BackoffConfig",
    "Client",
    "ClientConfig",
    "ConnectionConfig",
    "EndOfStoredEvents",
    "FeedAggregator",
    "FeedConfig",
    "FeedSnapshot",
    "Logger",
    "PoolConfig",
    "PublishOutcome",
    "PublishResult",
    "ReceivedEvent",
    "RelayConnection",
    "RelayNotice",
    "RelayNotification",
    "RelayPool",
    "RelayRecord",
    "StructuredFormatter",
    "SubscriptionClosed",
    "WebSocketRelayConnection",
    "format_kv_pairs",
    "load_yaml",
]
