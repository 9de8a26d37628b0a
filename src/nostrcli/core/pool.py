"""
Relay pool: concurrent sessions with many relays behind one interface.

Runs one asyncio task per relay. Each task connects, reissues the pool's
subscriptions, forwards inbound messages onto a shared bounded queue, and
reconnects with exponential backoff when the session fails or drops. No
relay task touches another relay's state, and no relay failure is ever
raised to the caller: it shows up as
[RelayRecord.status][nostrcli.core.pool.RelayRecord] or as an
``unreachable`` [PublishOutcome][nostrcli.core.pool.PublishOutcome].

Examples:
    ```python
    pool = RelayPool.from_yaml("config.yaml")
    await pool.add_relay("wss://yabu.me")

    async with pool:
        await pool.wait_for_connection(timeout=5)
        result = await pool.publish_to_all(event)
        sub_id = await pool.subscribe_all([Filter.text_notes()])
        async for notification in pool.notifications():
            ...
    ```

See Also:
    [RelayConnection][nostrcli.core.connection.RelayConnection]: The
        per-relay session driven by each task.
    [FeedAggregator][nostrcli.core.feed.FeedAggregator]: Main consumer of
        the notification queue.
"""

from __future__ import annotations

import asyncio
import secrets
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

from nostrcli.exceptions import NetworkError, RelayRejected
from nostrcli.models.constants import PublishStatus, RelayStatus
from nostrcli.models.relay import Relay
from nostrcli.nips.nip01.messages import (
    AuthMessage,
    ClosedMessage,
    EoseMessage,
    EventMessage,
    NoticeMessage,
)

from .connection import (
    Backoff,
    BackoffConfig,
    ConnectionConfig,
    RelayConnection,
    WebSocketRelayConnection,
)
from .logger import Logger
from .yaml import load_yaml


if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable, Sequence

    from nostrcli.models.event import Event
    from nostrcli.models.filter import Filter
    from nostrcli.nips.nip01.messages import RelayMessage

    ConnectionFactory = Callable[[Relay, ConnectionConfig], RelayConnection]


# ---------------------------------------------------------------------------
# Configuration Models
# ---------------------------------------------------------------------------


class PoolConfig(BaseModel):
    """Aggregate configuration for the relay pool.

    See Also:
        [ConnectionConfig][nostrcli.core.connection.ConnectionConfig]:
            Per-session timeouts and proxy.
        [BackoffConfig][nostrcli.core.connection.BackoffConfig]: Reconnect
            delay policy.
    """

    connection: ConnectionConfig = Field(default_factory=ConnectionConfig)
    backoff: BackoffConfig = Field(default_factory=BackoffConfig)
    queue_size: int = Field(default=10_000, ge=1, description="Max queued notifications")


# ---------------------------------------------------------------------------
# Snapshots and results
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RelayRecord:
    """Point-in-time view of one relay in the pool.

    Attributes:
        url: Normalized relay URL.
        status: Current connection state.
        subscriptions: Ids of subscriptions open on the live session.
        attempts: Consecutive failed connection attempts.
        last_error: Most recent failure message, if any.
    """

    url: str
    status: RelayStatus
    subscriptions: frozenset[str] = frozenset()
    attempts: int = 0
    last_error: str | None = None


@dataclass(frozen=True, slots=True)
class PublishOutcome:
    """What one relay did with a published event."""

    relay: str
    status: PublishStatus
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status == PublishStatus.ACCEPTED


@dataclass(frozen=True, slots=True)
class PublishResult(Mapping[str, PublishOutcome]):
    """Per-relay outcomes of [publish_to_all()][nostrcli.core.pool.RelayPool.publish_to_all].

    Behaves as a read-only mapping of relay URL to
    [PublishOutcome][nostrcli.core.pool.PublishOutcome].
    """

    event_id: str
    outcomes: Mapping[str, PublishOutcome] = field(default_factory=dict)

    def __getitem__(self, url: str) -> PublishOutcome:
        return self.outcomes[url]

    def __iter__(self) -> Iterator[str]:
        return iter(self.outcomes)

    def __len__(self) -> int:
        return len(self.outcomes)

    def _with_status(self, status: PublishStatus) -> list[str]:
        return [url for url, outcome in self.outcomes.items() if outcome.status == status]

    @property
    def accepted(self) -> list[str]:
        return self._with_status(PublishStatus.ACCEPTED)

    @property
    def rejected(self) -> list[str]:
        return self._with_status(PublishStatus.REJECTED)

    @property
    def unreachable(self) -> list[str]:
        return self._with_status(PublishStatus.UNREACHABLE)


# ---------------------------------------------------------------------------
# Notifications (fan-in queue items)
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ReceivedEvent:
    """An event pushed by a relay; ``event`` is the raw, unverified payload."""

    relay: str
    subscription_id: str
    event: dict[str, Any]


@dataclass(frozen=True, slots=True)
class EndOfStoredEvents:
    relay: str
    subscription_id: str


@dataclass(frozen=True, slots=True)
class RelayNotice:
    relay: str
    message: str


@dataclass(frozen=True, slots=True)
class SubscriptionClosed:
    relay: str
    subscription_id: str
    message: str = ""


RelayNotification = ReceivedEvent | EndOfStoredEvents | RelayNotice | SubscriptionClosed


# ---------------------------------------------------------------------------
# Pool Class
# ---------------------------------------------------------------------------


class _RelayState:
    """Mutable per-relay bookkeeping, owned by the pool."""

    __slots__ = ("attempts", "backoff", "connection", "last_error", "relay", "settled", "status", "task")

    def __init__(self, relay: Relay, connection: RelayConnection, backoff: Backoff) -> None:
        self.relay = relay
        self.connection = connection
        self.backoff = backoff
        self.task: asyncio.Task[None] | None = None
        self.status = RelayStatus.DISCONNECTED
        self.attempts = 0
        self.last_error: str | None = None
        # Set once the relay has either connected or failed at least once
        self.settled = asyncio.Event()

    def record(self) -> RelayRecord:
        return RelayRecord(
            url=self.relay.url,
            status=self.status,
            subscriptions=self.connection.subscriptions,
            attempts=self.attempts,
            last_error=self.last_error,
        )


def _default_connection_factory(relay: Relay, config: ConnectionConfig) -> RelayConnection:
    return WebSocketRelayConnection(relay, config)


class RelayPool:
    """Set of relay sessions with shared subscriptions and publish fan-out.

    The pool is created stopped. Relays may be added before or after
    [start()][nostrcli.core.pool.RelayPool.start]; a running pool spawns the
    relay's task immediately. [close()][nostrcli.core.pool.RelayPool.close]
    cancels every relay task and waits for them, so none outlives it.

    See Also:
        [PoolConfig][nostrcli.core.pool.PoolConfig]: Configuration model.
        [Client][nostrcli.core.client.Client]: Facade that owns a pool.
    """

    def __init__(
        self,
        config: PoolConfig | None = None,
        *,
        connection_factory: ConnectionFactory | None = None,
    ) -> None:
        """Initialize an empty, stopped pool.

        Args:
            config: Pool configuration; defaults are used when omitted.
            connection_factory: Builds the session for each relay. Defaults
                to [WebSocketRelayConnection][nostrcli.core.connection.WebSocketRelayConnection].
        """
        self._config = config or PoolConfig()
        self._connection_factory = connection_factory or _default_connection_factory
        self._relays: dict[str, _RelayState] = {}
        self._subscriptions: dict[str, tuple[Filter, ...]] = {}
        self._queue: asyncio.Queue[RelayNotification] = asyncio.Queue(maxsize=self._config.queue_size)
        self._running = False
        self._dropped_notifications = 0
        self._logger = Logger("pool")

    @classmethod
    def from_yaml(cls, config_path: str, **kwargs: Any) -> RelayPool:
        """Create a pool from a YAML configuration file.

        Raises:
            FileNotFoundError: If the configuration file does not exist.
        """
        return cls.from_dict(load_yaml(config_path), **kwargs)

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any], **kwargs: Any) -> RelayPool:
        """Create a pool from a dictionary matching [PoolConfig][nostrcli.core.pool.PoolConfig]."""
        return cls(config=PoolConfig(**config_dict), **kwargs)

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def config(self) -> PoolConfig:
        return self._config

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def subscriptions(self) -> frozenset[str]:
        """Ids of pool-level subscriptions (reissued on every reconnect)."""
        return frozenset(self._subscriptions)

    @property
    def dropped_notifications(self) -> int:
        """Notifications discarded because the queue was full."""
        return self._dropped_notifications

    def __len__(self) -> int:
        return len(self._relays)

    def __contains__(self, url: object) -> bool:
        if not isinstance(url, str):
            return False
        try:
            return Relay(url).url in self._relays
        except ValueError:
            return False

    def connected_relays(self) -> list[str]:
        return [url for url, state in self._relays.items() if state.connection.is_connected]

    # -------------------------------------------------------------------------
    # Relay Set
    # -------------------------------------------------------------------------

    async def add_relay(self, url: str | Relay) -> bool:
        """Add a relay. Returns False if it is already in the pool.

        Raises:
            ValueError: If *url* is not a valid relay URL.
        """
        relay = url if isinstance(url, Relay) else Relay(url)
        if relay.url in self._relays:
            return False

        state = _RelayState(
            relay,
            self._connection_factory(relay, self._config.connection),
            Backoff(self._config.backoff),
        )
        self._relays[relay.url] = state
        self._logger.info("relay_added", relay=relay.url, network=relay.network)
        if self._running:
            self._spawn(state)
        return True

    async def remove_relay(self, url: str | Relay) -> bool:
        """Stop and forget a relay. Returns False if it was not in the pool."""
        try:
            key = url.url if isinstance(url, Relay) else Relay(url).url
        except ValueError:
            return False
        state = self._relays.pop(key, None)
        if state is None:
            return False
        await self._stop(state)
        self._logger.info("relay_removed", relay=key)
        return True

    def list_relays(self) -> list[RelayRecord]:
        """Return a snapshot of every relay, in insertion order."""
        return [state.record() for state in self._relays.values()]

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """Spawn one task per relay. Idempotent."""
        if self._running:
            return
        self._running = True
        for state in self._relays.values():
            self._spawn(state)
        self._logger.info("pool_started", relays=len(self._relays))

    async def close(self) -> None:
        """Cancel every relay task and close every session. Idempotent."""
        if not self._running and not any(s.task for s in self._relays.values()):
            return
        self._running = False
        states = list(self._relays.values())
        await asyncio.gather(*(self._stop(state) for state in states))
        self._logger.info("pool_closed", relays=len(states))

    async def __aenter__(self) -> RelayPool:
        await self.start()
        return self

    async def __aexit__(self, *_exc: object) -> None:
        await self.close()

    async def wait_for_connection(self, timeout: float | None = None) -> bool:
        """Wait until every relay has connected or failed at least once.

        Returns:
            True if every relay settled, False if *timeout* elapsed first.
        """
        pending = [state.settled.wait() for state in self._relays.values() if not state.settled.is_set()]
        if not pending:
            return True
        try:
            async with asyncio.timeout(timeout):
                await asyncio.gather(*pending)
        except TimeoutError:
            return False
        return True

    def _spawn(self, state: _RelayState) -> None:
        state.task = asyncio.create_task(self._run_relay(state), name=f"relay:{state.relay.url}")

    async def _stop(self, state: _RelayState) -> None:
        task, state.task = state.task, None
        if task is not None:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        await state.connection.close()
        state.status = RelayStatus.DISCONNECTED

    # -------------------------------------------------------------------------
    # Per-relay task
    # -------------------------------------------------------------------------

    async def _run_relay(self, state: _RelayState) -> None:
        """Connect, serve, and reconnect one relay until cancelled.

        Any failure other than cancellation sends the relay into backoff;
        the task itself only ends when the pool stops it.
        """
        url = state.relay.url
        while True:
            state.status = RelayStatus.CONNECTING
            try:
                await state.connection.connect()
            except NetworkError as e:
                state.attempts += 1
                await self._back_off(state, "relay_connect_failed", str(e))
                continue
            except Exception as e:
                state.attempts += 1
                self._logger.exception("relay_connect_error", relay=url, error=repr(e))
                await self._back_off(state, "relay_connect_failed", repr(e))
                continue

            state.attempts = 0
            state.last_error = None
            state.status = RelayStatus.CONNECTED
            state.backoff.reset()
            state.settled.set()

            try:
                await self._reissue_subscriptions(state)
                async for message in state.connection.messages():
                    self._dispatch(url, message)
            except Exception as e:
                self._logger.exception("relay_session_error", relay=url, error=repr(e))
                await state.connection.close()
                await self._back_off(state, "relay_connection_lost", f"session failed: {e!r}")
            else:
                await self._back_off(state, "relay_connection_lost", "connection lost")

    async def _back_off(self, state: _RelayState, event: str, error: str) -> None:
        state.last_error = error
        state.status = RelayStatus.BACKING_OFF
        state.settled.set()
        delay = state.backoff.next_delay()
        self._logger.warning(
            event,
            relay=state.relay.url,
            attempts=state.attempts,
            retry_in=round(delay, 2),
            error=error,
        )
        await asyncio.sleep(delay)

    async def _reissue_subscriptions(self, state: _RelayState) -> None:
        for sub_id, filters in list(self._subscriptions.items()):
            try:
                await state.connection.subscribe(sub_id, filters)
            except NetworkError as e:
                # The reader will notice the dead socket and trigger a reconnect
                self._logger.warning("subscription_reissue_failed", relay=state.relay.url, error=str(e))
                return

    def _dispatch(self, url: str, message: RelayMessage) -> None:
        notification: RelayNotification
        if isinstance(message, EventMessage):
            notification = ReceivedEvent(url, message.subscription_id, message.event)
        elif isinstance(message, EoseMessage):
            notification = EndOfStoredEvents(url, message.subscription_id)
        elif isinstance(message, NoticeMessage):
            self._logger.info("relay_notice", relay=url, message=message.message)
            notification = RelayNotice(url, message.message)
        elif isinstance(message, ClosedMessage):
            notification = SubscriptionClosed(url, message.subscription_id, message.message)
        elif isinstance(message, AuthMessage):
            self._logger.debug("relay_auth_requested", relay=url)
            return
        else:
            # OK frames are consumed by the connection's publish correlation
            return

        try:
            self._queue.put_nowait(notification)
        except asyncio.QueueFull:
            self._dropped_notifications += 1
            self._logger.warning("notification_dropped", relay=url, queue_size=self._config.queue_size)

    # -------------------------------------------------------------------------
    # Publish / Subscribe
    # -------------------------------------------------------------------------

    async def publish_to_all(self, event: Event) -> PublishResult:
        """Send *event* to every relay concurrently and collect all outcomes.

        Relays that are not connected are reported ``unreachable`` without
        waiting for them. Partial success is a normal result.
        """
        states = list(self._relays.values())
        outcomes = await asyncio.gather(*(self._publish_one(state, event) for state in states))
        result = PublishResult(event.id, {outcome.relay: outcome for outcome in outcomes})
        self._logger.info(
            "event_published",
            event_id=event.id,
            accepted=len(result.accepted),
            rejected=len(result.rejected),
            unreachable=len(result.unreachable),
        )
        return result

    async def _publish_one(self, state: _RelayState, event: Event) -> PublishOutcome:
        url = state.relay.url
        if not state.connection.is_connected:
            return PublishOutcome(url, PublishStatus.UNREACHABLE, f"not connected ({state.status})")
        try:
            ok = await state.connection.publish(event)
        except RelayRejected as e:
            self._logger.warning("event_rejected", relay=url, event_id=event.id, reason=e.reason)
            return PublishOutcome(url, PublishStatus.REJECTED, e.reason)
        except NetworkError as e:
            self._logger.warning("event_publish_failed", relay=url, event_id=event.id, error=str(e))
            return PublishOutcome(url, PublishStatus.UNREACHABLE, str(e))
        return PublishOutcome(url, PublishStatus.ACCEPTED, ok.message)

    async def subscribe_all(self, filters: Sequence[Filter], sub_id: str | None = None) -> str:
        """Open a subscription on every connected relay.

        The subscription is remembered and reissued after every reconnect
        (and on relays added later) until
        [close_subscription()][nostrcli.core.pool.RelayPool.close_subscription].

        Returns:
            The subscription id (random 16 hex chars unless given).

        Raises:
            ValueError: If *filters* is empty.
        """
        frozen = tuple(filters)
        if not frozen:
            raise ValueError("subscribe_all requires at least one filter")
        sub_id = sub_id or secrets.token_hex(8)
        self._subscriptions[sub_id] = frozen

        async def _send(state: _RelayState) -> None:
            try:
                await state.connection.subscribe(sub_id, frozen)
            except NetworkError as e:
                self._logger.warning("subscribe_failed", relay=state.relay.url, subscription=sub_id, error=str(e))

        await asyncio.gather(*(_send(s) for s in self._relays.values() if s.connection.is_connected))
        self._logger.debug("subscription_registered", subscription=sub_id, filters=len(frozen))
        return sub_id

    async def close_subscription(self, sub_id: str) -> bool:
        """Close a pool subscription everywhere. Returns False if unknown."""
        if self._subscriptions.pop(sub_id, None) is None:
            return False

        async def _close(state: _RelayState) -> None:
            try:
                await state.connection.close_subscription(sub_id)
            except NetworkError as e:
                self._logger.debug("close_subscription_failed", relay=state.relay.url, error=str(e))

        await asyncio.gather(*(_close(s) for s in self._relays.values()))
        return True

    # -------------------------------------------------------------------------
    # Fan-in
    # -------------------------------------------------------------------------

    async def next_notification(self, timeout: float | None = None) -> RelayNotification | None:
        """Return the next queued notification, or None after *timeout*."""
        try:
            async with asyncio.timeout(timeout):
                return await self._queue.get()
        except TimeoutError:
            return None

    async def notifications(self) -> AsyncIterator[RelayNotification]:
        """Yield notifications from every relay as they arrive (never ends)."""
        while True:
            yield await self._queue.get()
