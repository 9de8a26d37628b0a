"""
Feed aggregation: one deduplicated, time-ordered view over many relays.

Relays deliver overlapping, unordered and occasionally invalid events.
[FeedAggregator][nostrcli.core.feed.FeedAggregator] verifies each one, keeps
the first copy of every event id, and maintains the retained events sorted
newest first (ties broken by id ascending), so any number of relay tasks can
feed it while a reader takes consistent snapshots.

Verification happens outside the lock; only the id lookup and the sorted
insert are serialized. The lock is a ``threading.Lock`` so the aggregator is
also safe to feed from worker threads.

Examples:
    ```python
    feed = FeedAggregator(FeedConfig(max_events=500))
    feed.ingest(raw_event, relay="wss://yabu.me")
    for event in feed.snapshot():
        print(event.created_at, event.content)
    ```
"""

from __future__ import annotations

import bisect
import threading
from collections.abc import Iterator
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, overload

from pydantic import BaseModel, Field

from nostrcli.exceptions import ProtocolError
from nostrcli.models.event import Event
from nostrcli.nips.nip01.codec import parse_event, verify

from .logger import Logger
from .pool import ReceivedEvent


if TYPE_CHECKING:
    import asyncio
    from collections.abc import Iterable

    from nostrcli.models.filter import Filter

    from .pool import RelayPool


class FeedConfig(BaseModel):
    """Retention settings for the aggregated feed."""

    max_events: int = Field(default=1000, ge=1, description="Events retained before eviction")


@dataclass(frozen=True, slots=True)
class FeedSnapshot:
    """Immutable, ordered copy of the feed at one instant.

    Later ingestion or eviction never changes a snapshot.
    """

    events: tuple[Event, ...] = ()

    def __len__(self) -> int:
        return len(self.events)

    def __iter__(self) -> Iterator[Event]:
        return iter(self.events)

    @overload
    def __getitem__(self, index: int) -> Event: ...
    @overload
    def __getitem__(self, index: slice) -> tuple[Event, ...]: ...
    def __getitem__(self, index: int | slice) -> Event | tuple[Event, ...]:
        return self.events[index]

    @property
    def ids(self) -> list[str]:
        return [event.id for event in self.events]


def _sort_key(event: Event) -> tuple[int, str]:
    return (-event.created_at, event.id)


class FeedAggregator:
    """Verified, deduplicated, bounded event feed.

    Attributes:
        filters: Optional local filters; events matching none are ignored.

    See Also:
        [RelayPool.notifications()][nostrcli.core.pool.RelayPool.notifications]:
            Source drained by [consume()][nostrcli.core.feed.FeedAggregator.consume].
    """

    def __init__(self, config: FeedConfig | None = None, filters: Iterable[Filter] | None = None) -> None:
        self._config = config or FeedConfig()
        self.filters: tuple[Filter, ...] = tuple(filters or ())
        self._lock = threading.Lock()
        # Parallel lists kept sorted by _sort_key
        self._keys: list[tuple[int, str]] = []
        self._events: list[Event] = []
        self._by_id: dict[str, Event] = {}
        self._seen_on: dict[str, set[str]] = {}
        self._dropped = 0
        self._logger = Logger("feed")

    @property
    def config(self) -> FeedConfig:
        return self._config

    @property
    def dropped(self) -> int:
        """Inbound events rejected as malformed or badly signed."""
        return self._dropped

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    def __contains__(self, event_id: object) -> bool:
        with self._lock:
            return event_id in self._by_id

    def ingest(self, payload: dict[str, Any] | Event, relay: str | None = None) -> Event | None:
        """Verify and insert one event.

        Args:
            payload: Raw event object from a relay, or an ``Event``.
            relay: URL of the relay that delivered it.

        Returns:
            The event if it was newly inserted; None if it was invalid,
            filtered out, a duplicate, or older than everything retained in
            a full feed.
        """
        try:
            if isinstance(payload, Event):
                verify(payload)
                event = payload
            else:
                event = parse_event(payload)
        except ProtocolError as e:
            with self._lock:
                self._dropped += 1
            event_id = payload.get("id") if isinstance(payload, dict) else getattr(payload, "id", None)
            self._logger.warning("event_dropped", relay=relay, event_id=event_id, reason=str(e))
            return None

        if self.filters and not any(f.matches(event) for f in self.filters):
            return None

        key = _sort_key(event)
        with self._lock:
            if event.id in self._by_id:
                if relay is not None:
                    self._seen_on[event.id].add(relay)
                return None

            full = len(self._events) >= self._config.max_events
            if full and key > self._keys[-1]:
                return None

            index = bisect.bisect_left(self._keys, key)
            self._keys.insert(index, key)
            self._events.insert(index, event)
            self._by_id[event.id] = event
            self._seen_on[event.id] = {relay} if relay is not None else set()

            if full:
                self._keys.pop()
                evicted = self._events.pop()
                del self._by_id[evicted.id]
                del self._seen_on[evicted.id]

        return event

    def snapshot(self, limit: int | None = None) -> FeedSnapshot:
        """Return the newest *limit* events (all when None), newest first."""
        with self._lock:
            events = tuple(self._events[:limit])
        return FeedSnapshot(events)

    def seen_on(self, event_id: str) -> frozenset[str]:
        """Relays that delivered *event_id* (empty if unknown)."""
        with self._lock:
            return frozenset(self._seen_on.get(event_id, ()))

    def get(self, event_id: str) -> Event | None:
        with self._lock:
            return self._by_id.get(event_id)

    def clear(self) -> None:
        with self._lock:
            self._keys.clear()
            self._events.clear()
            self._by_id.clear()
            self._seen_on.clear()

    async def consume(self, pool: RelayPool, until: asyncio.Event | None = None) -> int:
        """Feed every event notification from *pool* into the aggregator.

        Runs until cancelled, or until *until* is set (checked after each
        notification).

        Returns:
            Number of events newly inserted.
        """
        inserted = 0
        async for notification in pool.notifications():
            if isinstance(notification, ReceivedEvent):
                if self.ingest(notification.event, notification.relay) is not None:
                    inserted += 1
            if until is not None and until.is_set():
                break
        return inserted
