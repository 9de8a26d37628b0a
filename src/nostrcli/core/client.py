"""
High-level client: the operations behind every command-line verb.

[Client][nostrcli.core.client.Client] wires a
[KeyStore][nostrcli.utils.keys.KeyStore], a
[RelayListStore][nostrcli.utils.relays.RelayListStore], a
[RelayPool][nostrcli.core.pool.RelayPool] and per-request
[FeedAggregator][nostrcli.core.feed.FeedAggregator] instances together. It
is the only object the CLI talks to.

The loaded keypair lives on the client for the duration of a session and is
dropped by [close()][nostrcli.core.client.Client.close]. Network work starts
lazily: the pool is only started by the first operation that needs relays.

Examples:
    ```python
    async with Client.from_yaml("~/.nostr-cli-app/config.yaml") as client:
        client.load_identity("correct horse")
        note = client.build_and_sign_note("hello nostr", tags=[["t", "intro"]])
        result = await client.publish(note)
        print(result.accepted)

        feed = await client.fetch_feed(Filter.text_notes(hashtag="nostr"))
        for event in feed:
            print(event.content)
    ```
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field, field_validator, model_validator

from nostrcli.exceptions import AuthenticationError, StorageError
from nostrcli.models.constants import RelayStatus
from nostrcli.models.filter import Filter
from nostrcli.models.relay import normalize_relay_url
from nostrcli.nips.nip01.codec import build_text_note
from nostrcli.utils.keys import DEFAULT_DATA_DIR, KeyStore, KeyStoreConfig
from nostrcli.utils.relays import RelayListStore

from .feed import FeedAggregator, FeedConfig, FeedSnapshot
from .logger import Logger
from .pool import (
    EndOfStoredEvents,
    PoolConfig,
    ReceivedEvent,
    RelayPool,
    RelayRecord,
    SubscriptionClosed,
)
from .yaml import load_yaml


if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterable, Sequence

    from nostrcli.models.event import Event
    from nostrcli.models.keys import Keypair

    from .pool import ConnectionFactory, PublishResult


DEFAULT_RELAYS: tuple[str, ...] = ("wss://yabu.me",)


class ClientConfig(BaseModel):
    """Top-level configuration, usually loaded from YAML.

    ``keystore.path`` defaults to ``<data_dir>/keys.json`` and the relay
    list always lives at ``<data_dir>/relays.json``.

    See Also:
        [KeyStoreConfig][nostrcli.utils.keys.KeyStoreConfig],
        [PoolConfig][nostrcli.core.pool.PoolConfig],
        [FeedConfig][nostrcli.core.feed.FeedConfig]: Embedded sections.
    """

    data_dir: Path = Field(default=DEFAULT_DATA_DIR, validate_default=True)
    keystore: KeyStoreConfig = Field(default_factory=KeyStoreConfig)
    pool: PoolConfig = Field(default_factory=PoolConfig)
    feed: FeedConfig = Field(default_factory=FeedConfig)
    default_relays: list[str] = Field(
        default_factory=lambda: list(DEFAULT_RELAYS),
        description="Relays used when relays.json is empty or missing",
    )
    fetch_timeout: float = Field(default=10.0, gt=0, description="Feed fetch deadline (seconds)")
    connect_timeout: float = Field(default=5.0, gt=0, description="Wait for relays before a request")

    @field_validator("data_dir")
    @classmethod
    def _expand_data_dir(cls, v: Path) -> Path:
        return v.expanduser()

    @field_validator("default_relays")
    @classmethod
    def _normalize_relays(cls, v: list[str]) -> list[str]:
        normalized: list[str] = []
        for url in v:
            value = normalize_relay_url(url)
            if value not in normalized:
                normalized.append(value)
        return normalized

    @model_validator(mode="after")
    def _keystore_in_data_dir(self) -> ClientConfig:
        if "path" not in self.keystore.model_fields_set:
            self.keystore = self.keystore.model_copy(update={"path": self.data_dir / "keys.json"})
        return self

    @property
    def relays_path(self) -> Path:
        return self.data_dir / "relays.json"


class Client:
    """Identity, relay list, publishing and feed operations.

    See Also:
        [ClientConfig][nostrcli.core.client.ClientConfig]: Configuration model.
        [nostrcli.__main__][]: Command line built on this class.
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        connection_factory: ConnectionFactory | None = None,
    ) -> None:
        self._config = config or ClientConfig()
        self._keystore = KeyStore(self._config.keystore)
        self._relay_store = RelayListStore(self._config.relays_path)
        self._pool = RelayPool(self._config.pool, connection_factory=connection_factory)
        self._keypair: Keypair | None = None
        self._logger = Logger("client")

    @classmethod
    def from_yaml(cls, config_path: str | Path, **kwargs: Any) -> Client:
        """Create a client from a YAML configuration file.

        Raises:
            FileNotFoundError: If the configuration file does not exist.
            ConfigurationError: If the file is not valid YAML.
        """
        return cls.from_dict(load_yaml(config_path), **kwargs)

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any], **kwargs: Any) -> Client:
        return cls(config=ClientConfig(**config_dict), **kwargs)

    # -------------------------------------------------------------------------
    # Properties / lifecycle
    # -------------------------------------------------------------------------

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def keystore(self) -> KeyStore:
        return self._keystore

    @property
    def relay_store(self) -> RelayListStore:
        return self._relay_store

    @property
    def pool(self) -> RelayPool:
        return self._pool

    @property
    def keypair(self) -> Keypair | None:
        """The identity loaded for this session, if any."""
        return self._keypair

    async def __aenter__(self) -> Client:
        return self

    async def __aexit__(self, *_exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Stop all relay sessions and forget the loaded identity."""
        await self._pool.close()
        self._keypair = None

    # -------------------------------------------------------------------------
    # Identity
    # -------------------------------------------------------------------------

    def generate_identity(self, password: str | None = None, *, overwrite: bool = False) -> Keypair:
        """Create, persist and load a new identity.

        Raises:
            StorageError: If an identity exists and *overwrite* is False.
            ConfigurationError: If *password* is empty and unencrypted
                storage is disabled.
        """
        if not overwrite and self._keystore.exists():
            raise StorageError(
                f"an identity already exists at {self._keystore.path}; refusing to overwrite it"
            )
        keypair = self._keystore.generate()
        self._keystore.encrypt_and_persist(keypair, password, overwrite=overwrite)
        self._keypair = keypair
        self._logger.info("identity_generated", pubkey=keypair.public_key)
        return keypair

    def import_identity(self, secret: str, password: str | None = None, *, overwrite: bool = False) -> Keypair:
        """Persist and load an existing hex or ``nsec1`` secret key.

        Raises:
            ValueError: If *secret* is not a valid secret key.
            StorageError: If an identity exists and *overwrite* is False.
        """
        keypair = self._keystore.import_key(secret, password, overwrite=overwrite)
        self._keypair = keypair
        self._logger.info("identity_imported", pubkey=keypair.public_key)
        return keypair

    def load_identity(self, password: str | None = None) -> Keypair:
        """Unlock the stored identity for this session.

        Raises:
            NotFoundError: If no identity has been stored.
            AuthenticationError: If the password is wrong or the file is corrupt.
        """
        self._keypair = self._keystore.load(password)
        return self._keypair

    def get_public_key(self) -> str:
        """Return the hex public key, without a password when not loaded.

        Raises:
            NotFoundError: If no identity has been stored.
        """
        if self._keypair is not None:
            return self._keypair.public_key
        return self._keystore.public_key()

    def build_and_sign_note(self, text: str, tags: Iterable[Sequence[str]] = ()) -> Event:
        """Build a kind-1 note signed by the loaded identity.

        Raises:
            AuthenticationError: If no identity has been loaded.
        """
        if self._keypair is None:
            raise AuthenticationError("no identity loaded; call load_identity() first")
        return build_text_note(self._keypair, text, tags=tags)

    # -------------------------------------------------------------------------
    # Relays
    # -------------------------------------------------------------------------

    def relay_urls(self) -> list[str]:
        """Configured relays, falling back to ``default_relays``."""
        return self._relay_store.load() or list(self._config.default_relays)

    async def add_relay(self, url: str) -> bool:
        """Persist *url* and, if the pool is running, connect to it.

        Returns:
            False if the relay was already configured.

        Raises:
            ValueError: If *url* is not a valid relay URL.
        """
        added = self._relay_store.add(url)
        if self._pool.is_running:
            await self._pool.add_relay(url)
        return added

    async def remove_relay(self, url: str) -> bool:
        """Forget *url* and disconnect from it.

        Removing a relay that is not configured is a no-op.

        Returns:
            False if the relay was not configured.

        Raises:
            ValueError: If *url* is not a valid relay URL.
        """
        removed = self._relay_store.remove(url)
        await self._pool.remove_relay(url)
        return removed

    def list_relays(self) -> list[RelayRecord]:
        """Configured relays with live status where a session exists."""
        live = {record.url: record for record in self._pool.list_relays()}
        return [live.get(url, RelayRecord(url, RelayStatus.DISCONNECTED)) for url in self.relay_urls()]

    async def connect(self) -> list[str]:
        """Start the pool on the configured relays and wait briefly for them.

        Returns:
            URLs of the relays that are connected.
        """
        for url in self.relay_urls():
            await self._pool.add_relay(url)
        await self._pool.start()
        await self._pool.wait_for_connection(self._config.connect_timeout)
        connected = self._pool.connected_relays()
        if not connected:
            self._logger.warning("no_relays_connected", relays=len(self._pool))
        return connected

    # -------------------------------------------------------------------------
    # Publish / feed
    # -------------------------------------------------------------------------

    async def publish(self, event: Event) -> PublishResult:
        """Send *event* to every configured relay and collect the outcomes."""
        await self.connect()
        return await self._pool.publish_to_all(event)

    async def fetch_feed(self, filter: Filter | None = None) -> FeedSnapshot:  # noqa: A002
        """Collect stored events matching *filter* from every relay.

        Waits until each connected relay has sent ``EOSE`` (or closed the
        subscription) or ``fetch_timeout`` elapses, then returns the merged
        feed, newest first, truncated to ``filter.limit``.
        """
        query = filter or Filter.text_notes()
        feed = FeedAggregator(self._config.feed, filters=[query])
        connected = await self.connect()
        if not connected:
            return feed.snapshot(limit=0)

        sub_id = await self._pool.subscribe_all([query])
        waiting = set(connected)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._config.fetch_timeout
        try:
            while waiting:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    break
                notification = await self._pool.next_notification(remaining)
                if notification is None:
                    break
                if getattr(notification, "subscription_id", None) != sub_id:
                    continue
                if isinstance(notification, ReceivedEvent):
                    feed.ingest(notification.event, relay=notification.relay)
                elif isinstance(notification, EndOfStoredEvents | SubscriptionClosed):
                    waiting.discard(notification.relay)
        finally:
            await self._pool.close_subscription(sub_id)

        if waiting:
            self._logger.info("feed_fetch_timeout", pending=len(waiting))
        snapshot = feed.snapshot(limit=query.limit)
        self._logger.info("feed_fetched", events=len(snapshot), dropped=feed.dropped)
        return snapshot

    async def follow_feed(self, filter: Filter | None = None) -> AsyncIterator[Event]:  # noqa: A002
        """Yield new events matching *filter* as relays deliver them.

        The subscription stays open, and is reissued on reconnect, until
        the iterator is closed.
        """
        query = filter or Filter.text_notes()
        feed = FeedAggregator(self._config.feed, filters=[query])
        await self.connect()
        sub_id = await self._pool.subscribe_all([query])
        try:
            async for notification in self._pool.notifications():
                if isinstance(notification, ReceivedEvent) and notification.subscription_id == sub_id:
                    event = feed.ingest(notification.event, relay=notification.relay)
                    if event is not None:
                        yield event
        finally:
            await self._pool.close_subscription(sub_id)
