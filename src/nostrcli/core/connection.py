"""
One websocket session with one Nostr relay.

[RelayConnection][nostrcli.core.connection.RelayConnection] implements the
NIP-01 client side of a single relay session: connection state, the set of
open subscriptions, and publish/``OK`` correlation. It is transport-agnostic;
[WebSocketRelayConnection][nostrcli.core.connection.WebSocketRelayConnection]
supplies the aiohttp websocket underneath, optionally through a SOCKS proxy
(``aiohttp_socks``) for Tor, I2P and Lokinet relays.

State machine:

```text
Disconnected -> Connecting -> Connected -> Disconnected
                    |                          |
                    +--> BackingOff <----------+  (driven by RelayPool)
                             |
                             +--> Connecting
```

Inbound frames are only read by [messages()][nostrcli.core.connection.RelayConnection.messages].
A publish waits for its ``OK`` frame, which that reader resolves, so exactly
one task must be iterating ``messages()`` while publishes are in flight. The
[RelayPool][nostrcli.core.pool.RelayPool] runs that reader in the relay's own
task.

Examples:
    ```python
    conn = WebSocketRelayConnection(Relay("wss://yabu.me"))
    await conn.connect()
    await conn.subscribe("feed", [Filter.text_notes(limit=20)])
    async for message in conn.messages():
        ...
    ```
"""

from __future__ import annotations

import asyncio
import contextlib
import random
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

import aiohttp
from aiohttp_socks import ProxyConnector, ProxyError
from pydantic import BaseModel, Field, ValidationInfo, field_validator

from nostrcli.exceptions import NetworkError, ProtocolError, RelayRejected, RelayTimeoutError
from nostrcli.models.constants import RelayStatus
from nostrcli.nips.nip01.messages import (
    AuthMessage,
    ClosedMessage,
    OkMessage,
    RelayMessage,
    decode_relay_message,
    encode_close,
    encode_event,
    encode_req,
)

from .logger import Logger


if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable, Sequence

    from nostrcli.models.event import Event
    from nostrcli.models.filter import Filter
    from nostrcli.models.relay import Relay


# ---------------------------------------------------------------------------
# Configuration Models
# ---------------------------------------------------------------------------


class ConnectionConfig(BaseModel):
    """Timeouts and transport options for a single relay session (seconds).

    See Also:
        [PoolConfig][nostrcli.core.pool.PoolConfig]: Parent configuration that
            embeds this model.
    """

    connect_timeout: float = Field(default=10.0, gt=0, description="Websocket handshake timeout")
    request_timeout: float = Field(default=10.0, gt=0, description="Publish -> OK timeout")
    close_timeout: float = Field(default=5.0, gt=0, description="Graceful close timeout")
    heartbeat: float | None = Field(default=30.0, gt=0, description="Ping interval (None = off)")
    max_message_size: int = Field(default=4 * 1024 * 1024, ge=1024, description="Max frame bytes")
    proxy_url: str | None = Field(
        default=None, description="SOCKS5 proxy for overlay relays (e.g. socks5://127.0.0.1:9050)"
    )


class BackoffConfig(BaseModel):
    """Reconnect delay policy.

    Note:
        The delay doubles each consecutive failure, ``initial_delay * 2^attempt``,
        capped at ``max_delay``. ``jitter`` shaves up to that fraction off each
        delay so that relays failing together do not reconnect in lockstep.
        Attempts are unbounded.
    """

    initial_delay: float = Field(default=1.0, gt=0, description="First retry delay")
    max_delay: float = Field(default=60.0, gt=0, description="Maximum retry delay")
    jitter: float = Field(default=0.1, ge=0.0, le=1.0, description="Random reduction fraction")

    @field_validator("max_delay")
    @classmethod
    def validate_max_delay(cls, v: float, info: ValidationInfo) -> float:
        """Ensure max_delay >= initial_delay."""
        initial_delay = info.data.get("initial_delay", 1.0)
        if v < initial_delay:
            raise ValueError(f"max_delay ({v}) must be >= initial_delay ({initial_delay})")
        return v


class Backoff:
    """Exponential reconnect delays for one relay."""

    # Exponent clamp keeps 2**attempt from overflowing a float
    _MAX_EXPONENT = 32

    def __init__(self, config: BackoffConfig | None = None, *, rng: Callable[[], float] = random.random) -> None:
        self._config = config or BackoffConfig()
        self._rng = rng
        self._attempts = 0

    @property
    def attempts(self) -> int:
        """Consecutive failures since the last reset."""
        return self._attempts

    def delay(self, attempt: int) -> float:
        """Return the delay before retry number *attempt* (0-based)."""
        config = self._config
        base = min(config.max_delay, config.initial_delay * 2 ** min(attempt, self._MAX_EXPONENT))
        return base * (1.0 - config.jitter * self._rng())

    def next_delay(self) -> float:
        """Record a failure and return how long to wait before retrying."""
        value = self.delay(self._attempts)
        self._attempts += 1
        return value

    def reset(self) -> None:
        self._attempts = 0


# ---------------------------------------------------------------------------
# Connection
# ---------------------------------------------------------------------------


class RelayConnection(ABC):
    """Protocol state for one relay session over an abstract transport.

    Subclasses implement four transport hooks: ``_open``, ``_send``,
    ``_receive`` and ``_close_transport``. Everything else (state, REQ/CLOSE
    bookkeeping, ``OK`` correlation, frame decoding) lives here.

    Attributes:
        relay: The relay this connection talks to.
        auth_challenge: Last NIP-42 challenge received, if any.

    See Also:
        [RelayPool][nostrcli.core.pool.RelayPool]: Owns connections and
            reconnects them with backoff.
    """

    def __init__(self, relay: Relay, config: ConnectionConfig | None = None) -> None:
        self.relay = relay
        self._config = config or ConnectionConfig()
        self._status = RelayStatus.DISCONNECTED
        self._subscriptions: dict[str, tuple[Filter, ...]] = {}
        self._pending: dict[str, asyncio.Future[OkMessage]] = {}
        self.auth_challenge: str | None = None
        self._logger = Logger("connection")

    # -- Transport hooks ----------------------------------------------------

    @abstractmethod
    async def _open(self) -> None:
        """Establish the transport. Raise ``NetworkError`` on failure."""

    @abstractmethod
    async def _send(self, text: str) -> None:
        """Send one text frame. Raise ``NetworkError`` on failure."""

    @abstractmethod
    async def _receive(self) -> str | bytes | None:
        """Return the next data frame, or None once the transport is closed."""

    @abstractmethod
    async def _close_transport(self) -> None:
        """Release the transport. Must be idempotent and never raise."""

    # -- Properties ---------------------------------------------------------

    @property
    def url(self) -> str:
        return self.relay.url

    @property
    def config(self) -> ConnectionConfig:
        return self._config

    @property
    def status(self) -> RelayStatus:
        return self._status

    @property
    def is_connected(self) -> bool:
        return self._status == RelayStatus.CONNECTED

    @property
    def subscriptions(self) -> frozenset[str]:
        """Ids of subscriptions open on this session."""
        return frozenset(self._subscriptions)

    def filters_for(self, subscription_id: str) -> tuple[Filter, ...] | None:
        return self._subscriptions.get(subscription_id)

    # -- Lifecycle ----------------------------------------------------------

    async def connect(self) -> None:
        """Open the session within ``connect_timeout``.

        Raises:
            RelayTimeoutError: If the handshake does not finish in time.
            NetworkError: If the relay cannot be reached.
        """
        if self._status == RelayStatus.CONNECTED:
            return

        self._status = RelayStatus.CONNECTING
        self._logger.debug("relay_connecting", relay=self.url)
        try:
            async with asyncio.timeout(self._config.connect_timeout):
                await self._open()
        except TimeoutError:
            await self._close_transport()
            self._status = RelayStatus.BACKING_OFF
            raise RelayTimeoutError(
                f"connect to {self.url} timed out after {self._config.connect_timeout}s"
            ) from None
        except Exception:
            await self._close_transport()
            self._status = RelayStatus.BACKING_OFF
            raise
        except asyncio.CancelledError:
            await self._close_transport()
            self._status = RelayStatus.DISCONNECTED
            raise

        self._status = RelayStatus.CONNECTED
        self._logger.info("relay_connected", relay=self.url)

    async def close(self) -> None:
        """Close the session; open subscriptions and pending publishes end."""
        was_connected = self._status == RelayStatus.CONNECTED
        await self._teardown("connection closed by client")
        if was_connected:
            self._logger.info("relay_disconnected", relay=self.url)

    async def _teardown(self, reason: str) -> None:
        self._status = RelayStatus.DISCONNECTED
        self._subscriptions.clear()
        pending, self._pending = self._pending, {}
        for future in pending.values():
            if not future.done():
                future.set_exception(NetworkError(f"{self.url}: {reason}"))
        await self._close_transport()

    def _require_connected(self) -> None:
        if self._status != RelayStatus.CONNECTED:
            raise NetworkError(f"{self.url} is not connected (status={self._status})")

    # -- Requests -----------------------------------------------------------

    async def subscribe(self, subscription_id: str, filters: Sequence[Filter]) -> None:
        """Send ``["REQ", subscription_id, *filters]``.

        Re-using an open id replaces that subscription's filters, as relays do.

        Raises:
            NetworkError: If the session is not connected or the send fails.
            ValueError: If the id is empty or *filters* is empty.
        """
        self._require_connected()
        frame = encode_req(subscription_id, filters)
        await self._send(frame)
        self._subscriptions[subscription_id] = tuple(filters)
        self._logger.debug("subscription_opened", relay=self.url, subscription=subscription_id)

    async def close_subscription(self, subscription_id: str) -> bool:
        """Send ``["CLOSE", subscription_id]`` if it is open here.

        Returns:
            False if the subscription was not open on this session.

        Raises:
            NetworkError: If the send fails.
        """
        if self._subscriptions.pop(subscription_id, None) is None:
            return False
        if self._status == RelayStatus.CONNECTED:
            await self._send(encode_close(subscription_id))
        self._logger.debug("subscription_closed", relay=self.url, subscription=subscription_id)
        return True

    async def publish(self, event: Event) -> OkMessage:
        """Send ``["EVENT", event]`` and wait for the relay's ``OK``.

        Returns:
            The accepting ``OK`` message.

        Raises:
            RelayRejected: The relay answered ``OK`` with ``false``. The
                session stays open.
            RelayTimeoutError: No ``OK`` within ``request_timeout``.
            NetworkError: Not connected, or the session dropped while waiting.
        """
        self._require_connected()
        future: asyncio.Future[OkMessage] = asyncio.get_running_loop().create_future()
        self._pending[event.id] = future
        try:
            await self._send(encode_event(event))
            async with asyncio.timeout(self._config.request_timeout):
                ok = await future
        except TimeoutError:
            raise RelayTimeoutError(
                f"{self.url} did not acknowledge {event.id} within {self._config.request_timeout}s"
            ) from None
        finally:
            if self._pending.get(event.id) is future:
                del self._pending[event.id]

        if not ok.accepted:
            raise RelayRejected(ok.message)
        return ok

    # -- Inbound ------------------------------------------------------------

    async def messages(self) -> AsyncIterator[RelayMessage]:
        """Yield decoded relay messages until the session ends.

        ``OK`` frames also resolve pending publishes, ``CLOSED`` frames drop
        the subscription, and ``AUTH`` records the challenge. Malformed frames
        are logged and skipped. When the transport closes, the connection is
        torn down and the iterator ends.
        """
        try:
            while self._status == RelayStatus.CONNECTED:
                raw = await self._receive()
                if raw is None:
                    break
                try:
                    message = decode_relay_message(raw)
                except ProtocolError as e:
                    self._logger.warning("frame_malformed", relay=self.url, error=str(e))
                    continue

                if isinstance(message, OkMessage):
                    future = self._pending.get(message.event_id)
                    if future is not None and not future.done():
                        future.set_result(message)
                elif isinstance(message, ClosedMessage):
                    self._subscriptions.pop(message.subscription_id, None)
                    self._logger.info(
                        "subscription_closed_by_relay",
                        relay=self.url,
                        subscription=message.subscription_id,
                        reason=message.message,
                    )
                elif isinstance(message, AuthMessage):
                    self.auth_challenge = message.challenge

                yield message
        finally:
            was_connected = self._status == RelayStatus.CONNECTED
            await self._teardown("connection lost")
            if was_connected:
                self._logger.info("relay_disconnected", relay=self.url)


class WebSocketRelayConnection(RelayConnection):
    """[RelayConnection][nostrcli.core.connection.RelayConnection] over an aiohttp websocket.

    Overlay relays (``.onion``, ``.i2p``, ``.loki``) are reached through
    ``config.proxy_url`` via ``aiohttp_socks.ProxyConnector``; without a
    proxy they fail to connect immediately.
    """

    def __init__(self, relay: Relay, config: ConnectionConfig | None = None) -> None:
        super().__init__(relay, config)
        self._session: aiohttp.ClientSession | None = None
        self._ws: aiohttp.ClientWebSocketResponse | None = None

    async def _open(self) -> None:
        connector: aiohttp.BaseConnector | None = None
        if self.relay.is_overlay:
            if not self._config.proxy_url:
                raise NetworkError(f"{self.url} is on {self.relay.network} and no proxy_url is set")
            try:
                connector = ProxyConnector.from_url(self._config.proxy_url)
            except ValueError as e:
                raise NetworkError(f"unusable proxy_url for {self.url}: {e}") from None

        self._session = aiohttp.ClientSession(connector=connector)
        try:
            self._ws = await self._session.ws_connect(
                self.url,
                heartbeat=self._config.heartbeat,
                max_msg_size=self._config.max_message_size,
            )
        except (aiohttp.ClientError, ProxyError, OSError) as e:
            raise NetworkError(f"connect to {self.url} failed: {e}") from e

    async def _send(self, text: str) -> None:
        if self._ws is None or self._ws.closed:
            raise NetworkError(f"{self.url} websocket is closed")
        try:
            await self._ws.send_str(text)
        except (aiohttp.ClientError, OSError) as e:
            raise NetworkError(f"send to {self.url} failed: {e}") from e

    async def _receive(self) -> str | bytes | None:
        if self._ws is None:
            return None
        while True:
            msg = await self._ws.receive()
            if msg.type in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
                return msg.data
            if msg.type == aiohttp.WSMsgType.ERROR:
                self._logger.debug("websocket_error", relay=self.url, error=str(self._ws.exception()))
                return None
            if msg.type in (aiohttp.WSMsgType.CLOSE, aiohttp.WSMsgType.CLOSING, aiohttp.WSMsgType.CLOSED):
                return None

    async def _close_transport(self) -> None:
        ws, self._ws = self._ws, None
        session, self._session = self._session, None
        # Teardown of a dead socket can raise anything aiohttp/OS level
        if ws is not None:
            with contextlib.suppress(aiohttp.ClientError, OSError, TimeoutError):
                await asyncio.wait_for(ws.close(), timeout=self._config.close_timeout)
        if session is not None:
            with contextlib.suppress(aiohttp.ClientError, OSError, TimeoutError):
                await asyncio.wait_for(session.close(), timeout=self._config.close_timeout)
