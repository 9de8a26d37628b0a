"""
Pytest configuration and shared fixtures for nostrcli tests.

Provides:
- Deterministic and random keypairs
- A signed-event factory
- KeyStore and Client configurations rooted in ``tmp_path`` with cheap scrypt
- ``FakeRelayConnection``: an in-memory relay session driven by the test,
  and a factory that plugs it into ``RelayPool`` / ``Client``
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from typing import Any

import pytest

from nostrcli.core.client import ClientConfig
from nostrcli.core.connection import ConnectionConfig, RelayConnection
from nostrcli.exceptions import NetworkError
from nostrcli.models import Event, Keypair, Relay
from nostrcli.nips.nip01 import build_text_note
from nostrcli.utils.keys import KeyStoreConfig, ScryptConfig


# ============================================================================
# Test Constants
# ============================================================================

# Valid secp256k1 test keys (DO NOT USE IN PRODUCTION)
VALID_HEX_KEY = (
    "67dea2ed018072d675f5415ecfaed7d2597555e202d85b3d65ea4e58d2d92ffa"  # pragma: allowlist secret
)
VALID_NSEC_KEY = (
    "nsec1vl029mgpspedva04g90vltkh6fvh240zqtv9k0t9af8935ke9laqsnlfe5"  # pragma: allowlist secret
)

RELAY_A = "wss://relay-a.example.com"
RELAY_B = "wss://relay-b.example.com"
RELAY_C = "wss://relay-c.example.com"

# Minimum scrypt cost accepted by ScryptConfig; keeps key-file tests fast
FAST_KDF = {"n": 2**4, "r": 8, "p": 1}


# ============================================================================
# Keys and Events
# ============================================================================


@pytest.fixture
def keypair() -> Keypair:
    """Deterministic keypair built from VALID_HEX_KEY."""
    return Keypair.parse(VALID_HEX_KEY)


@pytest.fixture
def other_keypair() -> Keypair:
    """Fresh random keypair, distinct from ``keypair``."""
    return Keypair.generate()


@pytest.fixture
def make_event(keypair: Keypair) -> Callable[..., Event]:
    """Factory for signed kind-1 notes.

    Usage: ``make_event("hello", created_at=1700000000, tags=[["t", "x"]])``
    """

    def _make(
        content: str = "hello nostr",
        *,
        created_at: int = 1_700_000_000,
        tags: list[list[str]] | None = None,
        author: Keypair | None = None,
    ) -> Event:
        return build_text_note(author or keypair, content, tags=tags or [], created_at=created_at)

    return _make


# ============================================================================
# Storage
# ============================================================================


@pytest.fixture
def keystore_config(tmp_path: Any) -> KeyStoreConfig:
    """KeyStoreConfig writing to ``tmp_path/keys.json`` with a cheap KDF."""
    return KeyStoreConfig(path=tmp_path / "keys.json", kdf=ScryptConfig(**FAST_KDF))


@pytest.fixture
def client_config(tmp_path: Any) -> ClientConfig:
    """ClientConfig rooted in ``tmp_path`` with short timeouts and one default relay."""
    return ClientConfig(
        data_dir=tmp_path,
        keystore={"kdf": FAST_KDF},
        pool={
            "connection": {"connect_timeout": 0.5, "request_timeout": 0.5},
            "backoff": {"initial_delay": 0.01, "max_delay": 0.05, "jitter": 0.0},
        },
        default_relays=[RELAY_A],
        fetch_timeout=1.0,
        connect_timeout=1.0,
    )


# ============================================================================
# Fake Relay Transport
# ============================================================================


class FakeRelayConnection(RelayConnection):
    """Relay session backed by an in-memory frame queue.

    Frames sent by the client are decoded into ``sent``. By default an
    ``EVENT`` is answered with ``OK`` (``accept`` decides true/false) and a
    ``REQ`` is answered with every entry of ``stored_events`` followed by
    ``EOSE``. The test can push arbitrary frames with ``push()``/``push_raw()``
    and simulate the relay hanging up with ``drop()``.

    Args:
        connect_failures: Number of initial connection attempts that fail.
        always_fail: Every connection attempt fails.
        hang_connect: Connection attempts never complete.
        accept: Status carried by automatic ``OK`` replies.
        ok_message: Message carried by automatic ``OK`` replies.
        auto_ok: Answer ``EVENT`` frames automatically.
        auto_eose: Answer ``REQ`` frames automatically.
    """

    def __init__(
        self,
        relay: Relay,
        config: ConnectionConfig | None = None,
        *,
        connect_failures: int = 0,
        always_fail: bool = False,
        hang_connect: bool = False,
        accept: bool = True,
        ok_message: str = "",
        auto_ok: bool = True,
        auto_eose: bool = True,
        stored_events: list[dict[str, Any]] | None = None,
    ) -> None:
        super().__init__(relay, config)
        self.connect_failures = connect_failures
        self.always_fail = always_fail
        self.hang_connect = hang_connect
        self.accept = accept
        self.ok_message = ok_message
        self.auto_ok = auto_ok
        self.auto_eose = auto_eose
        self.stored_events: list[dict[str, Any]] = list(stored_events or [])
        self.sent: list[list[Any]] = []
        self.open_calls = 0
        self.transport_open = False
        self._inbound: asyncio.Queue[str | bytes | None] = asyncio.Queue()

    # -- Transport hooks ----------------------------------------------------

    async def _open(self) -> None:
        self.open_calls += 1
        if self.hang_connect:
            await asyncio.sleep(3600)
        if self.always_fail or self.connect_failures > 0:
            self.connect_failures = max(0, self.connect_failures - 1)
            raise NetworkError(f"connection to {self.url} refused")
        self._inbound = asyncio.Queue()
        self.transport_open = True

    async def _send(self, text: str) -> None:
        if not self.transport_open:
            raise NetworkError(f"{self.url} transport is closed")
        frame = json.loads(text)
        self.sent.append(frame)
        if frame[0] == "EVENT" and self.auto_ok:
            self.push("OK", frame[1]["id"], self.accept, self.ok_message)
        elif frame[0] == "REQ" and self.auto_eose:
            for event in self.stored_events:
                self.push("EVENT", frame[1], event)
            self.push("EOSE", frame[1])

    async def _receive(self) -> str | bytes | None:
        return await self._inbound.get()

    async def _close_transport(self) -> None:
        if self.transport_open:
            self.transport_open = False
            self._inbound.put_nowait(None)

    # -- Test controls ------------------------------------------------------

    def push(self, *frame: Any) -> None:
        """Queue one relay->client frame."""
        self._inbound.put_nowait(json.dumps(list(frame)))

    def push_raw(self, raw: str | bytes) -> None:
        """Queue one undecoded frame."""
        self._inbound.put_nowait(raw)

    def drop(self) -> None:
        """Simulate the relay closing the socket."""
        self._inbound.put_nowait(None)

    def frames(self, kind: str) -> list[list[Any]]:
        """Sent frames of one type (``"EVENT"``, ``"REQ"``, ``"CLOSE"``)."""
        return [frame for frame in self.sent if frame[0] == kind]


class FakeRelayFactory:
    """Connection factory for ``RelayPool``/``Client`` that builds fakes.

    Per-relay behaviour is set with ``configure(url, **options)`` before the
    relay is added; every connection built is kept in ``connections``.
    """

    def __init__(self) -> None:
        self.connections: dict[str, FakeRelayConnection] = {}
        self._options: dict[str, dict[str, Any]] = {}

    def configure(self, url: str, **options: Any) -> None:
        self._options[Relay(url).url] = options

    def __call__(self, relay: Relay, config: ConnectionConfig) -> FakeRelayConnection:
        connection = FakeRelayConnection(relay, config, **self._options.get(relay.url, {}))
        self.connections[relay.url] = connection
        return connection

    def __getitem__(self, url: str) -> FakeRelayConnection:
        return self.connections[Relay(url).url]


@pytest.fixture
def relay_factory() -> FakeRelayFactory:
    """Factory of in-memory relay connections."""
    return FakeRelayFactory()


@pytest.fixture
def wait_until() -> Callable[..., Any]:
    """Async helper polling a predicate until true (fails after *timeout*)."""

    async def _wait(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
        async with asyncio.timeout(timeout):
            while not predicate():
                await asyncio.sleep(0.005)

    return _wait
