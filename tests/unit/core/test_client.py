"""
Unit tests for core.client module.

Tests:
- ClientConfig defaults, path derivation and relay normalization
- Identity lifecycle: generate, import, load, public key without password
- Note signing with and without a loaded identity
- Relay list management (persisted, with defaults as fallback)
- connect/publish/fetch_feed/follow_feed against in-memory relays
- close() and YAML construction
"""

import asyncio
from pathlib import Path
from typing import Any

import pytest

from nostrcli.core.client import DEFAULT_RELAYS, Client, ClientConfig
from nostrcli.exceptions import AuthenticationError, NotFoundError, StorageError
from nostrcli.models import EventKind, Filter, Keypair, PublishStatus, RelayStatus
from nostrcli.nips.nip01 import verify


RELAY_A = "wss://relay-a.example.com"
RELAY_B = "wss://relay-b.example.com"


def _client(config: ClientConfig, factory: Any = None, **overrides: Any) -> Client:
    if overrides:
        config = config.model_copy(update=overrides)
    return Client(config, connection_factory=factory)


# ============================================================================
# ClientConfig Tests
# ============================================================================


class TestClientConfig:
    """Tests for ClientConfig."""

    def test_defaults(self) -> None:
        config = ClientConfig()
        assert config.data_dir == Path("~/.nostr-cli-app").expanduser()
        assert config.default_relays == list(DEFAULT_RELAYS)
        assert config.keystore.path == config.data_dir / "keys.json"
        assert config.relays_path == config.data_dir / "relays.json"

    def test_paths_follow_data_dir(self, tmp_path: Path) -> None:
        config = ClientConfig(data_dir=tmp_path)
        assert config.keystore.path == tmp_path / "keys.json"
        assert config.relays_path == tmp_path / "relays.json"

    def test_explicit_keystore_path_kept(self, tmp_path: Path) -> None:
        config = ClientConfig(data_dir=tmp_path, keystore={"path": tmp_path / "other.json"})
        assert config.keystore.path == tmp_path / "other.json"

    def test_default_relays_normalized(self) -> None:
        config = ClientConfig(default_relays=["WSS://Relay-A.example.com/", "wss://relay-a.example.com"])
        assert config.default_relays == [RELAY_A]

    def test_invalid_default_relay(self) -> None:
        with pytest.raises(ValueError):
            ClientConfig(default_relays=["https://example.com"])

    def test_positive_timeouts(self) -> None:
        with pytest.raises(ValueError):
            ClientConfig(fetch_timeout=0)


# ============================================================================
# Identity Tests
# ============================================================================


class TestIdentity:
    """Tests for identity management."""

    def test_generate_and_reload(self, client_config: ClientConfig) -> None:
        client = Client(client_config)
        generated = client.generate_identity("secret")
        assert client.keypair is generated
        assert client.keystore.exists()

        fresh = Client(client_config)
        assert fresh.load_identity("secret").public_key == generated.public_key

    def test_wrong_password(self, client_config: ClientConfig) -> None:
        Client(client_config).generate_identity("secret")
        with pytest.raises(AuthenticationError):
            Client(client_config).load_identity("wrong")

    def test_generate_refuses_overwrite(self, client_config: ClientConfig) -> None:
        client = Client(client_config)
        first = client.generate_identity("secret")
        with pytest.raises(StorageError, match="already exists"):
            client.generate_identity("secret")
        assert Client(client_config).load_identity("secret").public_key == first.public_key

    def test_generate_overwrite(self, client_config: ClientConfig) -> None:
        client = Client(client_config)
        client.generate_identity("secret")
        second = client.generate_identity("other", overwrite=True)
        assert Client(client_config).load_identity("other").public_key == second.public_key

    def test_import(self, client_config: ClientConfig, keypair: Keypair) -> None:
        client = Client(client_config)
        imported = client.import_identity(keypair.secret_hex(), "secret")
        assert imported.public_key == keypair.public_key
        assert Client(client_config).load_identity("secret").public_key == keypair.public_key

    def test_import_nsec(self, client_config: ClientConfig, keypair: Keypair) -> None:
        imported = Client(client_config).import_identity(keypair.nsec(), "secret")
        assert imported.public_key == keypair.public_key

    def test_import_refuses_overwrite(self, client_config: ClientConfig, keypair: Keypair) -> None:
        client = Client(client_config)
        client.generate_identity("secret")
        with pytest.raises(StorageError):
            client.import_identity(keypair.secret_hex(), "secret")

    def test_import_invalid(self, client_config: ClientConfig) -> None:
        with pytest.raises(ValueError):
            Client(client_config).import_identity("not-a-key", "secret")

    def test_load_missing(self, client_config: ClientConfig) -> None:
        with pytest.raises(NotFoundError):
            Client(client_config).load_identity("secret")

    def test_public_key_without_password(self, client_config: ClientConfig, keypair: Keypair) -> None:
        Client(client_config).import_identity(keypair.secret_hex(), "secret")
        client = Client(client_config)
        assert client.get_public_key() == keypair.public_key
        assert client.keypair is None

    def test_public_key_missing(self, client_config: ClientConfig) -> None:
        with pytest.raises(NotFoundError):
            Client(client_config).get_public_key()


class TestSigning:
    """Tests for build_and_sign_note()."""

    def test_requires_identity(self, client_config: ClientConfig) -> None:
        with pytest.raises(AuthenticationError, match="no identity loaded"):
            Client(client_config).build_and_sign_note("hello")

    def test_signed_note(self, client_config: ClientConfig, keypair: Keypair) -> None:
        client = Client(client_config)
        client.import_identity(keypair.secret_hex(), "secret")
        event = client.build_and_sign_note("hello #nostr", tags=[["t", "nostr"]])
        verify(event)
        assert event.pubkey == keypair.public_key
        assert event.kind == EventKind.TEXT_NOTE
        assert event.content == "hello #nostr"
        assert event.tags == (("t", "nostr"),)

    @pytest.mark.asyncio
    async def test_close_forgets_identity(self, client_config: ClientConfig) -> None:
        client = Client(client_config)
        client.generate_identity("secret")
        await client.close()
        assert client.keypair is None
        with pytest.raises(AuthenticationError):
            client.build_and_sign_note("hello")


# ============================================================================
# Relay List Tests
# ============================================================================


class TestRelayList:
    """Tests for add/remove/list relays."""

    def test_defaults_when_unconfigured(self, client_config: ClientConfig) -> None:
        client = Client(client_config)
        assert client.relay_urls() == [RELAY_A]
        records = client.list_relays()
        assert [r.url for r in records] == [RELAY_A]
        assert records[0].status == RelayStatus.DISCONNECTED

    @pytest.mark.asyncio
    async def test_add_persists(self, client_config: ClientConfig) -> None:
        client = Client(client_config)
        assert await client.add_relay("wss://Relay-B.example.com/") is True
        assert await client.add_relay(RELAY_B) is False
        assert Client(client_config).relay_urls() == [RELAY_B]
        assert client_config.relays_path.is_file()

    @pytest.mark.asyncio
    async def test_add_invalid(self, client_config: ClientConfig) -> None:
        with pytest.raises(ValueError):
            await Client(client_config).add_relay("http://relay.example.com")

    @pytest.mark.asyncio
    async def test_remove(self, client_config: ClientConfig) -> None:
        client = Client(client_config)
        await client.add_relay(RELAY_A)
        await client.add_relay(RELAY_B)
        assert await client.remove_relay(RELAY_A) is True
        assert client.relay_urls() == [RELAY_B]

    @pytest.mark.asyncio
    async def test_remove_unknown(self, client_config: ClientConfig) -> None:
        client = Client(client_config)
        await client.add_relay(RELAY_A)
        assert await client.remove_relay(RELAY_B) is False
        assert client.relay_urls() == [RELAY_A]

    @pytest.mark.asyncio
    async def test_add_while_running_connects(
        self, client_config: ClientConfig, relay_factory: Any, wait_until: Any
    ) -> None:
        async with _client(client_config, relay_factory) as client:
            await client.connect()
            await client.add_relay(RELAY_B)
            await wait_until(lambda: RELAY_B in client.pool.connected_relays())
            statuses = {r.url: r.status for r in client.list_relays()}
        assert statuses == {RELAY_B: RelayStatus.CONNECTED}

    @pytest.mark.asyncio
    async def test_remove_while_running_disconnects(
        self, client_config: ClientConfig, relay_factory: Any
    ) -> None:
        async with _client(client_config, relay_factory) as client:
            await client.add_relay(RELAY_A)
            await client.add_relay(RELAY_B)
            await client.connect()
            await client.remove_relay(RELAY_B)
            assert client.pool.connected_relays() == [RELAY_A]
            assert not relay_factory[RELAY_B].is_connected


# ============================================================================
# Network Tests
# ============================================================================


class TestConnect:
    """Tests for connect()."""

    @pytest.mark.asyncio
    async def test_connects_default_relays(self, client_config: ClientConfig, relay_factory: Any) -> None:
        async with _client(client_config, relay_factory) as client:
            assert await client.connect() == [RELAY_A]
            assert client.list_relays()[0].status == RelayStatus.CONNECTED
        assert not relay_factory[RELAY_A].is_connected

    @pytest.mark.asyncio
    async def test_no_relay_reachable(
        self, client_config: ClientConfig, relay_factory: Any, caplog: pytest.LogCaptureFixture
    ) -> None:
        relay_factory.configure(RELAY_A, always_fail=True)
        async with _client(client_config, relay_factory) as client:
            assert await client.connect() == []
        assert "no_relays_connected" in caplog.text


class TestPublish:
    """Tests for publish()."""

    @pytest.mark.asyncio
    async def test_partial_acceptance(
        self, client_config: ClientConfig, relay_factory: Any, make_event: Any
    ) -> None:
        relay_factory.configure(RELAY_B, accept=False, ok_message="blocked: spam")
        event = make_event()
        async with _client(client_config, relay_factory, default_relays=[RELAY_A, RELAY_B]) as client:
            result = await client.publish(event)
        assert result.event_id == event.id
        assert result.accepted == [RELAY_A]
        assert result[RELAY_B].status == PublishStatus.REJECTED
        assert result[RELAY_B].message == "blocked: spam"
        assert relay_factory[RELAY_A].frames("EVENT") == [["EVENT", event.to_dict()]]

    @pytest.mark.asyncio
    async def test_all_unreachable(self, client_config: ClientConfig, relay_factory: Any, make_event: Any) -> None:
        relay_factory.configure(RELAY_A, always_fail=True)
        async with _client(client_config, relay_factory) as client:
            result = await client.publish(make_event())
        assert result.accepted == []
        assert result.unreachable == [RELAY_A]

    @pytest.mark.asyncio
    async def test_note_reaches_feed_once_after_partial_publish(
        self, client_config: ClientConfig, relay_factory: Any, make_event: Any, wait_until: Any
    ) -> None:
        relay_factory.configure(RELAY_B, always_fail=True)
        event = make_event("seen twice, shown once")
        async with _client(client_config, relay_factory, default_relays=[RELAY_A, RELAY_B]) as client:
            result = await client.publish(event)
            assert result.accepted == [RELAY_A]
            assert result.unreachable == [RELAY_B]

            relay_b = relay_factory[RELAY_B]
            relay_b.always_fail = False
            await wait_until(lambda: RELAY_B in client.pool.connected_relays())
            for relay in (relay_factory[RELAY_A], relay_b):
                relay.stored_events.append(event.to_dict())

            feed = await client.fetch_feed()

        assert feed.events == (event,)
        assert len(relay_factory[RELAY_A].frames("REQ")) == 1
        assert len(relay_b.frames("REQ")) == 1


class TestFetchFeed:
    """Tests for fetch_feed()."""

    @pytest.mark.asyncio
    async def test_merges_relays(self, client_config: ClientConfig, relay_factory: Any, make_event: Any) -> None:
        shared = make_event("shared", created_at=200)
        only_a = make_event("only a", created_at=100)
        only_b = make_event("only b", created_at=300)
        relay_factory.configure(RELAY_A, stored_events=[only_a.to_dict(), shared.to_dict()])
        relay_factory.configure(RELAY_B, stored_events=[shared.to_dict(), only_b.to_dict()])
        async with _client(client_config, relay_factory, default_relays=[RELAY_A, RELAY_B]) as client:
            feed = await client.fetch_feed()
            assert client.pool.subscriptions == frozenset()
        assert [e.content for e in feed] == ["only b", "shared", "only a"]

    @pytest.mark.asyncio
    async def test_sends_query(self, client_config: ClientConfig, relay_factory: Any) -> None:
        query = Filter.text_notes(hashtag="nostr", limit=5)
        async with _client(client_config, relay_factory) as client:
            await client.fetch_feed(query)
        (req,) = relay_factory[RELAY_A].frames("REQ")
        assert req[2] == {"kinds": [1], "#t": ["nostr"], "limit": 5}
        assert relay_factory[RELAY_A].frames("CLOSE") == [["CLOSE", req[1]]]

    @pytest.mark.asyncio
    async def test_limit_keeps_newest(self, client_config: ClientConfig, relay_factory: Any, make_event: Any) -> None:
        events = [make_event(str(i), created_at=i) for i in range(5)]
        relay_factory.configure(RELAY_A, stored_events=[e.to_dict() for e in events])
        async with _client(client_config, relay_factory) as client:
            feed = await client.fetch_feed(Filter.text_notes(limit=2))
        assert [e.content for e in feed] == ["4", "3"]

    @pytest.mark.asyncio
    async def test_discards_invalid_and_unmatched(
        self, client_config: ClientConfig, relay_factory: Any, make_event: Any
    ) -> None:
        good = make_event("good", tags=[["t", "nostr"]])
        untagged = make_event("untagged")
        forged = dict(make_event("forged", tags=[["t", "nostr"]]).to_dict(), content="changed")
        relay_factory.configure(RELAY_A, stored_events=[good.to_dict(), untagged.to_dict(), forged])
        async with _client(client_config, relay_factory) as client:
            feed = await client.fetch_feed(Filter.text_notes(hashtag="nostr"))
        assert feed.events == (good,)

    @pytest.mark.asyncio
    async def test_slow_relay_times_out(
        self, client_config: ClientConfig, relay_factory: Any, make_event: Any
    ) -> None:
        event = make_event()
        relay_factory.configure(RELAY_A, stored_events=[event.to_dict()])
        relay_factory.configure(RELAY_B, auto_eose=False)
        async with _client(
            client_config, relay_factory, default_relays=[RELAY_A, RELAY_B], fetch_timeout=0.2
        ) as client:
            loop = asyncio.get_running_loop()
            started = loop.time()
            feed = await client.fetch_feed()
            elapsed = loop.time() - started
        assert feed.events == (event,)
        assert 0.15 <= elapsed < 1.0

    @pytest.mark.asyncio
    async def test_no_relays_connected(self, client_config: ClientConfig, relay_factory: Any) -> None:
        relay_factory.configure(RELAY_A, always_fail=True)
        async with _client(client_config, relay_factory) as client:
            feed = await client.fetch_feed()
        assert len(feed) == 0


class TestFollowFeed:
    """Tests for follow_feed()."""

    @pytest.mark.asyncio
    async def test_yields_stored_then_live(
        self, client_config: ClientConfig, relay_factory: Any, make_event: Any
    ) -> None:
        stored = make_event("stored", created_at=100)
        live = make_event("live", created_at=200)
        relay_factory.configure(RELAY_A, stored_events=[stored.to_dict()])
        async with _client(client_config, relay_factory) as client:
            stream = client.follow_feed(Filter.text_notes())
            assert await asyncio.wait_for(anext(stream), 1) == stored

            (sub_id,) = client.pool.subscriptions
            connection = relay_factory[RELAY_A]
            connection.push("EVENT", sub_id, stored.to_dict())
            connection.push("EVENT", "other-subscription", make_event("elsewhere").to_dict())
            connection.push("EVENT", sub_id, live.to_dict())
            assert await asyncio.wait_for(anext(stream), 1) == live

            await stream.aclose()
            assert client.pool.subscriptions == frozenset()
            assert connection.frames("CLOSE") == [["CLOSE", sub_id]]


# ============================================================================
# Construction Tests
# ============================================================================


class TestFromYaml:
    """Tests for Client.from_yaml()."""

    def test_from_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text(
            f"data_dir: {tmp_path}\n"
            "fetch_timeout: 3\n"
            "default_relays:\n"
            f"  - {RELAY_B}\n"
            "feed:\n"
            "  max_events: 50\n"
        )
        client = Client.from_yaml(path)
        assert client.config.data_dir == tmp_path
        assert client.config.fetch_timeout == 3
        assert client.config.feed.max_events == 50
        assert client.relay_urls() == [RELAY_B]
        assert client.keystore.path == tmp_path / "keys.json"

    def test_from_yaml_missing(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            Client.from_yaml(tmp_path / "missing.yaml")
