"""
Relay endpoints: URL normalization and network classification.

A relay is identified everywhere in the client by its normalized URL, so two
spellings of the same endpoint (``wss://Relay.Example.com/`` and
``wss://relay.example.com:443``) end up as one pool entry and one line in
``relays.json``.

Normalization rules:

- scheme and host are lowercased; only ``ws`` and ``wss`` are accepted
- the default port for the scheme (80 / 443) is dropped
- repeated slashes in the path collapse and a trailing slash is removed
- query strings and fragments are rejected

The host decides the [NetworkType][nostrcli.models.constants.NetworkType]:
overlay suffixes (``.onion``, ``.i2p``, ``.loki``) first, then loopback and
private addresses, then ordinary dotted domain names.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from ipaddress import ip_address
from typing import NamedTuple

from rfc3986 import uri_reference
from rfc3986.exceptions import UnpermittedComponentError, ValidationError
from rfc3986.validators import Validator

from ._validation import validate_str_no_null
from .constants import NetworkType


DEFAULT_PORTS: dict[str, int] = {"ws": 80, "wss": 443}

OVERLAY_SUFFIXES: dict[str, NetworkType] = {
    ".onion": NetworkType.TOR,
    ".i2p": NetworkType.I2P,
    ".loki": NetworkType.LOKI,
}

_LOCAL_HOSTNAMES = frozenset({"localhost", "localhost.localdomain"})
_REPEATED_SLASHES = re.compile(r"/{2,}")

_URL_VALIDATOR = (
    Validator()
    .require_presence_of("scheme", "host")
    .allow_schemes(*DEFAULT_PORTS)
    .check_validity_of("scheme", "host", "port", "path")
)


class _Endpoint(NamedTuple):
    scheme: str
    host: str
    port: int | None
    path: str | None


def classify_host(host: str) -> NetworkType:
    """Return the network a relay host lives on (``UNKNOWN`` if unusable)."""
    name = host.lower().strip("[]")
    if not name:
        return NetworkType.UNKNOWN

    for suffix, network in OVERLAY_SUFFIXES.items():
        if name.endswith(suffix):
            return network
    if name in _LOCAL_HOSTNAMES:
        return NetworkType.LOCAL

    try:
        address = ip_address(name)
    except ValueError:
        pass
    else:
        if address.is_loopback or address.is_private or address.is_link_local:
            return NetworkType.LOCAL
        return NetworkType.CLEARNET

    labels = name.split(".")
    if len(labels) < 2 or any(not label or label[0] == "-" or label[-1] == "-" for label in labels):
        return NetworkType.UNKNOWN
    return NetworkType.CLEARNET


def _split_url(raw: str) -> _Endpoint:
    uri = uri_reference(raw.strip()).normalize()
    try:
        _URL_VALIDATOR.validate(uri)
    except UnpermittedComponentError:
        raise ValueError(f"relay URL must use ws:// or wss://, got {raw!r}") from None
    except ValidationError as e:
        raise ValueError(f"invalid relay URL {raw!r}: {e}") from None

    if uri.query:
        raise ValueError(f"relay URL must not carry a query string: {raw!r}")
    if uri.fragment:
        raise ValueError(f"relay URL must not carry a fragment: {raw!r}")

    port = int(uri.port) if uri.port else None
    if port == DEFAULT_PORTS[uri.scheme]:
        port = None
    path = _REPEATED_SLASHES.sub("/", uri.path or "").rstrip("/") or None
    return _Endpoint(uri.scheme, uri.host.strip("[]"), port, path)


@dataclass(frozen=True, slots=True)
class Relay:
    """A validated relay endpoint.

    Construct it from any accepted spelling; every derived field is filled in
    ``__post_init__``. Equality and hashing use the normalized fields only,
    never the raw input.

    Attributes:
        url: Normalized URL, the relay's identity.
        network: Where the host lives; overlay relays need a SOCKS proxy.
        scheme: ``ws`` or ``wss``.
        host: Host name or address (no IPv6 brackets).
        port: Explicit non-default port, else ``None``.
        path: Normalized path, else ``None``.

    Raises:
        ValueError: For another scheme, a query or fragment, a null byte, or
            a host that is neither an address nor a dotted domain.

    Examples:
        ```python
        Relay("WSS://Relay.Damus.io:443/").url   # 'wss://relay.damus.io'
        Relay("ws://localhost:7777").network     # NetworkType.LOCAL
        ```
    """

    raw_url: str = field(repr=False, compare=False)

    url: str = field(init=False)
    network: NetworkType = field(init=False)
    scheme: str = field(init=False)
    host: str = field(init=False)
    port: int | None = field(init=False)
    path: str | None = field(init=False)

    def __post_init__(self) -> None:
        validate_str_no_null(self.raw_url, "relay URL")
        endpoint = _split_url(self.raw_url)
        network = classify_host(endpoint.host)
        if network == NetworkType.UNKNOWN:
            raise ValueError(f"relay URL has an unusable host: {endpoint.host!r}")

        netloc = f"[{endpoint.host}]" if ":" in endpoint.host else endpoint.host
        if endpoint.port is not None:
            netloc = f"{netloc}:{endpoint.port}"

        object.__setattr__(self, "url", f"{endpoint.scheme}://{netloc}{endpoint.path or ''}")
        object.__setattr__(self, "network", network)
        object.__setattr__(self, "scheme", endpoint.scheme)
        object.__setattr__(self, "host", endpoint.host)
        object.__setattr__(self, "port", endpoint.port)
        object.__setattr__(self, "path", endpoint.path)

    def __str__(self) -> str:
        return self.url

    @property
    def is_overlay(self) -> bool:
        """True for Tor, I2P and Lokinet relays."""
        return self.network in OVERLAY_SUFFIXES.values()


def normalize_relay_url(url: str) -> str:
    """Return the normalized form of *url*.

    Raises:
        ValueError: If *url* is not a valid relay URL.
    """
    return Relay(url).url
