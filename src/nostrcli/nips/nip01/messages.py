"""
NIP-01 wire messages exchanged over a relay websocket.

Client-to-relay messages are encoded from typed arguments into JSON text
frames; relay-to-client frames are decoded into frozen dataclasses so the
connection and pool layers can dispatch on type instead of inspecting raw
lists.

```text
client -> relay   ["EVENT", <event>]  ["REQ", <sub_id>, <filter>...]  ["CLOSE", <sub_id>]
relay -> client   ["EVENT", <sub_id>, <event>]   ["EOSE", <sub_id>]   ["NOTICE", <msg>]
                  ["OK", <event_id>, <bool>, <msg>]   ["CLOSED", <sub_id>, <msg>]
                  ["AUTH", <challenge>]
```

Inbound event payloads are left as raw dicts: they are verified later by
[parse_event()][nostrcli.nips.nip01.codec.parse_event] so that one bad event
never prevents the frame around it from being dispatched.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from nostrcli.exceptions import ProtocolError
from nostrcli.models._validation import is_hex


if TYPE_CHECKING:
    from collections.abc import Iterable

    from nostrcli.models.event import Event
    from nostrcli.models.filter import Filter


# ---------------------------------------------------------------------------
# Relay -> client
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class EventMessage:
    """An event pushed for a subscription (payload not yet verified)."""

    subscription_id: str
    event: dict[str, Any]


@dataclass(frozen=True, slots=True)
class EoseMessage:
    """End of stored events for a subscription."""

    subscription_id: str


@dataclass(frozen=True, slots=True)
class NoticeMessage:
    """Human-readable message from the relay."""

    message: str


@dataclass(frozen=True, slots=True)
class OkMessage:
    """Relay verdict on a published event."""

    event_id: str
    accepted: bool
    message: str = ""


@dataclass(frozen=True, slots=True)
class ClosedMessage:
    """The relay ended a subscription on its side."""

    subscription_id: str
    message: str = ""


@dataclass(frozen=True, slots=True)
class AuthMessage:
    """NIP-42 authentication challenge (recorded, not answered)."""

    challenge: str


RelayMessage = EventMessage | EoseMessage | NoticeMessage | OkMessage | ClosedMessage | AuthMessage


def _dumps(message: list[Any]) -> str:
    return json.dumps(message, separators=(",", ":"), ensure_ascii=False)


# ---------------------------------------------------------------------------
# Client -> relay
# ---------------------------------------------------------------------------


def encode_event(event: Event) -> str:
    """Return the ``["EVENT", {...}]`` publish frame."""
    return _dumps(["EVENT", event.to_dict()])


def encode_req(subscription_id: str, filters: Iterable[Filter]) -> str:
    """Return the ``["REQ", sub_id, filter...]`` frame.

    Raises:
        ValueError: If the subscription id is empty or no filter is given.
    """
    if not subscription_id:
        raise ValueError("subscription id must not be empty")
    payload = [f.to_dict() for f in filters]
    if not payload:
        raise ValueError("REQ requires at least one filter")
    return _dumps(["REQ", subscription_id, *payload])


def encode_close(subscription_id: str) -> str:
    """Return the ``["CLOSE", sub_id]`` frame."""
    return _dumps(["CLOSE", subscription_id])


def _require_str(value: Any, what: str) -> str:
    if not isinstance(value, str):
        raise ProtocolError(f"{what} must be a string, got {type(value).__name__}")
    return value


def decode_relay_message(raw: str | bytes) -> RelayMessage:
    """Decode one relay text frame.

    Trailing extra elements are tolerated; missing or ill-typed elements are
    not. A missing message string on ``OK``/``CLOSED`` defaults to ``""``.

    Raises:
        ProtocolError: If the frame is not JSON (or nests too deeply), is not
            a non-empty array, has an unknown type, or its elements have the
            wrong shape.
    """
    try:
        data = json.loads(raw)
    except (ValueError, UnicodeDecodeError) as e:
        raise ProtocolError(f"frame is not valid JSON: {e}") from None
    except RecursionError:
        raise ProtocolError("frame is nested too deeply") from None

    if not isinstance(data, list) or not data:
        raise ProtocolError("frame must be a non-empty JSON array")

    kind, args = data[0], data[1:]

    if kind == "EVENT":
        if len(args) < 2:
            raise ProtocolError("EVENT frame requires a subscription id and an event")
        if not isinstance(args[1], dict):
            raise ProtocolError("EVENT payload must be an object")
        return EventMessage(_require_str(args[0], "subscription id"), args[1])

    if kind == "EOSE":
        if not args:
            raise ProtocolError("EOSE frame requires a subscription id")
        return EoseMessage(_require_str(args[0], "subscription id"))

    if kind == "NOTICE":
        if not args:
            raise ProtocolError("NOTICE frame requires a message")
        return NoticeMessage(_require_str(args[0], "notice"))

    if kind == "OK":
        if len(args) < 2:
            raise ProtocolError("OK frame requires an event id and a status")
        event_id = _require_str(args[0], "event id")
        if not is_hex(event_id, 64):
            raise ProtocolError(f"OK frame has an invalid event id: {event_id!r}")
        if not isinstance(args[1], bool):
            raise ProtocolError("OK status must be a boolean")
        message = _require_str(args[2], "OK message") if len(args) > 2 else ""
        return OkMessage(event_id, args[1], message)

    if kind == "CLOSED":
        if not args:
            raise ProtocolError("CLOSED frame requires a subscription id")
        message = _require_str(args[1], "CLOSED message") if len(args) > 1 else ""
        return ClosedMessage(_require_str(args[0], "subscription id"), message)

    if kind == "AUTH":
        if not args:
            raise ProtocolError("AUTH frame requires a challenge")
        return AuthMessage(_require_str(args[0], "challenge"))

    raise ProtocolError(f"unknown message type: {kind!r}")
