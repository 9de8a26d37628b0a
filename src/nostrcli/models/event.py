"""
Nostr events in their two states: unsigned draft and signed, immutable event.

An [EventDraft][nostrcli.models.event.EventDraft] is an ordinary mutable
dataclass: the composer may change its content or tags freely. Signing it
through [sign_draft()][nostrcli.nips.nip01.codec.sign_draft] produces an
[Event][nostrcli.models.event.Event], a frozen dataclass whose ``id`` and
``sig`` can never drift from the signed fields because none of them can be
reassigned.

Inbound events arrive as raw JSON objects from relays and go through
[Event.from_dict()][nostrcli.models.event.Event.from_dict], which rejects
structurally invalid payloads with ``ValueError``; the codec translates that
into [MalformedEventError][nostrcli.exceptions.MalformedEventError].
Cryptographic checks (id recomputation, Schnorr signature) live in
[nostrcli.nips.nip01.codec][].

See Also:
    [nostrcli.core.feed.FeedAggregator][nostrcli.core.feed.FeedAggregator]:
        Stores verified events for display.
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from ._validation import (
    freeze_tags,
    validate_hex,
    validate_int_range,
)
from .constants import EVENT_KIND_MAX, EventKind


_REQUIRED_FIELDS: tuple[str, ...] = ("id", "pubkey", "created_at", "kind", "tags", "content", "sig")


@dataclass(slots=True)
class EventDraft:
    """Unsigned event under construction.

    Attributes:
        pubkey: Author public key (64-char hex). Must match the signing key.
        content: Free-text content.
        kind: Event kind (defaults to a text note).
        tags: List of tag arrays, each a list of strings.
        created_at: Unix timestamp in seconds (defaults to now).
    """

    pubkey: str
    content: str = ""
    kind: int = EventKind.TEXT_NOTE
    tags: list[list[str]] = field(default_factory=list)
    created_at: int = field(default_factory=lambda: int(time.time()))


@dataclass(frozen=True, slots=True)
class Event:
    """Immutable signed Nostr event.

    Validation is performed eagerly at construction time; an ``Event`` that
    exists is structurally well-formed. Whether its ``id`` and ``sig`` are
    correct is decided by
    [verify()][nostrcli.nips.nip01.codec.verify].

    Raises:
        TypeError: If a field has the wrong type.
        ValueError: If hex fields have the wrong length or alphabet, the
            timestamp is negative, or the kind is out of range.

    Examples:
        ```python
        event = Event.from_dict(payload)   # from a relay
        event.to_dict()                    # NIP-01 JSON object
        ```
    """

    id: str
    pubkey: str
    created_at: int
    kind: int
    tags: tuple[tuple[str, ...], ...]
    content: str
    sig: str

    def __post_init__(self) -> None:
        validate_hex(self.id, "id", 64)
        validate_hex(self.pubkey, "pubkey", 64)
        validate_hex(self.sig, "sig", 128)
        validate_int_range(self.created_at, "created_at")
        validate_int_range(self.kind, "kind", maximum=EVENT_KIND_MAX)
        if not isinstance(self.content, str):
            raise TypeError(f"content must be a str, got {type(self.content).__name__}")
        # Normalise list-of-lists input so equality and hashing are stable
        object.__setattr__(self, "tags", freeze_tags(self.tags))

    @classmethod
    def from_dict(cls, payload: Any) -> Event:
        """Build an Event from a raw NIP-01 JSON object.

        Args:
            payload: Decoded JSON object received from a relay.

        Raises:
            ValueError: If the payload is not an object, a required
                field is missing, or any field fails validation.
        """
        if not isinstance(payload, Mapping):
            raise ValueError(f"event must be an object, got {type(payload).__name__}")
        missing = [name for name in _REQUIRED_FIELDS if name not in payload]
        if missing:
            raise ValueError(f"event is missing fields: {', '.join(missing)}")
        try:
            return cls(**{name: payload[name] for name in _REQUIRED_FIELDS})
        except TypeError as e:
            raise ValueError(str(e)) from None

    def to_dict(self) -> dict[str, Any]:
        """Return the NIP-01 JSON object for this event."""
        return {
            "id": self.id,
            "pubkey": self.pubkey,
            "created_at": self.created_at,
            "kind": self.kind,
            "tags": [list(tag) for tag in self.tags],
            "content": self.content,
            "sig": self.sig,
        }

    def tag_values(self, name: str) -> list[str]:
        """Return the first value of every tag named *name*."""
        return [tag[1] for tag in self.tags if len(tag) > 1 and tag[0] == name]

    def draft(self) -> EventDraft:
        """Return a mutable, unsigned copy of the signed fields."""
        return EventDraft(
            pubkey=self.pubkey,
            content=self.content,
            kind=self.kind,
            tags=[list(tag) for tag in self.tags],
            created_at=self.created_at,
        )


def validate_draft(draft: EventDraft) -> None:
    """Raise ``TypeError``/``ValueError`` if *draft* cannot be serialized."""
    validate_hex(draft.pubkey, "pubkey", 64)
    validate_int_range(draft.created_at, "created_at")
    validate_int_range(draft.kind, "kind", maximum=EVENT_KIND_MAX)
    if not isinstance(draft.content, str):
        raise TypeError(f"content must be a str, got {type(draft.content).__name__}")
    freeze_tags(draft.tags)
