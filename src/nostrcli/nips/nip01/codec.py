"""
NIP-01 event codec: canonical serialization, ids, and Schnorr signatures.

An event id is the SHA-256 of the event's canonical serialization, the JSON
array ``[0, pubkey, created_at, kind, tags, content]`` rendered with no
whitespace and a fixed string escaping. Any two implementations must produce
byte-identical output for the same event, otherwise ids (and therefore
signatures) disagree. ``json.dumps`` is not used for this reason: its
escaping of non-ASCII and control characters differs from the NIP-01 rules.

Signatures are BIP-340 Schnorr over the 32-byte id, computed with
``coincurve`` (libsecp256k1) and fresh auxiliary randomness.

Examples:
    ```python
    from nostrcli.models import Keypair
    from nostrcli.nips.nip01 import build_text_note, verify

    event = build_text_note(Keypair.generate(), "hello nostr", tags=[["t", "intro"]])
    verify(event)  # raises on failure
    ```

See Also:
    [nostrcli.nips.nip01.messages][]: Wire framing that carries these events.
    [nostrcli.core.feed.FeedAggregator][nostrcli.core.feed.FeedAggregator]:
        Verifies every inbound event with [parse_event()][nostrcli.nips.nip01.codec.parse_event].
"""

from __future__ import annotations

import hashlib
import secrets
import time
from typing import TYPE_CHECKING, Any

from coincurve import PrivateKey, PublicKeyXOnly

from nostrcli.exceptions import InvalidSignatureError, MalformedEventError
from nostrcli.models.constants import EventKind
from nostrcli.models.event import Event, EventDraft, validate_draft


if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from nostrcli.models.keys import Keypair


# NIP-01 short escapes; the remaining C0 controls become \u00XX as in
# serde_json and JSON.stringify. Everything else is emitted verbatim.
_ESCAPES: dict[str, str] = {chr(code): f"\\u{code:04x}" for code in range(0x20)}
_ESCAPES.update(
    {
        "\n": "\\n",
        '"': '\\"',
        "\\": "\\\\",
        "\r": "\\r",
        "\t": "\\t",
        "\b": "\\b",
        "\f": "\\f",
    }
)
_ESCAPE_TABLE = str.maketrans(_ESCAPES)


def _quote(value: str) -> str:
    return '"' + value.translate(_ESCAPE_TABLE) + '"'


def _serialize_tags(tags: Iterable[Sequence[str]]) -> str:
    return "[" + ",".join("[" + ",".join(_quote(v) for v in tag) + "]" for tag in tags) + "]"


def canonical_bytes(event: EventDraft | Event) -> bytes:
    """Return the UTF-8 canonical serialization of *event*.

    Accepts a draft or a signed event; ``id`` and ``sig`` never take part.

    Raises:
        TypeError: If a draft field has the wrong type.
        ValueError: If a draft field is out of range.
        MalformedEventError: If a string holds a lone surrogate, which has
            no UTF-8 encoding.
    """
    if isinstance(event, EventDraft):
        validate_draft(event)
    text = (
        f"[0,{_quote(event.pubkey)},{int(event.created_at)},{int(event.kind)},"
        f"{_serialize_tags(event.tags)},{_quote(event.content)}]"
    )
    try:
        return text.encode("utf-8")
    except UnicodeEncodeError as e:
        raise MalformedEventError(f"event text is not encodable as UTF-8: {e.reason}") from None


def derive_id(canonical: bytes) -> str:
    """Return the event id: lowercase hex SHA-256 of the canonical bytes."""
    return hashlib.sha256(canonical).hexdigest()


def sign(event_id: str, keypair: Keypair) -> str:
    """Return the 128-char hex BIP-340 signature of *event_id*.

    Raises:
        ValueError: If *event_id* is not 64 hex characters.
    """
    message = bytes.fromhex(event_id)
    if len(message) != 32:
        raise ValueError("event_id must be 32 bytes of hex")
    signature = PrivateKey(keypair.secret_bytes()).sign_schnorr(message, secrets.token_bytes(32))
    return signature.hex()


def sign_draft(draft: EventDraft, keypair: Keypair) -> Event:
    """Serialize, hash and sign *draft*, returning the immutable event.

    Raises:
        ValueError: If the draft's pubkey is not the keypair's public key.
    """
    if draft.pubkey != keypair.public_key:
        raise ValueError("draft pubkey does not match the signing keypair")
    event_id = derive_id(canonical_bytes(draft))
    return Event(
        id=event_id,
        pubkey=draft.pubkey,
        created_at=draft.created_at,
        kind=int(draft.kind),
        tags=draft.tags,
        content=draft.content,
        sig=sign(event_id, keypair),
    )


def verify(event: Event) -> None:
    """Check the id and signature of a signed event.

    Raises:
        MalformedEventError: If ``id`` is not the hash of the canonical
            serialization.
        InvalidSignatureError: If the public key is not a valid curve point
            or the signature does not verify.
    """
    if derive_id(canonical_bytes(event)) != event.id:
        raise MalformedEventError(f"event id mismatch: {event.id}")
    try:
        valid = PublicKeyXOnly(bytes.fromhex(event.pubkey)).verify(
            bytes.fromhex(event.sig), bytes.fromhex(event.id)
        )
    except ValueError as e:
        raise InvalidSignatureError(f"invalid public key {event.pubkey}: {e}") from None
    if not valid:
        raise InvalidSignatureError(f"bad signature on event {event.id}")


def build_text_note(
    keypair: Keypair,
    content: str,
    tags: Iterable[Sequence[str]] = (),
    created_at: int | None = None,
) -> Event:
    """Build and sign a kind-1 text note authored by *keypair*."""
    draft = EventDraft(
        pubkey=keypair.public_key,
        content=content,
        kind=EventKind.TEXT_NOTE,
        tags=[list(tag) for tag in tags],
        created_at=int(time.time()) if created_at is None else created_at,
    )
    return sign_draft(draft, keypair)


def parse_event(payload: Any) -> Event:
    """Convert a raw relay payload into a verified event.

    Raises:
        MalformedEventError: If the payload is structurally invalid or its
            id does not match.
        InvalidSignatureError: If the signature does not verify.
    """
    try:
        event = Event.from_dict(payload)
    except ValueError as e:
        raise MalformedEventError(str(e)) from None
    verify(event)
    return event
