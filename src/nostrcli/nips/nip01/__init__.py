"""NIP-01 basic protocol: event serialization, signing, and wire framing.

Implements [NIP-01](https://github.com/nostr-protocol/nips/blob/master/01.md).

Attributes:
    codec: Canonical serialization, event ids, BIP-340 signing and
        verification, text note construction.
    messages: Encoding of client frames (``EVENT``, ``REQ``, ``CLOSE``) and
        decoding of relay frames into typed messages.
"""

from .codec import (
    build_text_note,
    canonical_bytes,
    derive_id,
    parse_event,
    sign,
    sign_draft,
    verify,
)
from .messages import (
    AuthMessage,
    ClosedMessage,
    EoseMessage,
    EventMessage,
    NoticeMessage,
    OkMessage,
    RelayMessage,
    decode_relay_message,
    encode_close,
    encode_event,
    encode_req,
)


__all__ = [
    "AuthMessage",
    "ClosedMessage",
    "EoseMessage",
    "EventMessage",
    "NoticeMessage",
    "OkMessage",
    "RelayMessage",
    "build_text_note",
    "canonical_bytes",
    "decode_relay_message",
    "derive_id",
    "encode_close",
    "encode_event",
    "encode_req",
    "parse_event",
    "sign",
    "sign_draft",
    "verify",
]
