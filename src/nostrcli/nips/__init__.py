"""Nostr Implementation Possibilities -- protocol-specific encoding logic.

The NIPs layer sits in the middle of the diamond DAG, depending only on
[nostrcli.models][nostrcli.models]. It performs no network I/O: it turns
models into bytes on the wire and bytes on the wire back into models.

Attributes:
    nip01: Canonical event serialization, ids, Schnorr signatures, and the
        client/relay message framing.

See Also:
    [nostrcli.core.connection][nostrcli.core.connection]: Sends and receives
        the frames produced here.
"""

from nostrcli.nips.nip01 import (
    build_text_note,
    decode_relay_message,
    parse_event,
    sign_draft,
    verify,
)


__all__ = [
    "build_text_note",
    "decode_relay_message",
    "parse_event",
    "sign_draft",
    "verify",
]
