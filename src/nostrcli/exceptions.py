"""nostrcli exception hierarchy.

Typed exceptions for every error category, so callers can tell local
failures that block the requested operation (a wrong password) from remote
failures that are absorbed and retried (a flaky relay), and so that
``CancelledError`` is never caught by accident.

Exception hierarchy:

```text
NostrCliError (base -- never raised directly)
├── ConfigurationError      -- invalid config, refused unencrypted storage
├── StorageError            -- unreadable/unsupported persisted state
├── AuthenticationError     -- wrong/missing password, corrupt key blob
├── NotFoundError           -- no identity yet, unknown relay
├── ProtocolError           -- NIP-01 framing or validation failure
│   ├── MalformedEventError -- missing fields, id mismatch
│   └── InvalidSignatureError
├── NetworkError            -- connect/send/receive failure (recoverable)
│   └── RelayTimeoutError   -- connection or request timed out
└── RelayRejected           -- relay answered OK=false to a publish
```

See Also:
    [FeedAggregator][nostrcli.core.feed.FeedAggregator]: Absorbs
        [ProtocolError][nostrcli.exceptions.ProtocolError] subclasses on
        inbound events (dropped and logged).
    [RelayPool][nostrcli.core.pool.RelayPool]: Converts
        [NetworkError][nostrcli.exceptions.NetworkError] and
        [RelayRejected][nostrcli.exceptions.RelayRejected] into
        per-relay publish outcomes.
"""

from __future__ import annotations


class NostrCliError(Exception):
    """Base exception for all nostrcli errors.

    Never raised directly -- always use a specific subclass.
    """


# ---------------------------------------------------------------------------
# Local state
# ---------------------------------------------------------------------------


class ConfigurationError(NostrCliError):
    """Invalid or refused configuration (YAML, CLI flags, storage policy)."""


class StorageError(NostrCliError):
    """Persisted state exists but cannot be used as-is.

    Raised for envelope versions newer than this client understands, for
    unreadable relay lists, and when generating an identity would silently
    overwrite an existing one.
    """


class AuthenticationError(NostrCliError):
    """Wrong or missing password, or a key blob that fails to decrypt.

    A corrupt or tampered blob is indistinguishable from a wrong password
    under authenticated encryption, so both surface as this error.
    """


class NotFoundError(NostrCliError):
    """A requested resource does not exist (no identity, no such relay)."""


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class ProtocolError(NostrCliError):
    """NIP-01 framing or validation failure.

    See Also:
        [MalformedEventError][nostrcli.exceptions.MalformedEventError]:
            Structural event failures.
        [InvalidSignatureError][nostrcli.exceptions.InvalidSignatureError]:
            Cryptographic event failures.
    """


class MalformedEventError(ProtocolError):
    """Event is missing required fields, has ill-typed fields, or its id
    does not match the hash of its canonical serialization."""


class InvalidSignatureError(ProtocolError):
    """Event signature does not verify against the author's public key."""


# ---------------------------------------------------------------------------
# Network
# ---------------------------------------------------------------------------


class NetworkError(NostrCliError):
    """Relay connect, send, or receive failure.

    Always recoverable: the pool retries with backoff and never lets this
    error terminate the process.
    """


class RelayTimeoutError(NetworkError):
    """Connection attempt or request/response exchange timed out."""


class RelayRejected(NostrCliError):
    """A relay explicitly refused a published event.

    Attributes:
        reason: The human-readable message from the relay's ``OK`` frame.
    """

    def __init__(self, reason: str = "") -> None:
        super().__init__(reason or "rejected by relay")
        self.reason = reason
