"""
NIP-01 subscription filter.

A [Filter][nostrcli.models.filter.Filter] describes which events a relay
should push for a subscription. The same constraints are applied locally by
[matches()][nostrcli.models.filter.Filter.matches] because relays are not
trusted to honour them.

Examples:
    ```python
    f = Filter.text_notes(hashtag="nostr", limit=50)
    f.to_dict()   # {'kinds': [1], '#t': ['nostr'], 'limit': 50}
    ```
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ._validation import validate_hex, validate_int_range
from .constants import EVENT_KIND_MAX, EventKind


if TYPE_CHECKING:
    from collections.abc import Iterable

    from .event import Event


@dataclass(frozen=True, slots=True)
class Filter:
    """Immutable set of event constraints.

    Every attribute is optional; ``None`` means "no constraint". Lists are
    stored as tuples so that filters are hashable.

    Attributes:
        ids: Event ids (64-char hex).
        authors: Author public keys (64-char hex).
        kinds: Event kinds.
        since: Lower bound on ``created_at`` (inclusive).
        until: Upper bound on ``created_at`` (inclusive).
        limit: Maximum number of stored events the relay should return.
        tags: Single-letter tag name to accepted values (``{"t": ("nostr",)}``).
    """

    ids: tuple[str, ...] | None = None
    authors: tuple[str, ...] | None = None
    kinds: tuple[int, ...] | None = None
    since: int | None = None
    until: int | None = None
    limit: int | None = None
    tags: Mapping[str, tuple[str, ...]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.ids is not None:
            object.__setattr__(self, "ids", tuple(self.ids))
            for value in self.ids:
                validate_hex(value, "ids", 64)
        if self.authors is not None:
            object.__setattr__(self, "authors", tuple(self.authors))
            for value in self.authors:
                validate_hex(value, "authors", 64)
        if self.kinds is not None:
            object.__setattr__(self, "kinds", tuple(self.kinds))
            for kind in self.kinds:
                validate_int_range(kind, "kinds", maximum=EVENT_KIND_MAX)
        for name in ("since", "until", "limit"):
            value = getattr(self, name)
            if value is not None:
                validate_int_range(value, name)
        if self.since is not None and self.until is not None and self.since > self.until:
            raise ValueError("since must be <= until")

        frozen_tags: dict[str, tuple[str, ...]] = {}
        for name, values in self.tags.items():
            if len(name) != 1 or not name.isalpha():
                raise ValueError(f"tag filter name must be a single letter, got {name!r}")
            if isinstance(values, str):
                raise TypeError(f"tag filter #{name} must be a sequence of strings")
            frozen_tags[name] = tuple(values)
        object.__setattr__(self, "tags", frozen_tags)

    def __hash__(self) -> int:
        return hash(
            (
                self.ids,
                self.authors,
                self.kinds,
                self.since,
                self.until,
                self.limit,
                tuple(sorted(self.tags.items())),
            )
        )

    @classmethod
    def text_notes(
        cls,
        authors: Iterable[str] | None = None,
        hashtag: str | None = None,
        limit: int | None = 20,
    ) -> Filter:
        """Build the feed filter: kind-1 notes, optionally by author or hashtag."""
        tags = {"t": (hashtag.lstrip("#").lower(),)} if hashtag else {}
        return cls(
            authors=tuple(authors) if authors is not None else None,
            kinds=(EventKind.TEXT_NOTE,),
            limit=limit,
            tags=tags,
        )

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON object sent inside a ``REQ`` message."""
        data: dict[str, Any] = {}
        if self.ids is not None:
            data["ids"] = list(self.ids)
        if self.authors is not None:
            data["authors"] = list(self.authors)
        if self.kinds is not None:
            data["kinds"] = [int(kind) for kind in self.kinds]
        for name, values in self.tags.items():
            data[f"#{name}"] = list(values)
        if self.since is not None:
            data["since"] = self.since
        if self.until is not None:
            data["until"] = self.until
        if self.limit is not None:
            data["limit"] = self.limit
        return data

    def matches(self, event: Event) -> bool:
        """Return True if *event* satisfies every constraint except ``limit``."""
        if self.ids is not None and event.id not in self.ids:
            return False
        if self.authors is not None and event.pubkey not in self.authors:
            return False
        if self.kinds is not None and event.kind not in self.kinds:
            return False
        if self.since is not None and event.created_at < self.since:
            return False
        if self.until is not None and event.created_at > self.until:
            return False
        for name, values in self.tags.items():
            accepted = set(values)
            if not any(value in accepted for value in event.tag_values(name)):
                return False
        return True
