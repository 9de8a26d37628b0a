"""Persisted relay list (``relays.json``).

The file holds the user's configured relay URLs in insertion order:

```text
{"version": 1, "relays": ["wss://yabu.me", "wss://relay.damus.io"]}
```

Files from earlier releases lack the ``version`` field and are read as
version 0. URLs are normalized with
[normalize_relay_url()][nostrcli.models.relay.normalize_relay_url] on every
read and write, so ``wss://Relay.Example.com/`` and
``wss://relay.example.com`` are the same entry. Unparseable entries in an
existing file are skipped with a warning rather than making the whole list
unusable.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING

from nostrcli.exceptions import StorageError
from nostrcli.models.relay import normalize_relay_url
from nostrcli.utils.files import atomic_write


if TYPE_CHECKING:
    from collections.abc import Iterable


logger = logging.getLogger("utils.relays")

RELAYS_VERSION = 1


class RelayListStore:
    """Load, modify and save the relay URL list at *path*."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path).expanduser()

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        return self._path.is_file()

    def load(self) -> list[str]:
        """Return the stored URLs, normalized and de-duplicated.

        Returns an empty list when the file does not exist.

        Raises:
            StorageError: If the file is unreadable, is not a relay list, or
                was written by a newer release.
        """
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except OSError as e:
            raise StorageError(f"cannot read {self._path}: {e}") from e

        try:
            data = json.loads(raw)
        except ValueError as e:
            raise StorageError(f"relay list {self._path} is not valid JSON: {e}") from None

        if not isinstance(data, dict) or not isinstance(data.get("relays"), list):
            raise StorageError(f"relay list {self._path} has no 'relays' array")
        version = data.get("version", 0)
        if not isinstance(version, int) or version > RELAYS_VERSION:
            raise StorageError(f"relay list version {version!r} is not supported")

        urls: list[str] = []
        for entry in data["relays"]:
            try:
                url = normalize_relay_url(entry)
            except (TypeError, ValueError) as e:
                logger.warning("relay_entry_skipped path=%s entry=%r error=%s", self._path, entry, e)
                continue
            if url not in urls:
                urls.append(url)
        return urls

    def save(self, urls: Iterable[str]) -> list[str]:
        """Replace the stored list, returning what was written.

        Raises:
            ValueError: If any URL is invalid.
        """
        normalized: list[str] = []
        for url in urls:
            value = normalize_relay_url(url)
            if value not in normalized:
                normalized.append(value)
        payload = {"version": RELAYS_VERSION, "relays": normalized}
        atomic_write(self._path, json.dumps(payload, indent=2).encode("utf-8"), mode=0o644)
        return normalized

    def add(self, url: str) -> bool:
        """Append *url*; returns False if it was already present.

        Raises:
            ValueError: If *url* is not a valid relay URL.
        """
        value = normalize_relay_url(url)
        urls = self.load()
        if value in urls:
            return False
        urls.append(value)
        self.save(urls)
        logger.info("relay_list_added url=%s", value)
        return True

    def remove(self, url: str) -> bool:
        """Remove *url*; returns False if it was not present.

        Raises:
            ValueError: If *url* is not a valid relay URL.
        """
        value = normalize_relay_url(url)
        urls = self.load()
        if value not in urls:
            return False
        urls.remove(value)
        self.save(urls)
        logger.info("relay_list_removed url=%s", value)
        return True
