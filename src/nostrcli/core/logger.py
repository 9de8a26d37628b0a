"""
Structured logging for the client: ``event_name key=value ...`` lines.

Every component logs through a [Logger][nostrcli.core.logger.Logger] with a
snake_case event name and keyword context::

    pool relay_connect_failed relay=wss://yabu.me attempts=3 error="timed out"

Context values travel on the record as ``structured_kv`` and are rendered by
[StructuredFormatter][nostrcli.core.logger.StructuredFormatter], which the
CLI installs on the root handler. Plain ``logging.getLogger()`` records from
the utils layer go through the same formatter, so both styles share one
output format. ``Logger(..., json_output=True)`` emits one JSON object per
record instead.

Keys that name key material (``password``, ``secret``, ``nsec`` ...) are
always rendered as ``<redacted>``, and values longer than
``max_value_length`` are cut short.

Examples:
    ```python
    logger = Logger("feed")
    logger.warning("event_dropped", relay="wss://yabu.me", reason="bad signature")
    ```
"""

import datetime
import json
import logging
from typing import Any


REDACTED = "<redacted>"
REDACTED_KEYS = frozenset({"password", "secret", "secret_key", "nsec", "private_key"})
DEFAULT_MAX_VALUE_LENGTH = 1000

# Characters that force a value into double quotes
_NEEDS_QUOTES = frozenset(" =\"'")


def _clip(text: str, limit: int | None) -> str:
    if not limit or len(text) <= limit:
        return text
    return f"{text[:limit]}...<truncated {len(text) - limit} chars>"


def _render_value(text: str) -> str:
    if text and not _NEEDS_QUOTES.intersection(text):
        return text
    return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'


def format_kv_pairs(
    kwargs: dict[str, Any],
    max_value_length: int | None = DEFAULT_MAX_VALUE_LENGTH,
    prefix: str = " ",
) -> str:
    """Render *kwargs* as ``key=value`` pairs separated by spaces.

    Empty values and values containing spaces, ``=`` or quotes are quoted,
    with backslashes and double quotes escaped.

    Args:
        kwargs: Context to render, in order.
        max_value_length: Cut values longer than this (None disables).
        prefix: Prepended to a non-empty result.

    Returns:
        The rendered pairs, or ``""`` when *kwargs* is empty.
    """
    if not kwargs:
        return ""
    pairs = [f"{key}={_render_value(_clip(str(value), max_value_length))}" for key, value in kwargs.items()]
    return prefix + " ".join(pairs)


class StructuredFormatter(logging.Formatter):
    """Render any record as ``level logger message key=value ...``.

    Tracebacks, when present, follow on the next lines.
    """

    def format(self, record: logging.LogRecord) -> str:
        line = f"{record.levelname.lower()} {record.name} {record.getMessage()}"
        line += format_kv_pairs(getattr(record, "structured_kv", None) or {})
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


class Logger:
    """Named logger taking an event name plus keyword context.

    Args:
        name: Name of the underlying ``logging`` logger (``"pool"``,
            ``"client"`` ...).
        json_output: Emit JSON objects instead of key=value context.
        max_value_length: Cut context values longer than this.
    """

    def __init__(
        self,
        name: str,
        *,
        json_output: bool = False,
        max_value_length: int | None = DEFAULT_MAX_VALUE_LENGTH,
    ) -> None:
        self._logger = logging.getLogger(name)
        self._json_output = json_output
        self._max_value_length = max_value_length

    @property
    def name(self) -> str:
        return self._logger.name

    def _context(self, kwargs: dict[str, Any]) -> dict[str, Any]:
        context: dict[str, Any] = {}
        for key, value in kwargs.items():
            if key in REDACTED_KEYS:
                context[key] = REDACTED
                continue
            text = str(value)
            limit = self._max_value_length
            context[key] = _clip(text, limit) if limit and len(text) > limit else value
        return context

    def log(self, level: int, msg: str, *, exc_info: bool = False, **kwargs: Any) -> None:
        """Emit *msg* at *level* with keyword context."""
        if not self._logger.isEnabledFor(level):
            return
        context = self._context(kwargs)
        if self._json_output:
            payload = {
                "timestamp": datetime.datetime.now(datetime.UTC).isoformat(),
                "level": logging.getLevelName(level).lower(),
                "service": self.name,
                "message": msg,
                **context,
            }
            self._logger.log(level, json.dumps(payload, default=str), exc_info=exc_info)
        else:
            self._logger.log(level, msg, extra={"structured_kv": context}, exc_info=exc_info)

    def debug(self, msg: str, **kwargs: Any) -> None:
        self.log(logging.DEBUG, msg, **kwargs)

    def info(self, msg: str, **kwargs: Any) -> None:
        self.log(logging.INFO, msg, **kwargs)

    def warning(self, msg: str, **kwargs: Any) -> None:
        self.log(logging.WARNING, msg, **kwargs)

    def error(self, msg: str, **kwargs: Any) -> None:
        self.log(logging.ERROR, msg, **kwargs)

    def critical(self, msg: str, **kwargs: Any) -> None:
        self.log(logging.CRITICAL, msg, **kwargs)

    def exception(self, msg: str, **kwargs: Any) -> None:
        """Log at ERROR with the traceback of the exception being handled."""
        self.log(logging.ERROR, msg, exc_info=True, **kwargs)
