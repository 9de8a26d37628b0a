"""
Unit tests for core.logger module.

Tests:
- format_kv_pairs() quoting, escaping and truncation
- Logger level methods and structured extras
- JSON output mode
- StructuredFormatter output for Logger and plain logging records
"""

import json
import logging
import sys

import pytest

from nostrcli.core.logger import Logger, StructuredFormatter, format_kv_pairs


# ============================================================================
# format_kv_pairs Tests
# ============================================================================


class TestFormatKvPairs:
    """Tests for format_kv_pairs() utility function."""

    def test_empty_dict(self) -> None:
        assert format_kv_pairs({}) == ""

    def test_simple_values(self) -> None:
        assert format_kv_pairs({"relay": "wss://yabu.me", "attempts": 3}) == " relay=wss://yabu.me attempts=3"

    def test_none_value(self) -> None:
        assert format_kv_pairs({"error": None}) == " error=None"

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("two words", ' k="two words"'),
            ("a=b", ' k="a=b"'),
            ('say "hi"', ' k="say \\"hi\\""'),
            ("it's", " k=\"it's\""),
            ("", ' k=""'),
        ],
    )
    def test_quoting(self, value: str, expected: str) -> None:
        assert format_kv_pairs({"k": value}) == expected

    def test_backslash_escaped_when_quoted(self) -> None:
        assert format_kv_pairs({"k": "a \\ b"}) == ' k="a \\\\ b"'

    def test_truncation(self) -> None:
        result = format_kv_pairs({"k": "x" * 20}, max_value_length=5)
        assert result == ' k="xxxxx...<truncated 15 chars>"'

    def test_no_truncation(self) -> None:
        assert format_kv_pairs({"k": "x" * 2000}, max_value_length=None) == " k=" + "x" * 2000

    def test_custom_prefix(self) -> None:
        assert format_kv_pairs({"a": 1}, prefix="") == "a=1"


# ============================================================================
# Logger Tests
# ============================================================================


class TestLogger:
    """Tests for the structured Logger wrapper."""

    def test_name(self) -> None:
        assert Logger("pool").name == "pool"

    @pytest.mark.parametrize("method", ["debug", "info", "warning", "error", "critical"])
    def test_levels(self, method: str, caplog: pytest.LogCaptureFixture) -> None:
        logger = Logger("test.levels")
        with caplog.at_level(logging.DEBUG, logger="test.levels"):
            getattr(logger, method)("something_happened", relay="wss://yabu.me")
        record = caplog.records[-1]
        assert record.levelname == method.upper()
        assert record.getMessage() == "something_happened"
        assert record.structured_kv == {"relay": "wss://yabu.me"}  # type: ignore[attr-defined]

    def test_disabled_level_skipped(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = Logger("test.disabled")
        with caplog.at_level(logging.WARNING, logger="test.disabled"):
            logger.debug("hidden")
        assert not caplog.records

    def test_extra_values_truncated(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = Logger("test.truncate", max_value_length=4)
        with caplog.at_level(logging.INFO, logger="test.truncate"):
            logger.info("long", value="abcdefgh", short="ab")
        kv = caplog.records[-1].structured_kv  # type: ignore[attr-defined]
        assert kv["value"].startswith("abcd...")
        assert kv["short"] == "ab"

    def test_exception_attaches_traceback(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = Logger("test.exc")
        with caplog.at_level(logging.ERROR, logger="test.exc"):
            try:
                raise RuntimeError("boom")
            except RuntimeError:
                logger.exception("failed", step="x")
        record = caplog.records[-1]
        assert record.levelno == logging.ERROR
        assert record.exc_info is not None

    def test_json_output(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = Logger("test.json", json_output=True)
        with caplog.at_level(logging.INFO, logger="test.json"):
            logger.info("relay_connected", relay="wss://yabu.me", attempts=2)
        data = json.loads(caplog.records[-1].getMessage())
        assert data["message"] == "relay_connected"
        assert data["level"] == "info"
        assert data["service"] == "test.json"
        assert data["relay"] == "wss://yabu.me"
        assert data["attempts"] == 2
        assert "timestamp" in data

    @pytest.mark.parametrize("key", ["password", "secret", "nsec"])
    def test_key_material_redacted(self, key: str, caplog: pytest.LogCaptureFixture) -> None:
        logger = Logger("test.redact")
        with caplog.at_level(logging.INFO, logger="test.redact"):
            logger.info("identity_loaded", **{key: "nsec1supersecret", "pubkey": "ab" * 32})
        kv = caplog.records[-1].structured_kv  # type: ignore[attr-defined]
        assert kv[key] == "<redacted>"
        assert kv["pubkey"] == "ab" * 32
        assert "supersecret" not in caplog.text

    def test_json_output_redacted(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = Logger("test.json_redact", json_output=True)
        with caplog.at_level(logging.INFO, logger="test.json_redact"):
            logger.info("identity_imported", password="hunter2")
        assert json.loads(caplog.records[-1].getMessage())["password"] == "<redacted>"


# ============================================================================
# StructuredFormatter Tests
# ============================================================================


class TestStructuredFormatter:
    """Tests for StructuredFormatter."""

    def _record(self, msg: str, *args: object, **extra: object) -> logging.LogRecord:
        record = logging.LogRecord("pool", logging.WARNING, __file__, 1, msg, args, None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_structured_record(self) -> None:
        record = self._record("relay_connect_failed", structured_kv={"relay": "wss://yabu.me", "error": "timed out"})
        assert StructuredFormatter().format(record) == (
            'warning pool relay_connect_failed relay=wss://yabu.me error="timed out"'
        )

    def test_plain_record(self) -> None:
        record = self._record("identity_saved path=%s", "/tmp/keys.json")
        assert StructuredFormatter().format(record) == "warning pool identity_saved path=/tmp/keys.json"

    def test_exception_text(self) -> None:
        try:
            raise ValueError("bad")
        except ValueError:
            record = logging.LogRecord("pool", logging.ERROR, __file__, 1, "failed", (), sys.exc_info())
        output = StructuredFormatter().format(record)
        assert output.startswith("error pool failed\n")
        assert "ValueError: bad" in output
