"""Tests for logging configuration.

Verifies that log output:
1. Never carries credentials (bearer tokens, keys, signed tx payloads)
2. Redacts raw frames and bodies, reduces URLs to their path
3. Is one valid JSON object per line in JSON mode
"""

from __future__ import annotations

import io
import logging
import sys

import orjson
import pytest

from lighter_client.logging_config import (
    BLOCKED_FIELDS,
    JsonFormatter,
    SimpleFormatter,
    _filter_log_record,
    _normalize_url,
    _sanitize_text,
    get_logger,
    setup_logging,
)


def _record(msg: str = "test", level: int = logging.INFO, **extra: object) -> logging.LogRecord:
    record = logging.LogRecord(
        name="lighter_client.test",
        level=level,
        pathname="test.py",
        lineno=10,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestBlockedFields:
    def test_credentials_listed(self) -> None:
        for field in ("auth", "authorization", "token", "api_key", "private_key", "tx_info", "signature"):
            assert field in BLOCKED_FIELDS

    def test_filter_removes_credentials(self) -> None:
        record = {
            "auth_token": "abc",
            "Authorization": "Bearer abc",
            "private_key": "0x01",
            "tx_info": '{"Sig":"..."}',
            "channel": "order_book/3",
        }
        assert _filter_log_record(record) == {"channel": "order_book/3"}

    def test_partial_and_case_insensitive_matches(self) -> None:
        record = {"X_API_KEY_HEADER": "v", "refresh_token_id": "v", "market_id": 3}
        assert _filter_log_record(record) == {"market_id": 3}


class TestHighCardinality:
    def test_url_reduced_to_endpoint(self) -> None:
        filtered = _filter_log_record({"url": "wss://api.lighter.xyz/ws?token=abc"})
        assert filtered == {"endpoint": "/ws"}

    @pytest.mark.parametrize("field", ["frame", "raw", "body", "payload", "params"])
    def test_payloads_redacted(self, field: str) -> None:
        filtered = _filter_log_record({field: '{"type":"update/order_book"}'})
        assert filtered[field].startswith("[")
        assert "order_book" not in filtered[field]

    def test_long_lists_summarised(self) -> None:
        filtered = _filter_log_record({"channels": list(range(20)), "short": [1, 2]})
        assert filtered["channels"] == "[list:20 items]"
        assert filtered["short"] == [1, 2]

    def test_nested_dicts_filtered(self) -> None:
        filtered = _filter_log_record({"ctx": {"token": "x", "code": 429}})
        assert filtered == {"ctx": {"code": 429}}

    def test_depth_limited(self) -> None:
        deep: dict[str, object] = {"a": {"b": {"c": {"d": {"e": {}}}}}}
        filtered = _filter_log_record(deep)
        assert filtered["a"]["b"]["c"]["d"] == {"_truncated": "max depth exceeded"}

    def test_normalize_url(self) -> None:
        assert _normalize_url("https://mainnet.zklighter.elliot.ai/api/v1/sendTx?x=1") == "/api/v1/sendTx"
        assert _normalize_url("https://mainnet.zklighter.elliot.ai") == "/"


class TestSanitizeText:
    def test_bearer_token_masked(self) -> None:
        text = _sanitize_text("handshake header Authorization: Bearer eyJhbGciOi.abc-123")
        assert "eyJhbGciOi" not in text
        assert "[TOKEN]" in text

    def test_key_assignments_masked(self) -> None:
        text = _sanitize_text("api_key=sk123 private_key: deadbeef auth=tok")
        assert "sk123" not in text
        assert "deadbeef" not in text
        assert "tok" not in text.replace("[TOKEN]", "")

    def test_long_hex_masked(self) -> None:
        text = _sanitize_text("signing with 0x" + "ab" * 32)
        assert "[HEX]" in text

    def test_urls_reduced(self) -> None:
        text = _sanitize_text("failed to connect to wss://api.lighter.xyz/ws?auth=abc")
        assert text == "failed to connect to /ws"

    def test_empty(self) -> None:
        assert _sanitize_text("") == ""


class TestJsonFormatter:
    def test_output_is_json(self) -> None:
        line = JsonFormatter().format(_record("Subscribed", channel="order_book/3", symbol=None))
        data = orjson.loads(line)
        assert data["level"] == "INFO"
        assert data["logger"] == "lighter_client.test"
        assert data["msg"] == "Subscribed"
        assert data["channel"] == "order_book/3"
        assert data["symbol"] is None
        assert "file" not in data

    def test_warning_includes_location(self) -> None:
        data = orjson.loads(JsonFormatter().format(_record("lost", level=logging.WARNING)))
        assert data["file"] == "test.py"
        assert data["line"] == 10

    def test_blocked_extra_dropped(self) -> None:
        data = orjson.loads(JsonFormatter().format(_record("connect", auth_token="secret")))
        assert "auth_token" not in data
        assert "secret" not in orjson.dumps(data).decode()

    def test_exception_sanitised(self) -> None:
        try:
            raise ConnectionError("Bearer abc123 rejected")
        except ConnectionError:
            record = _record("failed", level=logging.ERROR)
            record.exc_info = sys.exc_info()
        data = orjson.loads(JsonFormatter().format(record))
        assert "abc123" not in data["exc"]


class TestSimpleFormatter:
    def test_human_readable(self) -> None:
        line = SimpleFormatter().format(_record("Subscribed", channel="order_book/3", token="x"))
        assert line.startswith("INFO")
        assert "lighter_client.test: Subscribed" in line
        assert "channel=order_book/3" in line
        assert "token" not in line


class TestSetupLogging:
    def test_json_setup(self) -> None:
        stream = io.StringIO()
        setup_logging(level=logging.DEBUG, json_format=True, stream=stream)
        try:
            get_logger("lighter_client.ws.connection").info(
                "WebSocket connected", extra={"url": "wss://api.lighter.xyz/ws"}
            )
            data = orjson.loads(stream.getvalue().strip())
            assert data["msg"] == "WebSocket connected"
            assert data["endpoint"] == "/ws"
        finally:
            logging.getLogger().handlers.clear()

    def test_replaces_existing_handlers(self) -> None:
        setup_logging(stream=io.StringIO())
        setup_logging(stream=io.StringIO(), json_format=False)
        try:
            root = logging.getLogger()
            assert len(root.handlers) == 1
            assert isinstance(root.handlers[0].formatter, SimpleFormatter)
            assert logging.getLogger("aiohttp").level == logging.WARNING
        finally:
            logging.getLogger().handlers.clear()

    def test_get_logger(self) -> None:
        assert get_logger("lighter_client.x") is logging.getLogger("lighter_client.x")
