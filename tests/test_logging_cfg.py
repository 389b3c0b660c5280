"""
Tests for structured logging: JSON formatting, throttling and logger setup.
"""

import logging

import orjson

from fundrouter.infra.logging_cfg import JsonFormatter, ThrottledFilter, build_logger, log_event


def record(msg, level=logging.INFO, name="fundrouter"):
    return logging.LogRecord(name, level, __file__, 1, msg, None, None)


class TestJsonFormatter:
    def test_formats_record(self):
        line = JsonFormatter().format(record("hello", logging.WARNING))
        payload = orjson.loads(line)
        assert payload["msg"] == "hello"
        assert payload["level"] == "WARNING"
        assert payload["name"] == "fundrouter"
        assert "ts_iso" in payload


class TestThrottledFilter:
    def test_repeats_suppressed_per_method(self):
        f = ThrottledFilter(cooldown_sec=60.0)
        wechat = '{"event":"failover_retry","method":"wechat","attempt":0}'
        alipay = '{"event":"failover_retry","method":"alipay","attempt":0}'
        assert f.filter(record(wechat)) is True
        assert f.filter(record(wechat)) is False
        assert f.filter(record(alipay)) is True

    def test_other_events_and_plain_text_pass(self):
        f = ThrottledFilter(cooldown_sec=60.0)
        result = '{"event":"match_result","status":"FAILED"}'
        assert f.filter(record(result)) is True
        assert f.filter(record(result)) is True
        assert f.filter(record("plain text")) is True
        assert f.filter(record("{not json")) is True

    def test_zero_cooldown_lets_everything_through(self):
        f = ThrottledFilter(cooldown_sec=0.0)
        msg = '{"event":"http_retry","path":"/x"}'
        assert f.filter(record(msg)) is True
        assert f.filter(record(msg)) is True


class TestBuildLogger:
    def test_idempotent(self):
        first = build_logger("fundrouter.test_logging", level=logging.INFO)
        second = build_logger("fundrouter.test_logging", level=logging.DEBUG)
        assert first is second
        assert len(first.handlers) == 1
        assert first.level == logging.DEBUG
        assert first.propagate is False

    def test_file_handler_writes_json_lines(self, tmp_path):
        path = tmp_path / "events.jsonl"
        logger = build_logger("fundrouter.test_logging_file", file_path=str(path), async_file=False, throttle=False)
        log_event(logger, "match_result", status="REDIRECTED", attempts=2)
        for h in logger.handlers:
            h.flush()

        lines = path.read_text(encoding="utf-8").splitlines()
        payload = orjson.loads(lines[-1])
        inner = orjson.loads(payload["msg"])
        assert inner == {"event": "match_result", "status": "REDIRECTED", "attempts": 2}

    def test_async_file_handler(self, tmp_path):
        path = tmp_path / "async.jsonl"
        logger = build_logger("fundrouter.test_logging_async", file_path=str(path), async_file=True)
        log_event(logger, "session_entered", endpoints=3)
        async_handler = logger.handlers[-1]
        async_handler.close()
        logger.removeHandler(async_handler)

        lines = path.read_text(encoding="utf-8").splitlines()
        assert orjson.loads(orjson.loads(lines[-1])["msg"])["endpoints"] == 3
