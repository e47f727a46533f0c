"""Tests for the event log formatter."""

import io
import logging
import sys

from feedhub.observability.logger import EventFormatter, get_logger


def capture(name):
    logger = get_logger(name)
    stream = io.StringIO()
    logger.handlers[0].setStream(stream)
    return logger, stream


def test_extra_context_is_rendered():
    logger, stream = capture("feedhub.test.extra")
    logger.warning("notification_append_failed", extra={"username": "alice", "post_id": "p1", "attempts": 2})
    line = stream.getvalue().strip()
    assert " | feedhub.test.extra | WARNING | notification_append_failed " in line
    assert line.endswith("attempts=2 post_id='p1' username='alice'")


def test_plain_event_has_no_trailing_context():
    logger, stream = capture("feedhub.test.plain")
    logger.info("hub_stopped")
    assert stream.getvalue().strip().endswith("| INFO | hub_stopped")


def test_get_logger_installs_one_handler():
    first = get_logger("feedhub.test.once")
    second = get_logger("feedhub.test.once")
    assert first is second
    assert len(first.handlers) == 1
    assert isinstance(first.handlers[0].formatter, EventFormatter)
    assert first.propagate is False


def test_traceback_follows_the_context_line():
    formatter = EventFormatter("%(levelname)s | %(message)s")
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        record = logging.LogRecord("x", logging.ERROR, __file__, 1, "websocket_error", (), sys.exc_info())
    record.session_id = "s1"
    out = formatter.format(record)
    first, _, rest = out.partition("\n")
    assert first == "ERROR | websocket_error session_id='s1'"
    assert "RuntimeError: boom" in rest
