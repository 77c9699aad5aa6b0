import json
import logging

import pytest
import structlog

from dequeue.log import bind_context, clear_context, configure_logging, get_logger


@pytest.fixture(autouse=True)
def _restore_logging():
    root = logging.getLogger()
    level = root.level
    yield
    clear_context()
    structlog.reset_defaults()
    root.handlers = [
        h
        for h in root.handlers
        if not isinstance(h.formatter, structlog.stdlib.ProcessorFormatter)
    ]
    root.setLevel(level)


def _lines(captured: str) -> list[dict]:
    return [json.loads(line) for line in captured.splitlines() if line.strip()]


def test_json_output_carries_event_and_fields(capsys):
    configure_logging("INFO", "json")
    get_logger("dequeue.test").info("item_pushed", item_id="abc", count=2)

    [record] = _lines(capsys.readouterr().out)
    assert record["event"] == "item_pushed"
    assert record["item_id"] == "abc"
    assert record["count"] == 2
    assert record["level"] == "info"
    assert record["logger"] == "dequeue.test"
    assert "timestamp" in record


def test_level_filters_records(capsys):
    configure_logging("WARNING", "json")
    log = get_logger("dequeue.test.level")
    log.info("quiet")
    log.warning("loud")

    events = [r["event"] for r in _lines(capsys.readouterr().out)]
    assert events == ["loud"]


def test_bound_context_is_merged(capsys):
    configure_logging("INFO", "json")
    bind_context(worker="w-1")
    get_logger("dequeue.test.ctx").info("item_leased")
    clear_context()
    get_logger("dequeue.test.ctx").info("item_completed")

    first, second = _lines(capsys.readouterr().out)
    assert first["worker"] == "w-1"
    assert "worker" not in second


def test_stdlib_records_share_the_format(capsys):
    configure_logging("INFO", "json")
    logging.getLogger("some.library").warning("plain message")

    [record] = _lines(capsys.readouterr().out)
    assert record["event"] == "plain message"
    assert record["level"] == "warning"
