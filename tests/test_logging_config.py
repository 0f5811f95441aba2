import logging

import pytest

from songgw.core.logging_config import (
    bind_job_id,
    coerce_level,
    configure_logging,
    correlation_id_var,
    job_id_var,
)


@pytest.fixture
def restore_root():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    for handler in list(root.handlers):
        root.removeHandler(handler)
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


@pytest.mark.parametrize(
    "value, expected",
    [(None, logging.INFO), ("debug", logging.DEBUG), (" WARNING ", logging.WARNING), (40, 40), ("loud", logging.INFO)],
)
def test_coerce_level(value, expected):
    assert coerce_level(value) == expected


def test_configure_logging_splits_sinks(restore_root):
    configure_logging("DEBUG")

    stdout_handler, stderr_handler = restore_root.handlers
    assert restore_root.level == logging.DEBUG
    assert stderr_handler.level == logging.WARNING
    info = logging.LogRecord("songgw", logging.INFO, __file__, 1, "hello", None, None)
    warning = logging.LogRecord("songgw", logging.WARNING, __file__, 1, "careful", None, None)
    assert stdout_handler.filter(info)
    assert not stdout_handler.filter(warning)
    assert logging.getLogger("uvicorn.access").level == logging.WARNING


def test_records_carry_request_and_job_ids(restore_root):
    configure_logging("INFO")
    handler = restore_root.handlers[0]

    rid = correlation_id_var.set("req-1")
    jid = bind_job_id("song_1")
    try:
        record = logging.LogRecord("songgw", logging.INFO, __file__, 1, "x", None, None)
        handler.filter(record)
    finally:
        job_id_var.reset(jid)
        correlation_id_var.reset(rid)

    assert record.correlation_id == "req-1"
    assert record.job_id == "song_1"
    assert "rid=req-1 job=song_1" in handler.format(record)
