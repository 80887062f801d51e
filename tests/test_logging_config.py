# tests/test_logging_config.py
import logging

import pytest

from gcqc.services.logging_config import (
    TRACE, LogConfig, WorkerContextFilter, get_worker_logger, setup_main_logging,
)


@pytest.fixture(autouse=True)
def _restore(restore_logging):
    yield


def test_setup_levels():
    assert setup_main_logging(LogConfig(level='debug')) == logging.DEBUG
    assert setup_main_logging(LogConfig(level='trace')) == TRACE
    assert setup_main_logging(LogConfig(level='warn')) == logging.WARNING
    assert logging.getLogger().level == logging.WARNING


def test_quiet_silences_everything():
    level = setup_main_logging(LogConfig(level='trace', quiet=True))
    assert level > logging.CRITICAL


def test_unknown_level():
    with pytest.raises(ValueError):
        setup_main_logging(LogConfig(level='chatty'))


def test_unknown_timestamp():
    with pytest.raises(ValueError):
        setup_main_logging(LogConfig(timestamp='ns'))


def test_log_file_receives_worker_context(tmp_path):
    log_file = tmp_path / "run.log"
    setup_main_logging(LogConfig(level='info', timestamp='ms', log_file=str(log_file)))

    get_worker_logger("process", 3).info("worker message")
    logging.getLogger("gcqc.test").info("main message")
    for h in logging.getLogger().handlers:
        h.flush()

    text = log_file.read_text()
    assert "[process-3 ] worker message" in text
    assert "[main      ] main message" in text


def test_worker_context_filter_default():
    record = logging.LogRecord("x", logging.INFO, __file__, 1, "msg", None, None)
    assert WorkerContextFilter().filter(record)
    assert record.worker == "main"


def test_get_worker_logger_name():
    log = get_worker_logger("output")
    assert log.extra == {"worker": "output"}
    assert log.logger.name == "gcqc.worker.output"
