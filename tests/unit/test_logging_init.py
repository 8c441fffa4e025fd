from __future__ import annotations

import logging
from io import StringIO

from skuops.logging import init as log_init
from skuops.logging.init import LabeledFormatter, SUMMARY_LEVEL, get_logger, log_summary, setup_logging


def _capture(logger: logging.Logger) -> StringIO:
    out = StringIO()
    handler = logger.handlers[0]
    assert isinstance(handler, logging.StreamHandler)
    handler.setStream(out)
    return out


def test_setup_logging_creates_labeled_package_logger():
    logger = setup_logging()

    assert logger.name == "skuops"
    assert logger.level == logging.INFO
    assert len(logger.handlers) == 1
    assert isinstance(logger.handlers[0].formatter, LabeledFormatter)
    assert logger.propagate is False


def test_setup_logging_idempotent():
    logger1 = setup_logging()
    logger2 = setup_logging(logging.DEBUG)

    assert logger1 is logger2
    assert len(logger1.handlers) == 1
    assert get_logger() is logger1


def test_labeled_prefixes_and_module_loggers():
    logger = setup_logging()
    out = _capture(logger)

    logger.info("start")
    logging.getLogger("skuops.services.importer").warning("stale")
    logger.error("broken")
    log_summary("import entity=Inventory mode=overwrite total=1 new=1 updated=0")

    assert out.getvalue().splitlines() == [
        "INFO start",
        "WARN stale",
        "ERROR broken",
        "SUMMARY import entity=Inventory mode=overwrite total=1 new=1 updated=0",
    ]


def test_summary_level_name():
    setup_logging()
    assert logging.getLevelName(SUMMARY_LEVEL) == "SUMMARY"


def test_reset_logging_detaches_handler():
    logger = setup_logging()
    log_init.reset_logging()
    assert logger.handlers == []
    assert log_init._logger is None
