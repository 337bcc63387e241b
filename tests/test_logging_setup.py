import logging
from collections.abc import Iterator

import pytest

import ledger_pipeline.logging_setup as logging_setup


@pytest.fixture
def pkg_logger(monkeypatch: pytest.MonkeyPatch) -> Iterator[logging.Logger]:
    logger = logging.getLogger("ledger_pipeline")
    saved = (list(logger.handlers), logger.level, logger.propagate)
    monkeypatch.setattr(logging_setup, "_handler", None)
    logger.handlers = []
    yield logger
    logger.handlers, logger.level, logger.propagate = saved[0], saved[1], saved[2]


def test_library_use_is_silent_until_configured(pkg_logger):
    logging_setup.get_logger("ledger_pipeline.cycle")
    assert [type(h) for h in pkg_logger.handlers] == [logging.NullHandler]


def test_configure_attaches_one_handler_and_updates_level(pkg_logger):
    logging_setup.get_logger("ledger_pipeline.cycle")
    logging_setup.configure_logging(logging.DEBUG)
    logging_setup.configure_logging(logging.WARNING)

    (handler,) = pkg_logger.handlers
    assert isinstance(handler, logging.StreamHandler)
    assert handler.level == logging.WARNING
    assert pkg_logger.level == logging.WARNING
    assert pkg_logger.propagate is False


@pytest.mark.parametrize(("name", "level"), [("info", logging.INFO), ("Error", logging.ERROR)])
def test_parse_level(name, level):
    assert logging_setup.parse_level(name) == level


def test_parse_level_rejects_unknown_names():
    with pytest.raises(ValueError, match="unknown log level"):
        logging_setup.parse_level("15")
