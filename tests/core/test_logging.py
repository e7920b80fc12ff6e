import logging

import pytest

from order_intake.core.logging import APP_LOGGER, setup_logging


@pytest.fixture
def restore_root_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for h in list(root.handlers):
        root.removeHandler(h)
    for h in handlers:
        root.addHandler(h)
    root.setLevel(level)
    logging.getLogger(APP_LOGGER).setLevel(logging.NOTSET)


def test_single_handler_even_when_called_twice(restore_root_logging):
    setup_logging("info")
    setup_logging("info")
    assert len(logging.getLogger().handlers) == 1


def test_app_logger_level_can_differ_from_root(restore_root_logging):
    app = setup_logging("WARNING", app_level="debug")
    assert app.name == APP_LOGGER
    assert app.level == logging.DEBUG
    assert logging.getLogger().level == logging.WARNING
    assert logging.getLogger("orderintake.lifecycle").getEffectiveLevel() == logging.DEBUG


def test_sql_statements_only_with_echo(restore_root_logging):
    setup_logging("DEBUG")
    assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
    assert logging.getLogger("aiosqlite").level == logging.WARNING
    setup_logging("INFO", sql_echo=True)
    assert logging.getLogger("sqlalchemy.engine").level == logging.INFO
