"""
Logging setup test suite.

Run: pytest tests/utils/test_logger.py -v
"""

import logging

import pytest

from graph_importer.utils import logger as logger_module
from graph_importer.utils.logger import DEFAULT_FORMAT, resolve_level, setup_logging


@pytest.fixture
def fresh_logging(monkeypatch):
    """Unconfigured module state; root and driver loggers restored afterwards."""
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    neo4j_logger = logging.getLogger("neo4j")
    saved_neo4j_level = neo4j_logger.level
    monkeypatch.setattr(logger_module, "_logging_configured", False)

    yield root

    for handler in root.handlers:
        if handler not in saved_handlers:
            handler.close()
    root.handlers[:] = saved_handlers
    root.setLevel(saved_level)
    neo4j_logger.setLevel(saved_neo4j_level)


# ============================================================================
# Levels
# ============================================================================

class TestResolveLevel:
    """Numeric levels and names"""

    @pytest.mark.parametrize("value,expected", [
        (logging.INFO, logging.INFO),
        ("debug", logging.DEBUG),
        (" WARNING ", logging.WARNING),
    ])
    def test_resolves(self, value, expected):
        assert resolve_level(value) == expected

    def test_unknown_name(self):
        with pytest.raises(ValueError):
            resolve_level("chatty")


# ============================================================================
# Setup
# ============================================================================

class TestSetupLogging:
    """Root configuration"""

    def test_level_by_name(self, fresh_logging):
        setup_logging("debug")

        assert fresh_logging.level == logging.DEBUG
        assert logging.getLogger("neo4j").level == logging.WARNING

    def test_driver_floor_follows_higher_level(self, fresh_logging):
        setup_logging(logging.ERROR)
        assert logging.getLogger("neo4j").level == logging.ERROR

    def test_log_file_created_and_appended(self, fresh_logging, tmp_path):
        log_file = tmp_path / "logs" / "import.log"

        setup_logging(log_file=str(log_file))
        logging.getLogger("graph_importer.test").info("batch committed")
        for handler in fresh_logging.handlers:
            handler.flush()

        assert "batch committed" in log_file.read_text(encoding="utf-8")
        assert "MainThread" in log_file.read_text(encoding="utf-8")

    def test_second_call_is_noop(self, fresh_logging):
        setup_logging()
        handlers = fresh_logging.handlers[:]

        setup_logging(logging.DEBUG)

        assert fresh_logging.handlers == handlers
        assert fresh_logging.level == logging.INFO

    def test_format_carries_thread_name(self):
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "msg", None, None)
        record.threadName = "graph-loader_3"

        assert "graph-loader_3" in logging.Formatter(DEFAULT_FORMAT).format(record)
