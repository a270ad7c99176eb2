"""Unit tests for server logging setup."""

import logging

import pytest

from condofin.services.logging import get_log_level, setup_server_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    sql = logging.getLogger("sqlalchemy.engine")
    handlers, level, sql_level = root.handlers[:], root.level, sql.level
    yield root
    sql.setLevel(sql_level)
    for handler in root.handlers:
        handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


class TestLogLevel:
    def test_default_info(self, monkeypatch):
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        assert get_log_level() == logging.INFO

    def test_case_insensitive(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "debug")
        assert get_log_level() == logging.DEBUG

    def test_unknown_falls_back_to_info(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "LOUD")
        assert get_log_level() == logging.INFO


class TestSetupServerLogging:
    def test_writes_to_file_and_stdout(self, tmp_path, monkeypatch, restore_root_logger):
        monkeypatch.setenv("LOG_LEVEL", "WARNING")
        log_file = tmp_path / "nested" / "server.log"

        setup_server_logging(str(log_file))
        logging.getLogger("condofin.test").warning("Closed fee record %d", 7)
        logging.getLogger("condofin.test").info("not written")
        for handler in restore_root_logger.handlers:
            handler.flush()

        assert len(restore_root_logger.handlers) == 2
        content = log_file.read_text()
        assert "condofin.test - WARNING - Closed fee record 7" in content
        assert "not written" not in content

    def test_sql_logging_quiet_unless_asked(self, tmp_path, monkeypatch, restore_root_logger):
        monkeypatch.delenv("SQL_LOG_LEVEL", raising=False)
        setup_server_logging(str(tmp_path / "server.log"))
        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING

        monkeypatch.setenv("SQL_LOG_LEVEL", "info")
        setup_server_logging(str(tmp_path / "server.log"))
        assert logging.getLogger("sqlalchemy.engine").level == logging.INFO
        assert len(restore_root_logger.handlers) == 2
