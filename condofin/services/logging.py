"""Log setup shared by the API process and maintenance runs.

Records go to stdout and to a log file. Reconciliation commands log each
correction they make at INFO, so the file keeps a readable history next to
the audit_logs table.

Levels come from the environment:
- LOG_LEVEL: engine and API loggers (default INFO)
- SQL_LOG_LEVEL: SQLAlchemy statement logging (default WARNING; INFO echoes SQL)
"""

import logging
import os
import sys
from pathlib import Path

LOG_LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

LOG_FORMAT = "[%(asctime)s] %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_log_level(variable: str = "LOG_LEVEL", default: int = logging.INFO) -> int:
    """Level named by an environment variable; unknown names give the default."""
    name = os.getenv(variable, "").upper()
    return LOG_LEVEL_MAP.get(name, default)


def setup_server_logging(log_file: str = "logs/server.log") -> None:
    """Route every logger to stdout and log_file.

    Replaces whatever handlers the root logger had, so calling it twice does
    not duplicate lines. The log directory is created when missing.
    """
    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)
    level = get_log_level()

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    for handler in (logging.StreamHandler(sys.stdout), logging.FileHandler(log_path)):
        handler.setLevel(level)
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    logging.getLogger("sqlalchemy.engine").setLevel(get_log_level("SQL_LOG_LEVEL", logging.WARNING))


__all__ = ["get_log_level", "setup_server_logging"]
