"""
Logging setup for the points ledger.

Plain text in development, one key=value line per record elsewhere so the
hosting platform's log search can filter on fields.
"""
import logging
import os
import sys

_configured = False


class KeyValueFormatter(logging.Formatter):
    """Render records as `ts=... level=... logger=... msg="..."`."""

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage().replace('"', "'")
        line = (
            f'ts={self.formatTime(record, self.datefmt)} '
            f'level={record.levelname} logger={record.name} msg="{message}"'
        )
        if record.exc_info:
            line += f' exc="{self.formatException(record.exc_info)!r}"'
        return line


def setup_logging(level: str = None) -> None:
    """
    Configure the root logger once per process.

    Args:
        level: Log level name; defaults to LOG_LEVEL env var or INFO
    """
    global _configured
    if _configured:
        return

    level_name = (level or os.getenv('LOG_LEVEL', 'INFO')).upper()
    log_level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    if os.getenv('FLASK_ENV', 'development') == 'development':
        handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        ))
    else:
        handler.setFormatter(KeyValueFormatter())

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.addHandler(handler)

    # SQL echo is far too noisy at INFO
    logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)

    _configured = True
