import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional


__version__ = '0.1.0'


def configure_logging(level: int = logging.INFO, log_file: Optional[str] = None):
    """Configure process logging"""

    handlers = []

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_formatter = logging.Formatter(
        '[%(asctime)s] %(levelname)s in %(module)s: %(message)s'
    )
    console_handler.setFormatter(console_formatter)
    handlers.append(console_handler)

    # File handler
    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=10485760,  # 10MB
            backupCount=10
        )
        file_handler.setLevel(level)
        file_formatter = logging.Formatter(
            '[%(asctime)s] %(levelname)s [%(name)s.%(funcName)s:%(lineno)d] %(message)s'
        )
        file_handler.setFormatter(file_formatter)
        handlers.append(file_handler)

    logging.basicConfig(level=level, handlers=handlers, force=True)

    # boto is chatty at DEBUG
    logging.getLogger('botocore').setLevel(max(level, logging.INFO))
    logging.getLogger('boto3').setLevel(max(level, logging.INFO))

    logging.getLogger(__name__).debug(
        f"Logging configured (level: {logging.getLevelName(level)})"
    )
