"""
Centralized logging configuration for wifi_provisioner.

Usage in tools built on the library:
    from wifi_provisioner.logger import get_logger
    log = get_logger(__name__)

Library modules log through logging.getLogger(__name__) and never
configure handlers themselves; setup_logging() is called once by the
application (the command-line harness does this).

Log output goes to /tmp/wifi_provisioner.log with format:
    [HH:MM:SS.mmm] [LEVEL] [module] message
"""

import logging
import sys
from logging.handlers import RotatingFileHandler

LOG_FILE_PATH = '/tmp/wifi_provisioner.log'

# Flag to track if logging has been configured
_logging_configured = False


def setup_logging(level=logging.DEBUG, log_file=LOG_FILE_PATH, console_level=logging.INFO):
    """Configure the root logger with file and console handlers.

    Args:
        level: Root logger level
        log_file: Rotating log file path, or None to log to the console only
        console_level: Minimum level echoed to the terminal
    """
    global _logging_configured
    if _logging_configured:
        return

    formatter = logging.Formatter(
        '[%(asctime)s.%(msecs)03d] [%(levelname)s] [%(name)s] %(message)s',
        datefmt='%H:%M:%S'
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    if log_file:
        # File handler with rotation (5MB max, keep 3 backups)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=5*1024*1024,
            backupCount=3,
            encoding='utf-8'
        )
        file_handler.setFormatter(formatter)
        file_handler.setLevel(logging.DEBUG)  # File gets everything
        root_logger.addHandler(file_handler)

    console_handler = logging.StreamHandler(sys.__stderr__)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(console_level)
    root_logger.addHandler(console_handler)

    # Suppress noisy third-party loggers
    logging.getLogger('asyncio').setLevel(logging.WARNING)
    logging.getLogger('bleak').setLevel(logging.WARNING)
    logging.getLogger('pynnex').setLevel(logging.WARNING)

    _logging_configured = True

    logger = logging.getLogger('wifi_provisioner.logger')
    logger.info(f"Logging initialized, writing to {log_file or 'console'}")


def get_logger(name: str) -> logging.Logger:
    """Get a logger for the given module name.

    Args:
        name: Usually __name__ of the calling module

    Returns:
        Configured logger instance
    """
    if not _logging_configured:
        setup_logging()

    return logging.getLogger(name)
