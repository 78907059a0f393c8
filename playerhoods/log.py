"""
Logging configuration for PlayerHoods.

setup_logging() is called once from create_app(). Modules log through
``logging.getLogger(__name__)``, which places them under the "playerhoods"
namespace. Third-party loggers stay at WARNING.
"""

import logging
import sys

APP_LOGGER_NAME = 'playerhoods'


def _coerce_level(level):
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level or '').strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(app_level=logging.INFO):
    """Configure the root handler and the app namespace level."""
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.WARNING)

    # create_app() runs once per test, so avoid stacking handlers.
    if not root_logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%H:%M:%S',
        ))
        root_logger.addHandler(handler)

    logging.getLogger(APP_LOGGER_NAME).setLevel(_coerce_level(app_level))
