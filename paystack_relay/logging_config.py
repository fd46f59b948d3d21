import logging
import os
from logging.handlers import TimedRotatingFileHandler

from .settings import Settings

LOGGER_NAME = "paystack_relay"
LOG_FORMAT = "%(asctime)s [%(levelname)s] in %(module)s: %(message)s"


def setup_logging(settings: Settings) -> logging.Logger:
    """Configure the package logger once per process.

    Console output is always on. When LOG_DIR is set, daily-rotated app.log
    and error.log files are written there as well.
    """
    logger = logging.getLogger(LOGGER_NAME)
    # Uvicorn reloads re-import the app module
    if logger.handlers:
        return logger

    formatter = logging.Formatter(LOG_FORMAT)
    logger.setLevel(settings.log_level)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if settings.log_dir:
        os.makedirs(settings.log_dir, exist_ok=True)

        app_handler = TimedRotatingFileHandler(
            os.path.join(settings.log_dir, "app.log"), when="midnight", interval=1,
            backupCount=14, encoding="utf-8", delay=True
        )
        app_handler.suffix = "%Y-%m-%d"
        app_handler.setFormatter(formatter)
        app_handler.setLevel(logging.INFO)
        logger.addHandler(app_handler)

        error_handler = TimedRotatingFileHandler(
            os.path.join(settings.log_dir, "error.log"), when="midnight", interval=1,
            backupCount=30, encoding="utf-8", delay=True
        )
        error_handler.suffix = "%Y-%m-%d"
        error_handler.setFormatter(formatter)
        error_handler.setLevel(logging.ERROR)
        logger.addHandler(error_handler)

    return logger
