# eventhub/core/logging_config.py

import logging
import re
from logging.handlers import RotatingFileHandler
import sys

from eventhub.config import settings

logger = logging.getLogger(__name__)

# Matches `password=...`, `"refresh_token": "..."` and similar key/value pairs.
_SECRET_PATTERN = re.compile(
    r"(?P<key>['\"]?(?:\w*password|\w*token|otp_code)['\"]?\s*[:=]\s*)(?:'[^']*'|\"[^\"]*\"|[^'\"\s,}]+)",
    re.IGNORECASE,
)


class RedactSecretsFilter(logging.Filter):
    """
    Masks password, token and OTP values in formatted log messages before any
    handler writes them.
    """
    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = _SECRET_PATTERN.sub(r"\g<key>***", message)
        if redacted != message:
            record.msg = redacted
            record.args = ()
        return True


def configure_logging():
    """
    Sets up the logging configuration for the application based on the environment.
    - In PROD/STAGE, logs are directed ONLY to stdout for containerized environments.
    - In DEV, logs go to stdout and, when LOG_FILE_PATH is set, to a rotating file.
    """
    # Clear existing handlers so repeated calls do not duplicate output.
    for handler in logging.root.handlers[:]:
        logging.root.removeHandler(handler)

    log_level = settings.LOG_LEVEL.upper()
    numeric_level = getattr(logging, log_level, None)
    if not isinstance(numeric_level, int):
        logger.warning(f"Invalid log level '{settings.LOG_LEVEL}' from settings. Defaulting to INFO.")
        numeric_level = logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    formatter = logging.Formatter(settings.LOG_FORMAT)
    redact_filter = RedactSecretsFilter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(redact_filter)
    root_logger.addHandler(console_handler)
    logger.info("Console logging to stdout configured.")

    if settings.ENVIRONMENT == "DEV" and settings.LOG_FILE_PATH:
        try:
            log_dir = settings.LOG_FILE_PATH.parent
            if not log_dir.exists():
                log_dir.mkdir(parents=True, exist_ok=True)
                logger.info(f"Created logging directory for file handler: {log_dir.absolute()}")

            file_handler = RotatingFileHandler(
                filename=settings.LOG_FILE_PATH.resolve(),
                maxBytes=5 * 1024 * 1024, # 5 MB
                backupCount=5,
                encoding='utf-8'
            )
            file_handler.setFormatter(formatter)
            file_handler.addFilter(redact_filter)
            root_logger.addHandler(file_handler)
            logger.info(f"File logging to '{settings.LOG_FILE_PATH.resolve()}' configured for DEV environment.")
        except OSError as e:
            # Console logging is already active, keep running without the file.
            logger.error(f"Failed to configure file logging: {e}", exc_info=True)
            logger.warning("File logging could not be enabled. All logs will go to console.")
    elif settings.ENVIRONMENT in ("PROD", "STAGE") and settings.LOG_FILE_PATH:
        logger.warning(f"LOG_FILE_PATH ('{settings.LOG_FILE_PATH}') is set in {settings.ENVIRONMENT} environment. "
                       "File logging inside containers is discouraged as logs are ephemeral.")

    # --- Adjust log levels for common noisy libraries ---
    logging.getLogger("uvicorn").setLevel(logging.INFO)
    logging.getLogger("uvicorn.access").setLevel(logging.INFO)
    logging.getLogger("uvicorn.error").setLevel(logging.INFO)

    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.pool").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)

    logging.getLogger("passlib").setLevel(logging.ERROR)
    logging.getLogger("jose").setLevel(logging.INFO)

    logger.info("Overall logging configuration applied successfully.")
