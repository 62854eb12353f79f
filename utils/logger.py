"""Rotating file and console logging; ``extra=`` fields are rendered as key=value pairs."""
import logging
import os
from logging.handlers import RotatingFileHandler

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(module)s:%(lineno)d | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"
LOG_FILE_NAME = "civic.log"

# Attributes every LogRecord carries; anything else arrived through ``extra=``.
_STANDARD_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}


class ContextFormatter(logging.Formatter):
    def formatMessage(self, record: logging.LogRecord) -> str:
        line = super().formatMessage(record)
        context = {key: value for key, value in vars(record).items() if key not in _STANDARD_ATTRS}
        if not context:
            return line
        rendered = " ".join(f"{key}={value}" for key, value in sorted(context.items()))
        return f"{line} | {rendered}"


def _build_handlers(log_path: str, level: int) -> list:
    formatter = ContextFormatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    handlers = [
        RotatingFileHandler(log_path, maxBytes=5_000_000, backupCount=5, encoding="utf-8"),
        logging.StreamHandler(),
    ]
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
    return handlers


def init_logging(app) -> logging.Logger:
    """Attach rotating file + console handlers to ``app.logger`` and return it."""
    log_dir = app.config.get("LOG_DIR") or os.path.join(app.instance_path, "logs")
    os.makedirs(log_dir, exist_ok=True)
    log_path = os.path.join(log_dir, LOG_FILE_NAME)
    level = getattr(logging, (app.config.get("LOG_LEVEL") or "INFO").upper(), logging.INFO)

    logger = app.logger
    # create_app() may run several times per process (tests); drop stale handlers.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    for handler in _build_handlers(log_path, level):
        logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False

    logger.info("Logging initialized", extra={"log_path": log_path, "level": logging.getLevelName(level)})
    return logger
