import logging
import sys
from logging import config as logging_config

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
APP_FORMAT = "%(asctime)s %(levelname)-5s [%(name)s] %(message)s"
ACCESS_FORMAT = "%(asctime)s %(levelname)-5s %(message)s"

# SDK loggers that log every request at INFO
QUIET_LOGGERS = ("botocore", "boto3", "aioboto3", "aiobotocore", "s3transfer", "urllib3")


class ColoredFormatter(logging.Formatter):
    """Colors the level name when writing to a terminal."""

    COLORS = {
        logging.DEBUG: "\x1b[36m",
        logging.INFO: "\x1b[32m",
        logging.WARNING: "\x1b[33m",
        logging.ERROR: "\x1b[31m",
        logging.CRITICAL: "\x1b[41m",
    }
    RESET = "\x1b[0m"

    def __init__(self, fmt: str | None = None, datefmt: str | None = None, use_color: bool | None = None):
        super().__init__(fmt, datefmt)
        self.use_color = sys.stdout.isatty() if use_color is None else use_color

    def formatMessage(self, record: logging.LogRecord) -> str:
        if not self.use_color or record.levelno not in self.COLORS:
            return super().formatMessage(record)
        plain = record.levelname
        record.levelname = f"{self.COLORS[record.levelno]}{plain}{self.RESET}"
        try:
            return super().formatMessage(record)
        finally:
            record.levelname = plain


def _stdout_handler(formatter: str) -> dict:
    return {"class": "logging.StreamHandler", "formatter": formatter, "stream": "ext://sys.stdout"}


def _logger(handler: str, level: str) -> dict:
    return {"handlers": [handler], "level": level, "propagate": False}


def configure_logging(level: str = "INFO", use_color: bool | None = None) -> None:
    """Log to stdout: colored app and uvicorn lines, raw JSON lines for the audit trail."""
    colored = "cloudvault.logging_config.ColoredFormatter"
    logging_config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "app": {"()": colored, "fmt": APP_FORMAT, "datefmt": DATE_FORMAT, "use_color": use_color},
                "access": {"()": colored, "fmt": ACCESS_FORMAT, "datefmt": DATE_FORMAT, "use_color": use_color},
                "audit": {"format": "%(message)s"},
            },
            "handlers": {
                "app": _stdout_handler("app"),
                "access": _stdout_handler("access"),
                "audit": _stdout_handler("audit"),
            },
            "loggers": {
                "uvicorn": _logger("app", level),
                "uvicorn.error": _logger("app", level),
                "uvicorn.access": _logger("access", level),
                "cloudvault.audit": _logger("audit", "INFO"),
            },
            "root": {"handlers": ["app"], "level": level},
        }
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


__all__ = ["ColoredFormatter", "configure_logging"]
