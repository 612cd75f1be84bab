import logging
import queue
import sys
from logging.config import dictConfig
from logging.handlers import QueueListener
from typing import Union

LOG_QUEUE: "queue.Queue[logging.LogRecord]" = queue.Queue(-1)

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(process)5d %(threadName)s %(name)-40s %(message)s"
LOG_DATEFMT = "%Y-%m-%dT%H:%M:%S%z"

# ANSI-Farben pro Level
_COLOR_MAP = {
    logging.DEBUG: "\x1b[37m",
    logging.INFO: "\x1b[39m",
    logging.WARNING: "\x1b[33m",
    logging.ERROR: "\x1b[31m",
    logging.CRITICAL: "\x1b[35m",
}
_RESET = "\x1b[0m"


def build_logging_config(level: Union[str, int] = "INFO") -> dict:
    """dictConfig für den Root-Logger: alle Records gehen in die LOG_QUEUE."""
    level_name = logging.getLevelName(level) if isinstance(level, int) else str(level).upper()
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "handlers": {
            "queue": {
                "class": "logging.handlers.QueueHandler",
                "queue": "ext://utils.LoggingUtils.LOG_QUEUE",
                "level": "DEBUG",
            },
        },
        "loggers": {
            # httpx loggt jeden Request auf INFO, das wäre bei jedem Scrape zu laut
            "httpx": {"level": "WARNING"},
            "httpcore": {"level": "WARNING"},
        },
        "root": {
            "level": level_name,
            "handlers": ["queue"],
        },
    }


class ColoredFormatter(logging.Formatter):
    """
    Färbt ganze Zeilen anhand des Log-Levels ein.
    Nur aktiv, wenn stdout ein TTY ist.
    """
    def __init__(self, fmt, datefmt=None, use_colors=True):
        super().__init__(fmt, datefmt=datefmt)
        self.use_colors = use_colors and sys.stdout.isatty()

    def format(self, record: logging.LogRecord) -> str:
        formatted = super().format(record)
        if self.use_colors:
            color = _COLOR_MAP.get(record.levelno, "")
            return f"{color}{formatted}{_RESET}"
        return formatted


def configure_logging(level: Union[str, int] = "INFO") -> QueueListener:
    """
    Konfiguriert das Logging mit einem QueueListener und gibt den gestarteten
    Listener zurück, damit der Aufrufer ihn beim Beenden stoppen kann.

    Nutzung:
        listener = configure_logging("DEBUG")
        ...
        listener.stop()
    """
    dictConfig(build_logging_config(level))

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(ColoredFormatter(LOG_FORMAT, datefmt=LOG_DATEFMT))

    listener = QueueListener(LOG_QUEUE, console_handler, respect_handler_level=True)
    listener.start()
    return listener
