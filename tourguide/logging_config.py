import logging
import os
import sys

from pythonjsonlogger.json import JsonFormatter

NOISY_LOGGERS = ("httpx", "httpcore", "apscheduler")


def configure_logging(
    level: str = "INFO", json_format: bool = True, log_file: str = "data/tourguide.log"
) -> None:
    """Route every log record to stderr, plus ``log_file`` unless it is empty."""
    formatter: logging.Formatter
    if json_format:
        formatter = JsonFormatter(
            fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={"asctime": "timestamp", "levelname": "level", "name": "logger"},
        )
    else:
        formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    root = logging.getLogger()
    root.setLevel(level.upper())
    for handler in root.handlers:
        if isinstance(handler, logging.FileHandler):
            handler.close()
    root.handlers.clear()
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)

    # Per-request and per-job chatter
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
