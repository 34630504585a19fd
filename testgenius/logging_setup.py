from __future__ import annotations
import logging

from testgenius.config import LOG_LEVEL


def setup_console_logging(level: int | str | None = None) -> None:
    """
    Configure console logging once per process.

    Session timers log from their own threads, so the thread name is part of
    every line.
    """
    level = level if level is not None else LOG_LEVEL
    root = logging.getLogger()
    root.setLevel(level)
    if root.handlers:
        return

    handler = logging.StreamHandler()
    handler.setFormatter(
        logging.Formatter(
            "[%(asctime)s] %(levelname)s [%(threadName)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    root.addHandler(handler)

    for noisy in ("urllib3", "multipart", "python_multipart"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
