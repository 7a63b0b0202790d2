from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"


def setup_logging(config: dict) -> None:
    """Configure the root logger from ``log_level`` and ``log_file``.

    Console records go to stderr through rich so exported JSON on stdout
    stays clean. Handlers installed by a previous call are replaced, not
    stacked.
    """
    level_name = str(config.get("log_level") or "WARNING").upper()
    level = getattr(logging, level_name, logging.WARNING)

    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, "_callrate", False):
            root.removeHandler(handler)
            handler.close()

    console_handler = RichHandler(console=Console(stderr=True), show_path=False, rich_tracebacks=False)
    console_handler.setFormatter(logging.Formatter("%(message)s", datefmt=_DATEFMT))
    handlers: list[logging.Handler] = [console_handler]

    log_file = config.get("log_file")
    if log_file:
        file_path = Path(log_file)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(file_path, maxBytes=1_048_576, backupCount=5, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(fmt=_FILE_FORMAT, datefmt=_DATEFMT))
        handlers.append(file_handler)

    for handler in handlers:
        handler._callrate = True
        root.addHandler(handler)
    root.setLevel(level)
