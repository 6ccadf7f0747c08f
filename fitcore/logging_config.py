# fitcore/logging_config.py

import logging
from logging.handlers import RotatingFileHandler

from .config import LOG_FILE, LOG_LEVEL


def configure_logging(level=None, log_file=None):
    """Install file and console handlers on the root logger, once per process."""
    root = logging.getLogger()
    if root.handlers:
        return

    level_name = str(level or LOG_LEVEL).upper()
    root.setLevel(getattr(logging, level_name, logging.INFO))
    formatter = logging.Formatter("%(asctime)s - %(levelname)s - %(name)s - %(message)s")

    file_handler = RotatingFileHandler(log_file or LOG_FILE, maxBytes=5_000_000, backupCount=3)
    file_handler.setFormatter(formatter)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)

    root.addHandler(file_handler)
    root.addHandler(stream_handler)
    logging.getLogger(__name__).debug("Logging configured at %s", level_name)
