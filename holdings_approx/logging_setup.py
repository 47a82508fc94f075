import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

LOG_FORMAT = '%(asctime)s | %(levelname)s | %(message)s'


def setup_logging(level: str = "INFO", log_path: Optional[str] = None) -> logging.Logger:
    """Configure the root logger with a console handler and an optional rotating file."""
    logger = logging.getLogger()
    logger.setLevel(level.upper())

    ch = logging.StreamHandler()
    ch.setFormatter(logging.Formatter(LOG_FORMAT))

    # avoid duplicate lines when the server reloads
    logger.handlers.clear()
    logger.addHandler(ch)

    if log_path:
        Path(log_path).parent.mkdir(parents=True, exist_ok=True)
        # rotate 5MB x 3 backups
        fh = RotatingFileHandler(log_path, maxBytes=5_000_000, backupCount=3)
        fh.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(fh)
    return logger
