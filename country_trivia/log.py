import logging
import sys
from pathlib import Path
from typing import Optional

from country_trivia.config import config

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logger(name: str, file_name: str) -> logging.Logger:
    """
    Return a named logger that writes to stdout and to LOG_DIR/<file_name>.

    Handlers are attached once per logger name, so modules can call this at
    import time without duplicating output.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    logger.setLevel(config.LOG_LEVEL.upper())
    formatter = logging.Formatter(LOG_FORMAT)

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    log_dir = Path(config.LOG_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(log_dir / file_name, encoding="utf-8")
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    logger.propagate = False
    return logger


def get_image_filepath(file_name: str, cache_dir: Optional[str] = None) -> str:
    # cache dir is created on demand
    directory = Path(cache_dir or config.CACHE_DIR)
    directory.mkdir(parents=True, exist_ok=True)
    return str(directory / file_name)
