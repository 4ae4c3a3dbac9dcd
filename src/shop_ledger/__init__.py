"""Shop ledger: inventory, sales, repairs and GST billing kept in one workbook.

Importing the package sets up the ``shop_ledger`` logger that every module
writes through. Records go to a rotating file under ``.logs/`` beside the
checkout and to stderr. ``SHOP_LEDGER_LOG_DIR`` moves the file and
``SHOP_LEDGER_LOG_LEVEL`` changes the threshold.
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Mapping


PROJECT_ROOT = Path(__file__).resolve().parents[2]
LOG_DIR_ENV = "SHOP_LEDGER_LOG_DIR"
LOG_LEVEL_ENV = "SHOP_LEDGER_LOG_LEVEL"
LOG_FILE_NAME = "shop_ledger.log"
LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"


def log_directory(environ: Mapping[str, str] = os.environ) -> Path:
    """Return the directory for the ledger log file."""

    override = environ.get(LOG_DIR_ENV, "").strip()
    if override:
        return Path(override).expanduser()
    return PROJECT_ROOT / ".logs"


def log_level(environ: Mapping[str, str] = os.environ) -> int:
    """Map ``SHOP_LEDGER_LOG_LEVEL`` to a level; unknown names mean INFO."""

    name = environ.get(LOG_LEVEL_ENV, "").strip().upper()
    level = logging.getLevelName(name) if name else logging.INFO
    return level if isinstance(level, int) else logging.INFO


def _build_ledger_logger() -> logging.Logger:
    logger = logging.getLogger(__name__)
    if logger.handlers:
        return logger

    level = log_level()
    logger.setLevel(level)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    log_file = log_directory() / LOG_FILE_NAME
    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(log_file, maxBytes=1_000_000, backupCount=5, encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    except OSError as exc:
        print(f"Warning: shop ledger will log to stderr only, '{log_file}' failed: {exc}", file=sys.stderr)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)
    return logger


log = _build_ledger_logger()
log.debug("Ledger logging ready at level %s", logging.getLevelName(log.level))
