import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path


LOG_DIR_ENV = "PARTS_LEDGER_LOG_DIR"
LOG_FILE_NAME = "parts_ledger.log"


def resolve_log_dir() -> Path:
    """Pick the folder that receives the rotating log file.

    ``PARTS_LEDGER_LOG_DIR`` wins when set. A source checkout logs to
    ``.logs`` beside its ``pyproject.toml``; an installed copy logs under
    ``~/.parts_ledger/logs`` instead of inside site-packages.
    """

    override = os.environ.get(LOG_DIR_ENV)
    if override:
        return Path(override).expanduser()
    project_root = Path(__file__).resolve().parents[2]
    if (project_root / "pyproject.toml").exists():
        return project_root / ".logs"
    return Path.home() / ".parts_ledger" / "logs"


LOG_DIR = resolve_log_dir()
LOG_FILE = LOG_DIR / LOG_FILE_NAME


def _configure_logging() -> logging.Logger:
    """Configure package-wide logging with file and console handlers."""

    logger = logging.getLogger(__name__)
    if logger.handlers:
        return logger

    logger.setLevel(logging.INFO)
    formatter = logging.Formatter(
        fmt="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    try:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            LOG_FILE,
            maxBytes=1_000_000,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    except (OSError, PermissionError) as exc:
        print(
            f"Warning: unable to initialize log file at '{LOG_FILE}': {exc}",
            file=sys.stderr,
        )

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.WARNING)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    return logger


log = _configure_logging()
log.info("Logger initialized for the 'parts_ledger' package.")
