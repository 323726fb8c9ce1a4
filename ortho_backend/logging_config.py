"""
Orthodontic Practice Backend - Central Logging Configuration

Everything goes to the main rotating log and the console. The booking sync
also writes to its own file (sync.log next to the main log) so a failed
overnight pass can be traced without digging through request noise.
"""
import logging
import logging.handlers
import sys
from pathlib import Path
from .config import LOG_LEVEL, LOG_FILE, BASE_DIR

FILE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s'
CONSOLE_FORMAT = '%(levelname)s: %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# Domain loggers used across services
DOMAIN_LOGGERS = ("ortho.db", "ortho.upload", "ortho.sync")

QUIET_LOGGERS = ("multipart", "urllib3", "cloudinary", "passlib")


def _rotating_handler(path: Path, level: int) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        filename=path,
        maxBytes=10 * 1024 * 1024,  # 10 MB
        backupCount=5,
        encoding='utf-8'
    )
    handler.setFormatter(logging.Formatter(fmt=FILE_FORMAT, datefmt=DATE_FORMAT))
    handler.setLevel(level)
    return handler


def configure_logging():
    """
    Install handlers on the root logger (safe to call again on reload)

    - main log rotates every 10MB, 5 backups kept
    - console gets short INFO lines
    - ortho.sync records are also copied to sync.log
    """
    level = getattr(logging, LOG_LEVEL.upper(), logging.INFO)

    log_path = Path(BASE_DIR) / LOG_FILE
    log_path.parent.mkdir(parents=True, exist_ok=True)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter(fmt=CONSOLE_FORMAT))
    console_handler.setLevel(logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    root_logger.addHandler(_rotating_handler(log_path, level))
    root_logger.addHandler(console_handler)

    for name in DOMAIN_LOGGERS:
        logging.getLogger(name).setLevel(level)

    sync_logger = logging.getLogger("ortho.sync")
    for handler in list(sync_logger.handlers):
        sync_logger.removeHandler(handler)
        handler.close()
    sync_logger.addHandler(_rotating_handler(log_path.parent / "sync.log", logging.INFO))

    # Request middleware in main.py logs every call already
    logging.getLogger("uvicorn.access").handlers = []
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.info(f"✅ Logging initialized. Writing to: {log_path}")
