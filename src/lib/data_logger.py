# Data & File Logger
# Register rows go to logs/registers.log as JSON lines; server.log and
# access.log are built by the same create_file_logger().
# Files rotate at 5MB into {stem}-{yyyyMMddHHmmss}.log

import os
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from logging.handlers import RotatingFileHandler

# src/lib/ → project root
PROJECT_ROOT = Path(__file__).parent.parent.parent
LOG_DIR = Path(os.environ.get("DISPATCHER_LOG_DIR", PROJECT_ROOT / "logs"))

MAX_BYTES = 5 * 1024 * 1024  # 5MB
BACKUP_COUNT = 10
LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

REGISTER_LOGGER_NAME = "registers"


def _backup_namer(filename):
    """registers.log.1 → registers-20261019093000.log"""
    stem = filename.rsplit(".", 1)[0]

    def namer(default_name):
        stamp = datetime.now().strftime("%Y%m%d%H%M%S")
        return os.path.join(os.path.dirname(default_name), f"{stem}-{stamp}.log")
    return namer


def _rename(source, dest):
    if os.path.exists(source):
        os.rename(source, dest)


def create_file_logger(name, filename, max_bytes=MAX_BYTES, backup_count=BACKUP_COUNT,
                       log_dir=None):
    """
    Logger `name` writing to {log_dir}/{filename}, rotated by size.
    The logger does not propagate. A logger that already has a handler
    is returned unchanged.
    """
    log_dir = Path(log_dir or LOG_DIR)
    os.makedirs(log_dir, exist_ok=True)

    file_logger = logging.getLogger(name)
    if file_logger.handlers:
        return file_logger

    handler = RotatingFileHandler(
        str(log_dir / filename),
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    handler.namer = _backup_namer(filename)
    handler.rotator = _rename
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))

    file_logger.setLevel(logging.INFO)
    file_logger.propagate = False
    file_logger.addHandler(handler)
    return file_logger


def get_register_logger():
    return create_file_logger(REGISTER_LOGGER_NAME, "registers.log")


def log_register_row(data_logger, servo_id, register_values):
    """Append one row of register values for a servo."""
    row = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "servo": servo_id,
        "registers": register_values,
    }
    data_logger.info(json.dumps(row, sort_keys=True))
    return row
