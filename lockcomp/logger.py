import logging
import math
import os
import json
from logging.handlers import RotatingFileHandler
from typing import Dict, Any

# Global Context Store (single-threaded host callbacks, no ThreadLocal needed)
_LOG_CONTEXT: Dict[str, Any] = {
    "context": "PvE",
    "mode": "active",
}

def update_log_context(key: str, value: Any):
    """Update a specific field in the global log context."""
    _LOG_CONTEXT[key] = value

def get_log_context() -> Dict[str, Any]:
    return _LOG_CONTEXT.copy()

class JSONFormatter(logging.Formatter):
    """
    Formatter that outputs JSON messages.
    Includes global context and extra fields passed in the log record.
    """
    def format(self, record):
        log_obj = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "context": _LOG_CONTEXT.copy()
        }

        # Merge 'extra' fields if available (e.g. logger.info(..., extra={'data': {...}}))
        if hasattr(record, 'data'):
            log_obj['data'] = record.data

        # Add source info for errors
        if record.levelno >= logging.ERROR:
            log_obj["source"] = {
                "file": record.filename,
                "line": record.lineno,
                "func": record.funcName
            }
            if record.exc_info:
                log_obj["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_obj)

def _default_log_file() -> str:
    override = os.environ.get("LOCKCOMP_LOG_FILE")
    if override:
        return override
    project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    return os.path.join(project_root, "lockcomp.jsonl")

def setup_logger():
    """
    Sets up a unified logger for the compensation engine.
    Logs INFO to console (Human Readable) and DEBUG to 'lockcomp.jsonl' (Machine Readable).
    """
    logger = logging.getLogger("lockcomp")
    logger.setLevel(logging.DEBUG)

    # Avoid duplicate handlers
    if logger.handlers:
        return logger

    # 1. Console Handler (Text - for Humans)
    console_formatter = logging.Formatter('%(asctime)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s')
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(console_formatter)
    logger.addHandler(console_handler)

    # 2. File Handler (JSON - for Machines)
    log_file = _default_log_file()
    try:
        file_handler = RotatingFileHandler(log_file, maxBytes=10*1024*1024, backupCount=5, encoding='utf-8')
    except OSError as e:
        logger.warning(f"Logger: File logging disabled ({log_file}): {e}")
    else:
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(JSONFormatter())
        logger.addHandler(file_handler)

    return logger

# Singleton access
logger = setup_logger()
# Expose context updater
logger.update_context = update_log_context

def f2ms(seconds: float) -> int:
    """Seconds to whole milliseconds, for log and diagnostics display."""
    if not math.isfinite(seconds):
        return 0
    return int(round(seconds * 1000))
