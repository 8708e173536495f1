import json
import logging
import os
import sys
from datetime import datetime


# Attributes every LogRecord carries; anything else on a record came from extra=
_RESERVED_ATTRS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", (), None).__dict__
) | {"message", "asctime"}

# Coordinator config uses "warn"
_LEVEL_ALIASES = {
    "warn": "WARNING",
}


def resolve_level(log_level: str) -> int:
    name = _LEVEL_ALIASES.get(log_level.strip().lower(), log_level.strip().upper())
    level = logging.getLevelName(name)
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {log_level}")
    return level


class JSONFormatter(logging.Formatter):
    """
    One JSON object per line.

    Extras passed through ``extra=`` become top-level keys; a key that
    collides with a base field is written as ``extra_<key>``. Values json
    cannot encode (enums, datetimes, models) are written with str().
    """

    def format(self, record: logging.LogRecord) -> str:

        log_data = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        extras = {
            key: value
            for key, value in record.__dict__.items()
            if not key.startswith("_") and key not in _RESERVED_ATTRS
        }

        for key, value in extras.items():
            log_data[f"extra_{key}" if key in log_data else key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


_NOISY_LOGGERS = ("urllib3", "httpx", "openai", "posthog", "faiss")


def setup_logging(log_level: str = "info", log_dir: str = "logs"):
    """Route everything through JSON to stdout and <log_dir>/adaptive_rag.log."""

    os.makedirs(log_dir, exist_ok=True)

    formatter = JSONFormatter()

    console_handler = logging.StreamHandler(sys.stdout)
    file_handler = logging.FileHandler(os.path.join(log_dir, "adaptive_rag.log"))

    root_logger = logging.getLogger()
    root_logger.setLevel(resolve_level(log_level))
    root_logger.handlers = []

    for handler in (console_handler, file_handler):
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def set_level(log_level: str):
    """Change the root level at runtime (coordinator config updates)."""
    logging.getLogger().setLevel(resolve_level(log_level))
