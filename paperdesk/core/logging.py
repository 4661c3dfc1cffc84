import json
import logging
from typing import Any, Dict, Optional


# Attributes every LogRecord carries; anything else arrived through ``extra=``.
_RESERVED_KEYS = set(logging.LogRecord("", logging.INFO, "", 0, "", (), None).__dict__) | {
    "message",
    "asctime",
}

_PLAIN_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


class StructuredFormatter(logging.Formatter):
    """Render log records as one JSON object per line."""

    def __init__(self, service: str = "paperdesk", datefmt: Optional[str] = None) -> None:
        super().__init__(datefmt=datefmt)
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        base: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "service": self.service,
            "logger": record.name,
            "message": record.getMessage(),
        }
        extras = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RESERVED_KEYS and not key.startswith("_")
        }
        event = extras.pop("event", None)
        if event:
            base["event"] = event
        if extras:
            base["extra"] = extras
        if record.exc_info:
            base["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(base, default=str)


def init_logging(level: str = "INFO", *, structured: bool = True) -> None:
    """Configure the root logger; JSON lines unless ``structured`` is off."""
    log_level = getattr(logging, level.upper(), logging.INFO)
    handler = logging.StreamHandler()
    if structured:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(logging.Formatter(_PLAIN_FORMAT))
    logging.basicConfig(level=log_level, handlers=[handler], force=True)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a module-scoped logger."""
    return logging.getLogger(name if name else "paperdesk")
