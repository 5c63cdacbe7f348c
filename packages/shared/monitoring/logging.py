"""Structured JSON logging for the discovery service."""

import json
import logging
import sys
from datetime import datetime, timezone

# Loggers that drown the discovery logs at INFO.
NOISY_LOGGERS = ("httpx", "httpcore", "openai", "hpack")


def configure_logging(
    service_name: str = "route-discovery",
    level: str = "INFO",
    json_format: bool = True,
) -> None:
    """Configure root logging once per process (called from the app lifespan)."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    if root.handlers:
        root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(root.level)

    if json_format:
        handler.setFormatter(StructuredFormatter(service_name=service_name))
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )

    root.addHandler(handler)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


class StructuredFormatter(logging.Formatter):
    """One JSON object per line: timestamp, level, service, logger, session/request ids, context."""

    def __init__(self, service_name: str = "route-discovery", *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        log_obj = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc)
            .strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3]
            + "Z",
            "level": record.levelname,
            "service": self.service_name,
            "logger": record.name,
            "request_id": getattr(record, "request_id", None),
            "session_id": getattr(record, "session_id", None),
            "message": record.getMessage(),
            "context": getattr(record, "context", {}),
        }
        if record.exc_info:
            log_obj["stack_trace"] = self.formatException(record.exc_info)
        return json.dumps(log_obj, default=str)
