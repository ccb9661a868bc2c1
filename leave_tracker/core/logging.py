import logging
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pythonjsonlogger import jsonlogger

from leave_tracker.core.config import settings

# Correlation ID of the HTTP request being served
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """One JSON object per line, tagged with the service name and the current request id."""

    def __init__(self, *args, service: str = "", environment: str = "", **kwargs):
        super().__init__(*args, **kwargs)
        self.service = service
        self.environment = environment

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)

        req_id = request_id_var.get()
        if req_id:
            log_record["request_id"] = req_id
        if self.service:
            log_record["service"] = self.service
        if self.environment:
            log_record["env"] = self.environment

        if not log_record.get("timestamp"):
            log_record["timestamp"] = datetime.fromtimestamp(record.created, timezone.utc).isoformat()
        log_record["level"] = (log_record.get("level") or record.levelname).upper()


def setup_logging(level: Optional[int] = None):
    root = logging.getLogger()
    # Re-importing the app (tests, reloader) must not stack handlers
    for handler in root.handlers:
        if isinstance(handler.formatter, CustomJsonFormatter):
            return

    log_handler = logging.StreamHandler()
    log_handler.setFormatter(
        CustomJsonFormatter(
            "%(timestamp) %(level) %(name) %(message)",
            service=settings.app_name,
            environment=settings.environment,
        )
    )
    root.addHandler(log_handler)
    root.setLevel(level if level is not None else settings.log_level)

    # Per-statement engine logs would drown the decision log
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
