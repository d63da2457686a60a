# classplay/core/logging_utils.py
import logging
import json
import datetime as dt
from typing import Dict, Any, Optional, Set

# LogRecord attributes that are never copied over as "extra" fields
LOG_RECORD_BUILTIN_ATTRS: Set[str] = {
    "args", "asctime", "created", "exc_info", "exc_text", "filename",
    "funcName", "levelname", "levelno", "lineno", "module", "msecs",
    "message", "msg", "name", "pathname", "process", "processName",
    "relativeCreated", "stack_info", "thread", "threadName", "taskName",
}

class JSONLogFormatter(logging.Formatter):
    """
    Formats each record as one JSON object per line.

    `fmt_keys` maps output keys to LogRecord attribute names, e.g.
    {"level": "levelname", "logger": "name"}. Fields passed with `extra=`
    (session_id, operation, ...) are appended as they are.
    """

    def __init__(self, *, fmt_keys: Optional[Dict[str, str]] = None, datefmt: Optional[str] = None):
        super().__init__(datefmt=datefmt)
        self.fmt_keys = fmt_keys if fmt_keys is not None else {}

    def format(self, record: logging.LogRecord) -> str:
        return json.dumps(self._prepare_log_dict(record), default=str)

    def _timestamp(self, record: logging.LogRecord) -> str:
        if self.datefmt:
            return self.formatTime(record, self.datefmt)
        return dt.datetime.fromtimestamp(record.created, tz=dt.timezone.utc).isoformat()

    def _prepare_log_dict(self, record: logging.LogRecord) -> Dict[str, Any]:
        always_fields: Dict[str, Any] = {
            "message": record.getMessage(),
            "timestamp": self._timestamp(record),
        }
        if record.exc_info:
            always_fields["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            always_fields["stack_info"] = self.formatStack(record.stack_info)

        message_dict: Dict[str, Any] = {}
        for key, attr in self.fmt_keys.items():
            if attr in always_fields:
                message_dict[key] = always_fields.pop(attr)
            else:
                val = getattr(record, attr, None)
                if val is not None:
                    message_dict[key] = val

        for key, value in always_fields.items():
            message_dict.setdefault(key, value)

        mapped_attrs = set(self.fmt_keys.values())
        for key, val in record.__dict__.items():
            if key in LOG_RECORD_BUILTIN_ATTRS or key in mapped_attrs or key in message_dict:
                continue
            message_dict[key] = val

        return message_dict
