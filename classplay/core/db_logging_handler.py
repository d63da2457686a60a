# classplay/core/db_logging_handler.py
import logging
import traceback
from typing import Callable, Optional

from sqlalchemy.orm import Session

from classplay.crud import crud_system

class DatabaseHandler(logging.Handler):
    """
    A logging handler that writes ERROR and CRITICAL records to the
    `systemalerts` table so they can be reviewed from the monitoring API.
    """
    def __init__(self, level=logging.ERROR, session_factory: Optional[Callable[[], Session]] = None):
        super().__init__(level)
        self._session_factory = session_factory

    def _new_session(self) -> Session:
        if self._session_factory is None:
            from classplay.db.session import SessionLocal
            self._session_factory = SessionLocal
        return self._session_factory()

    def emit(self, record: logging.LogRecord):
        if record.levelno < logging.ERROR:
            return

        details = None
        if record.exc_info:
            details = "".join(traceback.format_exception(*record.exc_info))

        # A new session per record: emit may run on the queue listener thread.
        db = self._new_session()
        try:
            crud_system.create_alert(
                db=db,
                level=record.levelname,
                message=record.getMessage(),
                details=details,
                logger_name=record.name,
            )
        except Exception:
            self.handleError(record)
        finally:
            db.close()
