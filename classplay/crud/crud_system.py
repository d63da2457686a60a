# classplay/crud/crud_system.py
import logging
from sqlalchemy import func
from sqlalchemy.orm import Session
from classplay.schemas.system import SystemAlert
from typing import List, Optional

logger = logging.getLogger("classplay.crud.system")

def create_alert(db: Session, level: str, message: str, details: Optional[str] = None, logger_name: Optional[str] = None) -> Optional[SystemAlert]:
    """Creates a new system alert record."""
    try:
        alert = SystemAlert(level=level, message=message, details=details, logger_name=logger_name)
        db.add(alert)
        db.commit()
        db.refresh(alert)
        return alert
    except Exception as e:
        # The alert table is itself unavailable: fall back to plain logging.
        # Do not go through the "classplay" logger tree here, the database
        # handler would try to persist this record again.
        logging.getLogger("classplay_fallback").critical(
            f"FAILED TO LOG ALERT TO DATABASE: {e} | Original alert: [{level}] {message}"
        )
        db.rollback()
        return None

def get_latest_alerts(db: Session, limit: int = 50) -> List[SystemAlert]:
    """Retrieves the most recent system alerts."""
    return db.query(SystemAlert).order_by(SystemAlert.timestamp.desc(), SystemAlert.id.desc()).limit(limit).all()

def count_alerts_by_level(db: Session) -> dict[str, int]:
    rows = db.query(SystemAlert.level, func.count(SystemAlert.id)).group_by(SystemAlert.level).all()
    return {level: count for level, count in rows}
