# classplay/api/monitoring.py
import logging
from collections import Counter

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from classplay.api import deps
from classplay.api.websockets import connection_manager
from classplay.core.errors import store_operation
from classplay.crud import crud_system
from classplay.models.enums import SessionStatus
from classplay.models.monitoring import AlertsResponse, LiveStats, SystemAlertPublic
from classplay.services.records import SESSIONS_ROOT
from classplay.store.base import RealtimeStore

logger = logging.getLogger("classplay.api.monitoring")
router = APIRouter()

@router.get("/live", response_model=LiveStats)
async def get_live_stats(store: RealtimeStore = Depends(deps.get_store)):
    """Counts taken from the realtime store and the socket registry at call time."""
    with store_operation("monitoring.read_sessions"):
        sessions = await store.read(SESSIONS_ROOT) or {}

    active = [
        record for record in sessions.values()
        if isinstance(record, dict) and record.get("status") != SessionStatus.FINISHED.value
    ]
    by_type = Counter(str(record.get("gameType", "unknown")) for record in active)
    return LiveStats(
        active_sessions=len(active),
        players_in_sessions=sum(len(record.get("players") or {}) for record in active),
        sessions_by_game_type=dict(by_type),
        concurrent_websockets=connection_manager.connection_count,
        store_listeners=store.listener_count,
    )

@router.get("/alerts", response_model=AlertsResponse)
async def get_alerts(
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(deps.get_db),
):
    alerts = crud_system.get_latest_alerts(db, limit=limit)
    return AlertsResponse(
        counts_by_level=crud_system.count_alerts_by_level(db),
        alerts=[SystemAlertPublic.model_validate(alert) for alert in alerts],
    )
