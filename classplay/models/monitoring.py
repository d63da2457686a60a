from pydantic import BaseModel, ConfigDict
from typing import Dict, List, Optional
from datetime import datetime

class LiveStats(BaseModel):
    active_sessions: int
    players_in_sessions: int
    sessions_by_game_type: Dict[str, int]
    concurrent_websockets: int
    store_listeners: int

class SystemAlertPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    timestamp: datetime
    level: str
    logger_name: Optional[str] = None
    message: str
    details: Optional[str] = None

class AlertsResponse(BaseModel):
    counts_by_level: Dict[str, int]
    alerts: List[SystemAlertPublic]
