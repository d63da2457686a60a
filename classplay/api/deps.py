# classplay/api/deps.py
import logging
from functools import lru_cache

from fastapi import Depends

from classplay.core.config import settings
from classplay.db.session import SessionLocal
from classplay.services.mafia_service import MafiaService
from classplay.services.move_log import MoveLog
from classplay.services.quiz_service import QuizService
from classplay.services.session_service import SessionManager
from classplay.services.turn_service import TurnCoordinator
from classplay.store.base import RealtimeStore
from classplay.store.factory import build_store

logger = logging.getLogger("classplay.api.deps")  # Logger for this module

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

@lru_cache()
def get_store() -> RealtimeStore:
    """One store per process; every request and socket shares its listeners."""
    return build_store(settings)

def get_move_log(store: RealtimeStore = Depends(get_store)) -> MoveLog:
    return MoveLog(store, settings)

def get_session_manager(
    store: RealtimeStore = Depends(get_store),
    move_log: MoveLog = Depends(get_move_log),
) -> SessionManager:
    return SessionManager(store, settings, move_log=move_log)

def get_turn_coordinator(
    store: RealtimeStore = Depends(get_store),
    move_log: MoveLog = Depends(get_move_log),
) -> TurnCoordinator:
    return TurnCoordinator(store, move_log, settings=settings)

def get_mafia_service(
    store: RealtimeStore = Depends(get_store),
    move_log: MoveLog = Depends(get_move_log),
) -> MafiaService:
    return MafiaService(store, move_log, settings=settings)

def get_quiz_service(
    store: RealtimeStore = Depends(get_store),
    move_log: MoveLog = Depends(get_move_log),
) -> QuizService:
    return QuizService(store, move_log, settings)
