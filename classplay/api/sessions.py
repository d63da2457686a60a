# classplay/api/sessions.py
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from classplay.api import deps
from classplay.models.enums import GameType
from classplay.models.game import GameSession, Move, Player
from classplay.services.move_log import MoveLog
from classplay.services.session_service import SessionManager

logger = logging.getLogger("classplay.api.sessions")  # Logger for this module
router = APIRouter()

class CreateSessionRequest(BaseModel):
    class_id: str
    creator_id: str
    creator_name: str
    game_type: GameType
    max_players: Optional[int] = Field(None, description="Defaults to the configured DEFAULT_MAX_PLAYERS.")

class CreateSessionResponse(BaseModel):
    session_id: str

class PlayerRequest(BaseModel):
    player_id: str
    player_name: Optional[str] = None

@router.post("", response_model=CreateSessionResponse, status_code=status.HTTP_201_CREATED)
async def create_session(
    body: CreateSessionRequest,
    manager: SessionManager = Depends(deps.get_session_manager),
):
    session_id = await manager.create_session(
        body.class_id, body.creator_id, body.creator_name, body.game_type, body.max_players
    )
    return CreateSessionResponse(session_id=session_id)

@router.get("", response_model=List[GameSession])
async def list_active_sessions(
    class_id: str = Query(..., description="Only sessions of this class are listed."),
    manager: SessionManager = Depends(deps.get_session_manager),
):
    """Sessions of the class that are waiting or running, newest first."""
    return await manager.list_active_sessions(class_id)

@router.get("/{session_id}", response_model=GameSession)
async def get_session(session_id: str, manager: SessionManager = Depends(deps.get_session_manager)):
    return await manager.get_session(session_id)

@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_session(session_id: str, manager: SessionManager = Depends(deps.get_session_manager)):
    await manager.delete_session(session_id)

@router.post("/{session_id}/join", response_model=Player)
async def join_session(
    session_id: str,
    body: PlayerRequest,
    manager: SessionManager = Depends(deps.get_session_manager),
):
    return await manager.join_session(session_id, body.player_id, body.player_name or "")

@router.post("/{session_id}/leave", status_code=status.HTTP_204_NO_CONTENT)
async def leave_session(
    session_id: str,
    body: PlayerRequest,
    manager: SessionManager = Depends(deps.get_session_manager),
):
    await manager.leave_session(session_id, body.player_id)

@router.post("/{session_id}/start", response_model=GameSession)
async def start_session(session_id: str, manager: SessionManager = Depends(deps.get_session_manager)):
    return await manager.start_session(session_id)

@router.post("/{session_id}/finish", response_model=GameSession)
async def finish_session(session_id: str, manager: SessionManager = Depends(deps.get_session_manager)):
    return await manager.finish_session(session_id)

@router.post("/{session_id}/cancel", response_model=GameSession)
async def cancel_session(session_id: str, manager: SessionManager = Depends(deps.get_session_manager)):
    return await manager.cancel_session(session_id)

@router.get("/{session_id}/moves", response_model=List[Move])
async def list_moves(
    session_id: str,
    limit: Optional[int] = Query(None, ge=0),
    manager: SessionManager = Depends(deps.get_session_manager),
    move_log: MoveLog = Depends(deps.get_move_log),
):
    await manager.get_session(session_id)  # 404 for unknown sessions instead of an empty list
    return await move_log.list_moves(session_id, limit)
