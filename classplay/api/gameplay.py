# classplay/api/gameplay.py
import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from classplay.api import deps
from classplay.models.enums import MafiaRole, TurnChoice, VotePhase
from classplay.models.game import MoveDraft, PhaseChange, Player, QuizScore, Turn, VoteTally
from classplay.services.mafia_service import MafiaService
from classplay.services.quiz_service import QuizService
from classplay.services.turn_service import TurnCoordinator

logger = logging.getLogger("classplay.api.gameplay")  # Logger for this module
router = APIRouter()

# --- Request / response models ---

class ChoiceRequest(BaseModel):
    player_id: str
    choice: TurnChoice

class QuestionRequest(BaseModel):
    player_id: str
    question: str

class AnswerRequest(BaseModel):
    player_id: str
    answer: str

class RetryMoveRequest(BaseModel):
    """Echo of the `partial_write` error body: the move that still has to be appended."""
    move: MoveDraft

class MoveIdResponse(BaseModel):
    move_id: str

class VoteRequest(BaseModel):
    player_id: str
    target_number: int
    phase: VotePhase

class RoleActionRequest(BaseModel):
    player_id: str
    action: str
    target_number: int

class EliminateRequest(BaseModel):
    player_number: int

class PhaseRequest(BaseModel):
    phase: VotePhase

class QuizAnswerRequest(BaseModel):
    player_id: str
    question_id: str
    answer: str
    is_correct: bool

class ScoreResponse(BaseModel):
    score: int

class QuestionStartRequest(BaseModel):
    player_id: str
    question: Dict[str, Any]

class QuestionEndRequest(BaseModel):
    player_id: str
    question_id: str
    correct_answer: Any

class QuizMasterRequest(BaseModel):
    player_id: str

# --- Truth or dare ---

@router.post("/{session_id}/turn/choice", response_model=Turn)
async def submit_choice(
    session_id: str,
    body: ChoiceRequest,
    turns: TurnCoordinator = Depends(deps.get_turn_coordinator),
):
    return await turns.submit_choice(session_id, body.player_id, body.choice)

@router.post("/{session_id}/turn/question", response_model=Turn)
async def submit_question(
    session_id: str,
    body: QuestionRequest,
    turns: TurnCoordinator = Depends(deps.get_turn_coordinator),
):
    return await turns.submit_question(session_id, body.player_id, body.question)

@router.post("/{session_id}/turn/answer", response_model=Turn)
async def submit_answer(
    session_id: str,
    body: AnswerRequest,
    turns: TurnCoordinator = Depends(deps.get_turn_coordinator),
):
    """Answers the current turn; the response is the turn that follows it."""
    return await turns.submit_answer(session_id, body.player_id, body.answer)

@router.post("/{session_id}/turn/retry-move", response_model=MoveIdResponse)
async def retry_move(
    session_id: str,
    body: RetryMoveRequest,
    turns: TurnCoordinator = Depends(deps.get_turn_coordinator),
):
    move_id = await turns.append_missing_move(session_id, body.move)
    return MoveIdResponse(move_id=move_id)

# --- Mafia ---

@router.post("/{session_id}/mafia/roles", response_model=Dict[str, MafiaRole])
async def assign_roles(session_id: str, mafia: MafiaService = Depends(deps.get_mafia_service)):
    return await mafia.assign_roles(session_id)

@router.post("/{session_id}/mafia/vote", response_model=MoveIdResponse)
async def submit_vote(
    session_id: str,
    body: VoteRequest,
    mafia: MafiaService = Depends(deps.get_mafia_service),
):
    move_id = await mafia.submit_vote(session_id, body.player_id, body.target_number, body.phase)
    return MoveIdResponse(move_id=move_id)

@router.post("/{session_id}/mafia/action", response_model=MoveIdResponse)
async def submit_role_action(
    session_id: str,
    body: RoleActionRequest,
    mafia: MafiaService = Depends(deps.get_mafia_service),
):
    move_id = await mafia.submit_role_action(session_id, body.player_id, body.action, body.target_number)
    return MoveIdResponse(move_id=move_id)

@router.post("/{session_id}/mafia/eliminate", response_model=Player)
async def eliminate_player(
    session_id: str,
    body: EliminateRequest,
    mafia: MafiaService = Depends(deps.get_mafia_service),
):
    return await mafia.eliminate_player(session_id, body.player_number)

@router.post("/{session_id}/mafia/phase", response_model=PhaseChange)
async def change_phase(
    session_id: str,
    body: PhaseRequest,
    mafia: MafiaService = Depends(deps.get_mafia_service),
):
    return await mafia.change_phase(session_id, body.phase)

@router.post("/{session_id}/mafia/tally", response_model=VoteTally)
async def tally_day_votes(session_id: str, mafia: MafiaService = Depends(deps.get_mafia_service)):
    """Closes the day: counts its votes, eliminates the most voted player and turns to night."""
    return await mafia.tally_day_votes(session_id)

# --- Quiz ---

@router.post("/{session_id}/quiz/answer", response_model=ScoreResponse)
async def submit_quiz_answer(
    session_id: str,
    body: QuizAnswerRequest,
    quiz: QuizService = Depends(deps.get_quiz_service),
):
    score = await quiz.submit_quiz_answer(session_id, body.player_id, body.question_id, body.answer, body.is_correct)
    return ScoreResponse(score=score)

@router.post("/{session_id}/quiz/question", response_model=MoveIdResponse)
async def start_question(
    session_id: str,
    body: QuestionStartRequest,
    quiz: QuizService = Depends(deps.get_quiz_service),
):
    move_id = await quiz.start_question(session_id, body.player_id, body.question)
    return MoveIdResponse(move_id=move_id)

@router.post("/{session_id}/quiz/question/end", response_model=MoveIdResponse)
async def end_question(
    session_id: str,
    body: QuestionEndRequest,
    quiz: QuizService = Depends(deps.get_quiz_service),
):
    move_id = await quiz.end_question(session_id, body.player_id, body.question_id, body.correct_answer)
    return MoveIdResponse(move_id=move_id)

@router.post("/{session_id}/quiz/finish", response_model=List[QuizScore])
async def finish_quiz(
    session_id: str,
    body: QuizMasterRequest,
    quiz: QuizService = Depends(deps.get_quiz_service),
):
    return await quiz.finish_quiz(session_id, body.player_id)
