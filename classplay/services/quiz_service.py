# classplay/services/quiz_service.py
import logging
from typing import Any, Dict, List, Optional

from classplay.core.config import Settings, settings as default_settings
from classplay.core.errors import (
    InvalidStatusTransitionError,
    NotYourTurnError,
    PlayerNotInSessionError,
    ValidationError,
    store_operation,
)
from classplay.models.enums import MoveType, SessionStatus
from classplay.models.game import GameSession, Move, MoveDraft, Player, QuizScore
from classplay.services.move_log import MoveLog
from classplay.services.records import load_session, player_path
from classplay.store.base import RealtimeStore

logger = logging.getLogger("classplay.services.quiz_service")  # Logger for this module


class QuizService:
    def __init__(self, store: RealtimeStore, move_log: Optional[MoveLog] = None, settings: Optional[Settings] = None):
        self.store = store
        self.settings = settings or default_settings
        self.move_log = move_log or MoveLog(store, self.settings)

    async def submit_quiz_answer(
        self,
        session_id: str,
        player_id: str,
        question_id: str,
        answer: str,
        is_correct: bool,
    ) -> int:
        """Logs the answer and returns the player's score afterwards."""
        session = await load_session(self.store, session_id, "submit_quiz_answer.read")
        if session.status is not SessionStatus.ACTIVE:
            raise InvalidStatusTransitionError(
                f"Session is '{session.status.value}', not active", session_id=session_id
            )
        player = session.players.get(player_id)
        if player is None or not player.has_number:
            raise PlayerNotInSessionError(f"Player '{player_id}' is not playing in this session", session_id=session_id)
        answer = (answer or "").strip()
        if not answer:
            raise ValidationError("The answer must not be empty", session_id=session_id)

        draft = MoveDraft(
            player_id=player.id,
            player_name=player.name,
            player_number=player.number,
            type=MoveType.ANSWER,
            description=f"Player {player.number} answered: {answer}",
            payload={"questionId": question_id, "answer": answer, "isCorrect": bool(is_correct)},
        )
        await self.move_log.append_move(session_id, draft)

        if not is_correct:
            return player.score

        def _increment(current: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
            if current is None:  # left in the meantime
                return None
            current["score"] = int(current.get("score") or 0) + 1
            return current

        with store_operation("submit_quiz_answer.increment_score"):
            result = await self.store.transaction(player_path(session_id, player_id), _increment)
        if result is None:
            raise PlayerNotInSessionError(f"Player '{player_id}' left before the score was updated", session_id=session_id)
        score = int(result.get("score") or 0)
        logger.info(f"S:{session_id} - Player #{player.number} scored, now at {score}")
        return score

    # --- Quiz master ---

    async def start_question(self, session_id: str, player_id: str, question: Dict[str, Any]) -> str:
        """Opens a question; `question` needs an `id` and a `question` text and is logged as given."""
        session = await load_session(self.store, session_id, "start_question.read")
        master = self._quiz_master(session, player_id)
        question_id = str(question.get("id") or "").strip()
        text = str(question.get("question") or "").strip()
        if not question_id or not text:
            raise ValidationError("A question needs an id and a text", session_id=session_id)
        if self._question_moves(session, MoveType.QUESTION_START, question_id):
            raise ValidationError(f"Question '{question_id}' was already asked", session_id=session_id)

        draft = self._master_move(master, MoveType.QUESTION_START, f"Question: {text}", {"questionData": question})
        return await self.move_log.append_move(session_id, draft)

    async def end_question(self, session_id: str, player_id: str, question_id: str, correct_answer: Any) -> str:
        """Closes a question and logs every answer it received, keyed by player number."""
        session = await load_session(self.store, session_id, "end_question.read")
        master = self._quiz_master(session, player_id)
        if not self._question_moves(session, MoveType.QUESTION_START, question_id):
            raise ValidationError(f"Question '{question_id}' was never asked", session_id=session_id)
        if self._question_moves(session, MoveType.QUESTION_END, question_id):
            raise ValidationError(f"Question '{question_id}' is already closed", session_id=session_id)

        answers = {
            str(move.player_number): {
                "answer": move.payload.get("answer"),
                "isCorrect": bool(move.payload.get("isCorrect")),
                "timestamp": move.created_at,
            }
            for move in self._question_moves(session, MoveType.ANSWER, question_id)
            if move.player_number is not None
        }
        draft = self._master_move(
            master,
            MoveType.QUESTION_END,
            f"Time is up! The correct answer was {correct_answer}",
            {"questionId": question_id, "correctAnswer": correct_answer, "answers": answers},
        )
        logger.info(f"S:{session_id} - Question '{question_id}' closed with {len(answers)} answers")
        return await self.move_log.append_move(session_id, draft)

    async def finish_quiz(self, session_id: str, player_id: str) -> List[QuizScore]:
        session = await load_session(self.store, session_id, "finish_quiz.read")
        master = self._quiz_master(session, player_id)
        scores = [
            QuizScore(player_number=p.number, name=p.name, score=p.score)
            for p in sorted(session.players.values(), key=lambda p: p.number or 0)
            if p.has_number
        ]
        draft = self._master_move(
            master,
            MoveType.QUIZ_FINISHED,
            "The quiz is over!",
            {"finalScores": [score.to_record() for score in scores]},
        )
        await self.move_log.append_move(session_id, draft)
        return scores

    def _quiz_master(self, session: GameSession, player_id: str) -> Player:
        if session.status is not SessionStatus.ACTIVE:
            raise InvalidStatusTransitionError(
                f"Session is '{session.status.value}', not active", session_id=session.id
            )
        if player_id != session.creator_id:
            raise NotYourTurnError("Only the quiz master runs the questions", session_id=session.id)
        master = session.players.get(player_id)
        if master is None:
            raise PlayerNotInSessionError(f"Player '{player_id}' is not playing in this session", session_id=session.id)
        return master

    def _question_moves(self, session: GameSession, move_type: MoveType, question_id: str) -> List[Move]:
        def _question_of(move: Move) -> Optional[str]:
            if move.type is MoveType.QUESTION_START:
                return str((move.payload.get("questionData") or {}).get("id"))
            return move.payload.get("questionId")

        return [m for m in session.ordered_moves() if m.type is move_type and _question_of(m) == question_id]

    def _master_move(self, master: Player, move_type: MoveType, description: str, payload: Dict[str, Any]) -> MoveDraft:
        return MoveDraft(
            player_id=master.id,
            player_name=master.name,
            player_number=master.number,
            type=move_type,
            description=description,
            payload=payload,
        )
