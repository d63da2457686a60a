# classplay/services/turn_service.py
import logging
import random
from typing import Any, Collection, Dict, Iterable, List, Optional, Sequence

from classplay.core.config import Settings, settings as default_settings
from classplay.core.errors import (
    InsufficientPlayersError,
    InvalidStatusTransitionError,
    NotYourTurnError,
    PartialWriteError,
    PlayerNotInSessionError,
    SessionNotFoundError,
    ValidationError,
    store_operation,
)
from classplay.models.enums import MoveType, SessionStatus, TurnChoice
from classplay.models.game import GameSession, Move, MoveDraft, Player, Turn
from classplay.services.move_log import MoveLog
from classplay.services.records import load_session, turn_path
from classplay.store.base import RealtimeStore

logger = logging.getLogger("classplay.services.turn_service")  # Logger for this module


# --- Selection logic (pure) ---

def recent_window_size(valid_count: int, minimum: int = 2) -> int:
    return max(minimum, valid_count // 2)


def recent_participants(
    moves: Iterable[Move],
    valid_count: int,
    move_type: MoveType = MoveType.ANSWER,
    minimum: int = 2,
) -> List[int]:
    """Player numbers behind the latest `move_type` moves, newest first."""
    relevant = [move for move in moves if move.type == move_type]
    relevant.sort(key=lambda move: (move.created_at or 0, move.id), reverse=True)
    window = relevant[:recent_window_size(valid_count, minimum)]
    return [move.player_number for move in window if move.player_number is not None]


def pick_preferring_fresh(candidates: Sequence[int], recent: Collection[int], rng: random.Random) -> int:
    """Uniform pick among candidates not seen recently; uniform over all of them once everyone was."""
    if not candidates:
        raise InsufficientPlayersError(None, 0)
    fresh = [number for number in candidates if number not in recent]
    return rng.choice(fresh or list(candidates))


def select_next_turn(
    valid_numbers: Iterable[int],
    recent_askers: Collection[int] = (),
    recent_targets: Collection[int] = (),
    rng: Optional[random.Random] = None,
    session_id: Optional[str] = None,
) -> Turn:
    numbers = sorted(set(valid_numbers))
    if len(numbers) < 2:
        raise InsufficientPlayersError(session_id, len(numbers))
    rng = rng or random.Random()

    asker = pick_preferring_fresh(numbers, set(recent_askers), rng)
    target_candidates = [number for number in numbers if number != asker]
    target = pick_preferring_fresh(target_candidates, set(recent_targets), rng)
    if target == asker:
        target = rng.choice(target_candidates)
    return Turn.fresh(asker, target)


# --- Coordinator ---

class TurnCoordinator:
    """
    Moves a question-game session from one asker/target pair to the next.

    There is no compare-and-swap on `currentTurn`: when two clients advance
    the same session at once, the last write wins.
    """

    def __init__(
        self,
        store: RealtimeStore,
        move_log: Optional[MoveLog] = None,
        rng: Optional[random.Random] = None,
        settings: Optional[Settings] = None,
    ):
        self.store = store
        self.settings = settings or default_settings
        self.move_log = move_log or MoveLog(store, self.settings)
        self.rng = rng or random.Random()

    async def advance_turn(
        self,
        session_id: str,
        submitting_player: Player,
        move_type: MoveType,
        description: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Turn:
        session = await load_session(self.store, session_id, "advance_turn.read")
        if not session.players:
            raise SessionNotFoundError(session_id)

        valid = session.valid_numbers()
        if len(valid) < 2:
            raise InsufficientPlayersError(session_id, len(valid))

        move_type = MoveType(move_type)
        # Askers and targets share one memory: who produced the latest moves of this type.
        recent = set(recent_participants(session.ordered_moves(), len(valid), move_type, self.settings.RECENT_WINDOW_MIN))
        turn = select_next_turn(valid, recent, recent, self.rng, session_id)

        # Full replacement, never a merge: nothing of the previous turn may leak into this one.
        with store_operation("advance_turn.publish_turn"):
            await self.store.write(turn_path(session_id), turn.to_record())
        logger.info(f"S:{session_id} - New turn: #{turn.asker} asks #{turn.target} (recent: {sorted(recent)})")

        draft = MoveDraft(
            player_id=submitting_player.id,
            player_name=submitting_player.name,
            player_number=submitting_player.number,
            type=move_type,
            description=description,
            payload=payload or {},
        )
        await self._append_after_publish(session_id, turn, draft)
        return turn

    async def retry_move_append(self, error: PartialWriteError) -> str:
        """Appends only the move a PartialWriteError reported missing; the turn stays as published."""
        return await self.append_missing_move(error.session_id, error.move)

    async def append_missing_move(self, session_id: str, draft: MoveDraft) -> str:
        await load_session(self.store, session_id, "append_missing_move.read")
        logger.info(f"S:{session_id} - Re-appending {draft.type.value} move of #{draft.player_number} after a partial write.")
        return await self.move_log.append_move(session_id, draft)

    async def submit_choice(self, session_id: str, player_id: str, choice: str) -> Turn:
        session = await load_session(self.store, session_id, "submit_choice.read")
        player, turn = self._current_turn_for(session, player_id)
        if player.number != turn.target:
            raise NotYourTurnError(f"Only player #{turn.target} can choose now", session_id=session_id)
        if turn.choice is not None:
            raise ValidationError("A choice was already made for this turn", session_id=session_id)
        try:
            choice = TurnChoice(choice)
        except ValueError:
            raise ValidationError(f"Unknown choice '{choice}'", session_id=session_id) from None

        with store_operation("submit_choice.update_turn"):
            await self.store.update(turn_path(session_id), {"choice": choice.value})
        turn = turn.model_copy(update={"choice": choice})
        draft = MoveDraft(
            player_id=player.id,
            player_name=player.name,
            player_number=player.number,
            type=MoveType.CHOICE,
            description=f"Player {player.number} chose {choice.value.capitalize()}",
            payload={"choice": choice.value},
        )
        await self._append_after_publish(session_id, turn, draft)
        return turn

    async def submit_question(self, session_id: str, player_id: str, question: str) -> Turn:
        session = await load_session(self.store, session_id, "submit_question.read")
        player, turn = self._current_turn_for(session, player_id)
        if player.number != turn.asker:
            raise NotYourTurnError(f"Only player #{turn.asker} can ask now", session_id=session_id)
        if turn.choice is None:
            raise ValidationError("Waiting for the target to choose truth or dare", session_id=session_id)
        question = (question or "").strip()
        if not question:
            raise ValidationError("The question must not be empty", session_id=session_id)

        with store_operation("submit_question.update_turn"):
            await self.store.update(turn_path(session_id), {"question": question})
        turn = turn.model_copy(update={"question": question})
        draft = MoveDraft(
            player_id=player.id,
            player_name=player.name,
            player_number=player.number,
            type=MoveType.QUESTION,
            description=f"Player {player.number} asked a question",
            payload={"question": question},
        )
        await self._append_after_publish(session_id, turn, draft)
        return turn

    async def submit_answer(self, session_id: str, player_id: str, answer: str) -> Turn:
        session = await load_session(self.store, session_id, "submit_answer.read")
        player, turn = self._current_turn_for(session, player_id)
        if player.number != turn.target:
            raise NotYourTurnError(f"Only player #{turn.target} can answer now", session_id=session_id)
        if turn.question is None:
            raise ValidationError("There is no question to answer yet", session_id=session_id)
        answer = (answer or "").strip()
        if not answer:
            raise ValidationError("The answer must not be empty", session_id=session_id)
        return await self.advance_turn(
            session_id,
            player,
            MoveType.ANSWER,
            f"Player {player.number} answered",
            {"answer": answer},
        )

    def _current_turn_for(self, session: GameSession, player_id: str) -> tuple[Player, Turn]:
        if session.status is not SessionStatus.ACTIVE:
            raise InvalidStatusTransitionError(
                f"Session is '{session.status.value}', turns only run while it is active", session_id=session.id
            )
        player = session.players.get(player_id)
        if player is None or not player.has_number:
            raise PlayerNotInSessionError(f"Player '{player_id}' is not playing in this session", session_id=session.id)
        if session.current_turn is None:
            raise ValidationError("This session has no current turn", session_id=session.id)
        return player, session.current_turn

    async def _append_after_publish(self, session_id: str, turn: Turn, draft: MoveDraft) -> str:
        try:
            return await self.move_log.append_move(session_id, draft)
        except Exception as e:
            logger.error(f"S:{session_id} - Turn published but move append failed: {type(e).__name__}: {e}")
            raise PartialWriteError(session_id, turn, draft, e) from e
