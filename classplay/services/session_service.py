# classplay/services/session_service.py
import logging
import random
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from classplay.core.config import Settings, settings as default_settings
from classplay.core.errors import (
    InvalidStatusTransitionError,
    SessionFinishedError,
    SessionFullError,
    SessionNotFoundError,
    ValidationError,
    store_operation,
)
from classplay.models.enums import GameType, MoveType, SessionEndReason, SessionStatus
from classplay.models.game import GameSession, Player
from classplay.services.mafia_service import MafiaService
from classplay.services.move_log import MoveLog
from classplay.services.records import (
    SESSIONS_ROOT,
    check_key,
    load_session,
    player_path,
    session_path,
    turn_path,
)
from classplay.services.turn_service import recent_participants, select_next_turn
from classplay.store.base import RealtimeStore, Unsubscribe

logger = logging.getLogger("classplay.services.session_service")  # Logger for this module

SessionsCallback = Callable[[List[GameSession]], Union[None, Awaitable[None]]]
SessionCallback = Callable[[Optional[GameSession]], Union[None, Awaitable[None]]]


def _clean_name(name: str, what: str) -> str:
    cleaned = (name or "").strip() if isinstance(name, str) else ""
    if not cleaned:
        raise ValidationError(f"{what} must not be empty", field=what)
    return cleaned


class SessionManager:
    """Creates game sessions and moves them through their lifecycle."""

    def __init__(
        self,
        store: RealtimeStore,
        settings: Optional[Settings] = None,
        rng: Optional[random.Random] = None,
        move_log: Optional[MoveLog] = None,
        mafia: Optional[MafiaService] = None,
    ):
        self.store = store
        self.settings = settings or default_settings
        self.rng = rng or random.Random()
        self.move_log = move_log or MoveLog(store, self.settings)
        self.mafia = mafia or MafiaService(store, self.move_log, self.rng, self.settings)

    # --- Creation and membership ---

    async def create_session(
        self,
        class_id: str,
        creator_id: str,
        creator_name: str,
        game_type: Union[GameType, str],
        max_players: Optional[int] = None,
    ) -> str:
        check_key(class_id, "class_id")
        check_key(creator_id, "creator_id")
        creator_name = _clean_name(creator_name, "creator_name")
        try:
            game_type = GameType(game_type)
        except ValueError:
            raise ValidationError(f"Unknown game type '{game_type}'", field="game_type") from None

        if max_players is None:
            max_players = self.settings.DEFAULT_MAX_PLAYERS
        if isinstance(max_players, bool) or not isinstance(max_players, int) or max_players < 1:
            raise ValidationError(f"max_players must be a positive integer, got {max_players!r}", field="max_players")
        if max_players > self.settings.MAX_PLAYERS_LIMIT:
            raise ValidationError(
                f"max_players must not exceed {self.settings.MAX_PLAYERS_LIMIT}, got {max_players}",
                field="max_players",
            )

        with store_operation("create_session.push_key"):
            session_id = await self.store.push(SESSIONS_ROOT)

        now = self.store.server_timestamp()
        creator = Player(id=creator_id, name=creator_name, number=1).to_record()
        creator["joinedAt"] = now
        record = {
            "classId": class_id,
            "creatorId": creator_id,
            "gameType": game_type.value,
            "status": SessionStatus.WAITING.value,
            "maxPlayers": max_players,
            "createdAt": now,
            "nextPlayerNumber": 2,
            "players": {creator_id: creator},
        }
        with store_operation("create_session.write"):
            await self.store.write(session_path(session_id), record)

        logger.info(
            f"S:{session_id} - Created {game_type.value} session for class '{class_id}' by '{creator_id}' (max {max_players})"
        )
        return session_id

    async def join_session(self, session_id: str, player_id: str, player_name: str) -> Player:
        check_key(session_id, "session_id")
        check_key(player_id, "player_id")
        player_name = _clean_name(player_name, "player_name")
        outcome: Dict[str, Any] = {}

        def _join(current: Optional[Dict[str, Any]]) -> Dict[str, Any]:
            if not current:
                raise SessionNotFoundError(session_id)
            session = GameSession.from_record(session_id, current)
            if player_id in session.players:
                outcome["rejoined"] = True
                return current
            if session.status is SessionStatus.FINISHED:
                raise SessionFinishedError(f"Session '{session_id}' has already finished", session_id=session_id)
            if session.is_full:
                raise SessionFullError(session_id, session.max_players)

            number = session.claim_number()
            record = Player(id=player_id, name=player_name, number=number).to_record()
            record["joinedAt"] = self.store.server_timestamp()
            current.setdefault("players", {})[player_id] = record
            current["nextPlayerNumber"] = number + 1
            return current

        with store_operation("join_session.transaction"):
            result = await self.store.transaction(session_path(session_id), _join)

        player = Player.model_validate({**result["players"][player_id], "id": player_id})
        if outcome.get("rejoined"):
            logger.debug(f"S:{session_id} - '{player_id}' re-joined as #{player.number}")
        else:
            logger.info(f"S:{session_id} - '{player_id}' joined as #{player.number}")
        return player

    async def leave_session(self, session_id: str, player_id: str) -> None:
        session = await load_session(self.store, session_id, "leave_session.read")
        player = session.players.get(player_id)
        if player is None:
            logger.debug(f"S:{session_id} - Leave ignored, '{player_id}' is not in the session.")
            return

        with store_operation("leave_session.remove_player"):
            await self.store.remove(player_path(session_id, player_id))
        logger.info(f"S:{session_id} - '{player_id}' (#{player.number}) left")

        turn = session.current_turn
        if (
            session.status is SessionStatus.ACTIVE
            and turn is not None
            and player.has_number
            and player.number in (turn.asker, turn.target)
        ):
            await self._replace_orphaned_turn(session, player)

    async def _replace_orphaned_turn(self, session: GameSession, departed: Player) -> None:
        remaining = [number for number in session.valid_numbers() if number != departed.number]
        if len(remaining) < 2:
            logger.warning(
                f"S:{session.id} - #{departed.number} left mid-turn and only {len(remaining)} numbered players remain."
            )
            return
        recent = set(recent_participants(
            session.ordered_moves(), len(remaining), MoveType.ANSWER, self.settings.RECENT_WINDOW_MIN
        ))
        turn = select_next_turn(remaining, recent, recent, self.rng, session.id)
        with store_operation("leave_session.publish_turn"):
            await self.store.write(turn_path(session.id), turn.to_record())
        await self.move_log.append_move(
            session.id,
            self.move_log.system_move(
                f"Player {departed.number} left, the turn moves on",
                {"leftPlayer": departed.number, "asker": turn.asker, "target": turn.target},
            ),
        )

    # --- Lifecycle ---

    async def start_session(self, session_id: str) -> GameSession:
        session = await load_session(self.store, session_id, "start_session.read")
        self._check_transition(session, SessionStatus.ACTIVE)

        updates: Dict[str, Any] = {
            "status": SessionStatus.ACTIVE.value,
            "startedAt": self.store.server_timestamp(),
        }
        assignment = None
        if session.game_type.has_turns:
            turn = select_next_turn(session.valid_numbers(), rng=self.rng, session_id=session_id)
            updates["currentTurn"] = turn.to_record()
        elif session.game_type is GameType.MAFIA:
            assignment, role_updates = self.mafia.deal_roles(session)
            updates.update(role_updates)

        # Status and roles share one commit.
        with store_operation("start_session.update"):
            await self.store.update(session_path(session_id), updates)

        if assignment is not None:
            await self.mafia.announce_roles(session_id, assignment)

        await self.move_log.append_move(
            session_id,
            self.move_log.system_move(
                f"{session.game_type.display_name} started with {len(session.players)} players",
                {"gameType": session.game_type.value},
            ),
        )
        logger.info(f"S:{session_id} - Started ({session.game_type.value}, {len(session.players)} players)")
        return await self.get_session(session_id)

    async def finish_session(self, session_id: str) -> GameSession:
        return await self._finish(session_id, SessionEndReason.COMPLETED, "The game is over")

    async def cancel_session(self, session_id: str) -> GameSession:
        return await self._finish(session_id, SessionEndReason.CANCELLED, "The game was cancelled")

    async def _finish(self, session_id: str, reason: SessionEndReason, description: str) -> GameSession:
        session = await load_session(self.store, session_id, f"{reason.value}.read")
        self._check_transition(session, SessionStatus.FINISHED)
        with store_operation(f"{reason.value}.update"):
            await self.store.update(
                session_path(session_id),
                {
                    "status": SessionStatus.FINISHED.value,
                    "finishedAt": self.store.server_timestamp(),
                    "endReason": reason.value,
                },
            )
        await self.move_log.append_move(
            session_id,
            self.move_log.system_move(description, {"endReason": reason.value}),
        )
        logger.info(f"S:{session_id} - Finished ({reason.value})")
        return await self.get_session(session_id)

    async def delete_session(self, session_id: str) -> None:
        await load_session(self.store, session_id, "delete_session.read")
        with store_operation("delete_session.remove"):
            await self.store.remove(session_path(session_id))
        logger.info(f"S:{session_id} - Deleted")

    def _check_transition(self, session: GameSession, target: SessionStatus) -> None:
        if not session.status.can_transition_to(target):
            raise InvalidStatusTransitionError(
                f"Cannot move session from '{session.status.value}' to '{target.value}'",
                session_id=session.id,
                status=session.status.value,
                target=target.value,
            )

    # --- Reads and subscriptions ---

    async def get_session(self, session_id: str) -> GameSession:
        return await load_session(self.store, session_id, "get_session")

    async def list_active_sessions(self, class_id: str) -> List[GameSession]:
        check_key(class_id, "class_id")
        with store_operation("list_active_sessions"):
            raw = await self.store.read(SESSIONS_ROOT)
        return self._active_for_class(raw, class_id)

    async def subscribe_active_sessions(self, class_id: str, on_update: SessionsCallback) -> Unsubscribe:
        check_key(class_id, "class_id")

        def _on_sessions(raw: Any):
            return on_update(self._active_for_class(raw, class_id))

        with store_operation("subscribe_active_sessions"):
            return await self.store.subscribe(SESSIONS_ROOT, _on_sessions)

    async def subscribe_session(self, session_id: str, on_update: SessionCallback) -> Unsubscribe:
        check_key(session_id, "session_id")

        def _on_session(raw: Any):
            return on_update(GameSession.from_record(session_id, raw) if raw else None)

        with store_operation("subscribe_session"):
            return await self.store.subscribe(session_path(session_id), _on_session)

    def _active_for_class(self, raw: Any, class_id: str) -> List[GameSession]:
        sessions: List[GameSession] = []
        for session_id, record in (raw or {}).items():
            if not isinstance(record, dict) or record.get("classId") != class_id:
                continue
            try:
                session = GameSession.from_record(session_id, record)
            except PydanticValidationError as e:
                logger.warning(f"S:{session_id} - Skipping malformed session record: {e.error_count()} errors")
                continue
            if session.status is not SessionStatus.FINISHED:
                sessions.append(session)
        sessions.sort(key=lambda s: (s.created_at or 0, s.id), reverse=True)
        return sessions
