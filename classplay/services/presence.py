# classplay/services/presence.py
import bisect
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Union

from classplay.models.game import GameSession, Move
from classplay.services.move_log import MoveLog
from classplay.services.session_service import SessionManager
from classplay.store.base import Unsubscribe

logger = logging.getLogger("classplay.services.presence")  # Logger for this module

# on_change("session", changed_field_names) or on_change("move", move)
ChangeCallback = Callable[[str, Any], Union[None, Awaitable[None]]]


@dataclass
class SessionView:
    """What one client currently knows about a session. `local_state` belongs to the UI alone."""
    session: Optional[GameSession] = None
    removed: bool = False
    moves: List[Move] = field(default_factory=list)
    local_state: Dict[str, Any] = field(default_factory=dict)
    _move_ids: List[str] = field(default_factory=list, repr=False)

    def apply_session(self, session: Optional[GameSession]) -> Set[str]:
        if session is None:
            if self.removed:
                return set()
            self.removed = True
            self.session = None
            return {"removed"}

        self.removed = False
        if self.session is None:
            self.session = session
            return set(GameSession.model_fields)

        changed = {
            name for name in GameSession.model_fields
            if getattr(self.session, name) != getattr(session, name)
        }
        if changed:
            self.session = self.session.model_copy(update={name: getattr(session, name) for name in changed})
        return changed

    def apply_move(self, move: Move) -> bool:
        index = bisect.bisect_left(self._move_ids, move.id)
        if index < len(self._move_ids) and self._move_ids[index] == move.id:
            return False
        self._move_ids.insert(index, move.id)
        self.moves.insert(index, move)
        return True

    def is_target(self, number: Optional[int]) -> bool:
        turn = self.session.current_turn if self.session else None
        return bool(turn and number is not None and turn.target == number)


class SessionPresence:
    """Keeps a SessionView in sync with one session and its move log."""

    def __init__(
        self,
        session_manager: SessionManager,
        move_log: MoveLog,
        session_id: str,
        view: Optional[SessionView] = None,
        on_change: Optional[ChangeCallback] = None,
    ):
        self.session_manager = session_manager
        self.move_log = move_log
        self.session_id = session_id
        self.view = view or SessionView()
        self.on_change = on_change
        self._unsubscribers: List[Unsubscribe] = []

    @property
    def attached(self) -> bool:
        return bool(self._unsubscribers)

    async def attach(self) -> "SessionPresence":
        if self.attached:
            return self
        try:
            self._unsubscribers.append(await self.session_manager.subscribe_session(self.session_id, self._on_session))
            self._unsubscribers.append(await self.move_log.subscribe_moves(self.session_id, self._on_move))
        except Exception:
            self.detach()
            raise
        logger.debug(f"S:{self.session_id} - Presence attached")
        return self

    def detach(self) -> None:
        if not self._unsubscribers:
            return
        while self._unsubscribers:
            self._unsubscribers.pop()()
        logger.debug(f"S:{self.session_id} - Presence detached")

    async def __aenter__(self) -> "SessionPresence":
        return await self.attach()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.detach()

    async def _on_session(self, session: Optional[GameSession]) -> None:
        changed = self.view.apply_session(session)
        if changed:
            await self._emit("session", changed)

    async def _on_move(self, move: Move) -> None:
        if self.view.apply_move(move):
            await self._emit("move", move)

    async def _emit(self, kind: str, detail: Any) -> None:
        if self.on_change is None:
            return
        result = self.on_change(kind, detail)
        if inspect.isawaitable(result):
            await result
