# classplay/services/move_log.py
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from classplay.core.config import Settings, settings as default_settings
from classplay.core.errors import store_operation
from classplay.models.enums import MoveType
from classplay.models.game import Move, MoveDraft
from classplay.services.records import moves_path
from classplay.store.base import RealtimeStore, Unsubscribe

logger = logging.getLogger("classplay.services.move_log")  # Logger for this module

MoveCallback = Callable[[Move], Union[None, Awaitable[None]]]

class MoveLog:
    """Append-only history of player actions under `sessions/{id}/moves`."""

    def __init__(self, store: RealtimeStore, settings: Optional[Settings] = None):
        self.store = store
        self.settings = settings or default_settings

    def system_move(
        self,
        description: str,
        payload: Optional[Dict[str, Any]] = None,
        move_type: MoveType = MoveType.SYSTEM,
    ) -> MoveDraft:
        return MoveDraft(
            player_id=self.settings.SYSTEM_PLAYER_ID,
            player_name=self.settings.SYSTEM_PLAYER_NAME,
            player_number=None,
            type=move_type,
            description=description,
            payload=payload or {},
        )

    async def append_move(self, session_id: str, draft: MoveDraft) -> str:
        record = draft.to_record()
        record["createdAt"] = self.store.server_timestamp()
        with store_operation("append_move"):
            move_id = await self.store.push(moves_path(session_id), record)
        logger.info(
            f"S:{session_id} - Move {move_id} appended ({draft.type.value}) by '{draft.player_name}' (#{draft.player_number})"
        )
        return move_id

    async def list_moves(self, session_id: str, limit: Optional[int] = None) -> List[Move]:
        with store_operation("list_moves"):
            raw = await self.store.read(moves_path(session_id)) or {}
        moves = [Move.model_validate({**raw[key], "id": key}) for key in sorted(raw)]
        if limit is not None:
            moves = moves[-limit:] if limit > 0 else []
        return moves

    async def subscribe_moves(
        self,
        session_id: str,
        on_append: MoveCallback,
        backlog_limit: Optional[int] = None,
    ) -> Unsubscribe:
        """
        Calls `on_append` once per move in key order: the last `backlog_limit`
        existing moves as a burst, then every new one as it lands.
        """
        limit = self.settings.MOVE_BACKLOG_LIMIT if backlog_limit is None else backlog_limit

        def _on_child(move_id: str, record: Dict[str, Any]):
            return on_append(Move.model_validate({**record, "id": move_id}))

        with store_operation("subscribe_moves"):
            unsubscribe = await self.store.subscribe_children(moves_path(session_id), _on_child, limit_to_last=limit)
        logger.debug(f"S:{session_id} - Move subscription opened (backlog {limit})")
        return unsubscribe
