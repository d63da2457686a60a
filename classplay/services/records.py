# classplay/services/records.py
"""Store layout for game sessions and the shared point-read helper."""
import logging

from classplay.core.errors import SessionNotFoundError, ValidationError, store_operation
from classplay.models.game import GameSession
from classplay.store.base import RealtimeStore
from classplay.store.tree import split_path

logger = logging.getLogger("classplay.services.records")

SESSIONS_ROOT = "sessions"


def session_path(session_id: str) -> str:
    return f"{SESSIONS_ROOT}/{session_id}"


def player_path(session_id: str, player_id: str) -> str:
    return f"{SESSIONS_ROOT}/{session_id}/players/{player_id}"


def turn_path(session_id: str) -> str:
    return f"{SESSIONS_ROOT}/{session_id}/currentTurn"


def moves_path(session_id: str) -> str:
    return f"{SESSIONS_ROOT}/{session_id}/moves"


def check_key(value: str, what: str) -> str:
    """Ids end up as single path segments; reject anything that would not."""
    if not isinstance(value, str) or len(split_path(value)) != 1 or value != value.strip("/"):
        raise ValidationError(f"Invalid {what}: {value!r}", field=what)
    return value


async def load_session(store: RealtimeStore, session_id: str, operation: str = "read_session") -> GameSession:
    check_key(session_id, "session_id")
    with store_operation(operation):
        record = await store.read(session_path(session_id))
    if not record:
        logger.warning(f"S:{session_id} - Session not found during '{operation}'.")
        raise SessionNotFoundError(session_id)
    return GameSession.from_record(session_id, record)
