# classplay/core/errors.py
import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

logger = logging.getLogger("classplay.core.errors")


class GameError(Exception):
    """Base class for every failure the game core raises on purpose."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> Dict[str, Any]:
        return {"error": type(self).__name__, "message": self.message, **self.context}


class ValidationError(GameError):
    """Bad input from the caller, e.g. a non-positive max_players."""


class InvalidPathError(ValidationError):
    pass


class InvalidStatusTransitionError(ValidationError):
    pass


class SessionFinishedError(ValidationError):
    pass


class NotYourTurnError(ValidationError):
    pass


class PlayerNotInSessionError(ValidationError):
    pass


class SessionNotFoundError(GameError):
    def __init__(self, session_id: str):
        super().__init__(f"Session '{session_id}' not found", session_id=session_id)
        self.session_id = session_id


class SessionFullError(GameError):
    def __init__(self, session_id: str, max_players: int):
        super().__init__(
            f"Session '{session_id}' is full ({max_players} players)",
            session_id=session_id,
            max_players=max_players,
        )
        self.session_id = session_id
        self.max_players = max_players


class InsufficientPlayersError(GameError):
    def __init__(self, session_id: Optional[str], valid_count: int, required: int = 2, what: str = "A turn"):
        super().__init__(
            f"{what} needs at least {required} numbered players, found {valid_count}",
            session_id=session_id,
            valid_count=valid_count,
            required=required,
        )
        self.valid_count = valid_count
        self.required = required


class PartialWriteError(GameError):
    """
    The new turn was published but the move that caused it was not appended.

    Carries everything needed to retry only the missing half: the published
    turn must not be advanced again, only `move` has to be re-appended.
    """

    def __init__(self, session_id: str, turn: Any, move: Any, cause: BaseException):
        super().__init__(
            f"Turn published for session '{session_id}' but the move append failed: {cause}",
            session_id=session_id,
            missing="move",
        )
        self.session_id = session_id
        self.turn = turn
        self.move = move
        self.cause = cause


@contextmanager
def store_operation(name: str) -> Iterator[None]:
    """Tags store failures with the operation that hit them and re-raises them untouched."""
    try:
        yield
    except GameError:
        raise
    except Exception as e:
        e.add_note(f"store operation: {name}")
        logger.error(f"Store operation '{name}' failed: {type(e).__name__}: {e}")
        raise
