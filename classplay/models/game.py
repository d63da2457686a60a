# classplay/models/game.py
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import Any, Dict, List, Optional

from classplay.models.enums import GameType, MafiaRole, MoveType, SessionEndReason, SessionStatus, TurnChoice, VotePhase

class StoreRecord(BaseModel):
    """Store records use camelCase keys, Python code uses snake_case attributes."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude={"id"}, exclude_none=True, mode="json")


def _assigned_number(value: Any) -> Optional[int]:
    # Older records use 0 for "no number yet"; that is never a real participant.
    if value is None or isinstance(value, bool):
        return None
    number = int(value)
    return number if number > 0 else None


class Player(StoreRecord):
    id: str
    name: str
    number: Optional[int] = None # None = unassigned
    joined_at: Optional[int] = None
    is_alive: bool = True
    role: Optional[MafiaRole] = None
    score: int = 0

    @field_validator("number", mode="before")
    @classmethod
    def _normalize_number(cls, v: Any) -> Optional[int]:
        return _assigned_number(v)

    @property
    def has_number(self) -> bool:
        return self.number is not None


class Turn(StoreRecord):
    asker: int
    target: int
    choice: Optional[TurnChoice] = None
    question: Optional[str] = None
    answer: Optional[str] = None

    @classmethod
    def fresh(cls, asker: int, target: int) -> "Turn":
        return cls(asker=asker, target=target, choice=None, question=None, answer=None)

    def to_record(self) -> Dict[str, Any]:
        # Full record, nulls included: a published turn always replaces the previous one wholesale.
        return self.model_dump(by_alias=True, mode="json")


class MoveDraft(StoreRecord):
    """A move before the store has given it an id and a timestamp."""
    player_id: str
    player_name: str
    player_number: Optional[int] = None
    type: MoveType
    description: str
    payload: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("player_number", mode="before")
    @classmethod
    def _normalize_player_number(cls, v: Any) -> Optional[int]:
        return _assigned_number(v)


class Move(MoveDraft):
    id: str
    created_at: Optional[int] = None


class GameSession(StoreRecord):
    id: str
    class_id: str
    creator_id: str
    game_type: GameType
    status: SessionStatus = SessionStatus.WAITING
    max_players: int
    players: Dict[str, Player] = Field(default_factory=dict)
    current_turn: Optional[Turn] = None
    moves: Dict[str, Move] = Field(default_factory=dict)
    created_at: Optional[int] = None
    next_player_number: int = 1
    started_at: Optional[int] = None
    finished_at: Optional[int] = None
    end_reason: Optional[SessionEndReason] = None

    @classmethod
    def from_record(cls, session_id: str, record: Dict[str, Any]) -> "GameSession":
        """Builds a session from the raw store subtree; map keys become Player.id / Move.id."""
        data = dict(record)
        data["id"] = session_id
        data["players"] = {pid: {**p, "id": pid} for pid, p in (record.get("players") or {}).items()}
        data["moves"] = {mid: {**m, "id": mid} for mid, m in (record.get("moves") or {}).items()}
        return cls.model_validate(data)

    def to_record(self) -> Dict[str, Any]:
        record = self.model_dump(by_alias=True, exclude={"id", "players", "moves", "current_turn"}, exclude_none=True, mode="json")
        record["players"] = {pid: p.to_record() for pid, p in self.players.items()}
        if self.moves:
            record["moves"] = {mid: m.to_record() for mid, m in self.moves.items()}
        if self.current_turn is not None:
            record["currentTurn"] = self.current_turn.to_record()
        return record

    @property
    def is_full(self) -> bool:
        return len(self.players) >= self.max_players

    def valid_numbers(self) -> List[int]:
        return sorted(p.number for p in self.players.values() if p.number is not None)

    def claim_number(self) -> int:
        """Next unused positive handle; never reuses a number, even after a leave."""
        highest = max(self.valid_numbers(), default=0)
        return max(self.next_player_number, highest + 1)

    def player_by_number(self, number: int) -> Optional[Player]:
        for player in self.players.values():
            if player.number is not None and player.number == number:
                return player
        return None

    def player_number(self, player_id: str) -> Optional[int]:
        player = self.players.get(player_id)
        return player.number if player else None

    def ordered_moves(self) -> List[Move]:
        return [self.moves[key] for key in sorted(self.moves)]


class PhaseChange(StoreRecord):
    phase: VotePhase
    round: int


class VoteTally(StoreRecord):
    """Outcome of a day vote; `eliminated_player` is None when nobody was voted out."""
    round: int
    votes: Dict[int, int] = Field(default_factory=dict)  # voter number -> target number
    eliminated_player: Optional[int] = None
    vote_count: int = 0


class QuizScore(StoreRecord):
    player_number: int
    name: str
    score: int
