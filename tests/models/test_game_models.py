# tests/models/test_game_models.py
import pytest

from classplay.models.enums import GameType, MoveType, SessionStatus
from classplay.models.game import GameSession, Player, Turn

RAW_SESSION = {
    "classId": "class-1",
    "creatorId": "p1",
    "gameType": "truth_or_dare",
    "status": "active",
    "maxPlayers": 4,
    "nextPlayerNumber": 4,
    "players": {
        "p1": {"name": "Ana", "number": 1},
        "p2": {"name": "Ben", "number": 3},
        "ghost": {"name": "Old record", "number": 0},
    },
    "moves": {
        "-b": {"playerId": "p2", "playerName": "Ben", "playerNumber": 3, "type": "answer", "description": "x"},
        "-a": {"playerId": "p1", "playerName": "Ana", "playerNumber": 1, "type": "answer", "description": "y"},
    },
    "currentTurn": {"asker": 1, "target": 3, "choice": "dare"},
}


def test_from_record_injects_ids_and_parses_camel_case():
    session = GameSession.from_record("s1", RAW_SESSION)

    assert session.id == "s1"
    assert session.game_type is GameType.TRUTH_OR_DARE
    assert session.status is SessionStatus.ACTIVE
    assert session.players["p2"].id == "p2"
    assert session.current_turn.choice.value == "dare"
    assert [m.id for m in session.ordered_moves()] == ["-a", "-b"]
    assert session.ordered_moves()[0].type is MoveType.ANSWER


@pytest.mark.parametrize("stored", [0, -2, None, False])
def test_zero_or_missing_numbers_are_unassigned(stored):
    player = Player(id="p", name="P", number=stored)
    assert player.number is None
    assert not player.has_number


def test_lookups_skip_unassigned_players():
    session = GameSession.from_record("s1", RAW_SESSION)

    assert session.valid_numbers() == [1, 3]
    assert session.player_by_number(3).id == "p2"
    assert session.player_by_number(2) is None
    assert session.player_number("ghost") is None
    assert session.player_number("nobody") is None
    assert session.claim_number() == 4
    assert not session.is_full


def test_fresh_turn_clears_everything_but_the_pair():
    record = Turn.fresh(2, 5).to_record()
    assert record == {"asker": 2, "target": 5, "choice": None, "question": None, "answer": None}


def test_status_only_moves_forward():
    assert SessionStatus.WAITING.can_transition_to(SessionStatus.ACTIVE)
    assert SessionStatus.WAITING.can_transition_to(SessionStatus.FINISHED)
    assert not SessionStatus.FINISHED.can_transition_to(SessionStatus.ACTIVE)
    assert not SessionStatus.ACTIVE.can_transition_to(SessionStatus.ACTIVE)
