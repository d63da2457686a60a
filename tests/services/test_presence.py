# tests/services/test_presence.py
import pytest

from classplay.models.enums import GameType, MoveType, SessionStatus
from classplay.models.game import GameSession, Move
from classplay.services.presence import SessionPresence, SessionView


def _session(**overrides) -> GameSession:
    data = dict(id="s1", class_id="c1", creator_id="p1", game_type=GameType.QUIZ, max_players=4, created_at=1)
    data.update(overrides)
    return GameSession(**data)


def _move(move_id: str) -> Move:
    return Move(id=move_id, player_id="p1", player_name="P1", player_number=1, type=MoveType.ANSWER, description="x")


def test_apply_session_reports_changed_fields_and_keeps_local_state():
    view = SessionView(local_state={"draft_answer": "half typed"})

    assert "status" in view.apply_session(_session())
    assert view.apply_session(_session()) == set()
    assert view.apply_session(_session(status=SessionStatus.ACTIVE, max_players=5)) == {"status", "max_players"}
    assert view.session.status is SessionStatus.ACTIVE

    assert view.apply_session(None) == {"removed"}
    assert view.removed and view.session is None
    assert view.apply_session(None) == set()
    assert view.local_state == {"draft_answer": "half typed"}


def test_apply_move_orders_by_key_and_dedupes():
    view = SessionView()
    assert view.apply_move(_move("-b"))
    assert view.apply_move(_move("-a"))
    assert not view.apply_move(_move("-b"))
    assert view.apply_move(_move("-c"))
    assert [m.id for m in view.moves] == ["-a", "-b", "-c"]


@pytest.mark.asyncio
async def test_presence_follows_session_and_moves(manager, move_log, seed_session):
    session_id, _ = await seed_session(players=2)
    events = []

    async def on_change(kind, detail):
        events.append(kind)

    async with SessionPresence(manager, move_log, session_id, on_change=on_change) as presence:
        assert presence.view.session.id == session_id
        assert presence.view.moves == []

        await manager.start_session(session_id)
        assert presence.view.session.status is SessionStatus.ACTIVE
        assert presence.view.is_target(presence.view.session.current_turn.target)
        assert [m.type for m in presence.view.moves] == [MoveType.SYSTEM]

    assert not presence.attached
    assert "session" in events and "move" in events

    await manager.finish_session(session_id)
    assert presence.view.session.status is SessionStatus.ACTIVE


@pytest.mark.asyncio
async def test_presence_detach_is_idempotent_and_releases_listeners(manager, move_log, store, seed_session):
    session_id, _ = await seed_session(players=2)
    before = store.listener_count
    presence = SessionPresence(manager, move_log, session_id)

    await presence.attach()
    await presence.attach()
    assert store.listener_count == before + 2

    presence.detach()
    presence.detach()
    assert store.listener_count == before


@pytest.mark.asyncio
async def test_presence_marks_removed_sessions(manager, move_log, seed_session):
    session_id, _ = await seed_session(players=2)
    presence = await SessionPresence(manager, move_log, session_id).attach()

    await manager.delete_session(session_id)

    assert presence.view.removed
    assert presence.view.session is None
    presence.detach()
