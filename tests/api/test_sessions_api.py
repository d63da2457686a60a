# tests/api/test_sessions_api.py
from fastapi.testclient import TestClient

from classplay.core.config import settings

API = settings.API_V1_STR


# --- Helpers ---
def _create(client: TestClient, game_type="truth_or_dare", max_players=None, class_id="class-1") -> str:
    body = {"class_id": class_id, "creator_id": "p1", "creator_name": "Player 1", "game_type": game_type}
    if max_players is not None:
        body["max_players"] = max_players
    response = client.post(f"{API}/sessions", json=body)
    assert response.status_code == 201, response.text
    return response.json()["session_id"]

def _join(client: TestClient, session_id: str, player_id: str):
    return client.post(f"{API}/sessions/{session_id}/join", json={"player_id": player_id, "player_name": player_id.upper()})

def _started(client: TestClient, players: int = 3, game_type="truth_or_dare") -> tuple[str, dict]:
    session_id = _create(client, game_type=game_type)
    for i in range(2, players + 1):
        assert _join(client, session_id, f"p{i}").status_code == 200
    response = client.post(f"{API}/sessions/{session_id}/start")
    assert response.status_code == 200, response.text
    return session_id, response.json()

def _id_for(session: dict, number: int) -> str:
    return next(pid for pid, p in session["players"].items() if p["number"] == number)
# -----------------------------------------------


def test_health_check(client: TestClient):
    response = client.get(f"{API}/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_create_get_and_list_sessions(client: TestClient):
    session_id = _create(client, game_type="quiz", max_players=4)
    _create(client, class_id="class-2")

    response = client.get(f"{API}/sessions/{session_id}")
    assert response.status_code == 200
    data = response.json()
    assert data["id"] == session_id
    assert data["status"] == "waiting"
    assert data["maxPlayers"] == 4
    assert data["players"]["p1"]["number"] == 1

    listed = client.get(f"{API}/sessions", params={"class_id": "class-1"}).json()
    assert [s["id"] for s in listed] == [session_id]


def test_create_session_validation(client: TestClient):
    base = {"class_id": "class-1", "creator_id": "p1", "creator_name": "Player 1", "game_type": "quiz"}
    assert client.post(f"{API}/sessions", json={**base, "max_players": 0}).status_code == 422
    assert client.post(f"{API}/sessions", json={**base, "max_players": 500}).status_code == 422
    assert client.post(f"{API}/sessions", json={**base, "game_type": "chess"}).status_code == 422


def test_join_until_full(client: TestClient):
    session_id = _create(client, max_players=2)

    joined = _join(client, session_id, "p2")
    assert joined.status_code == 200
    assert joined.json()["number"] == 2

    full = _join(client, session_id, "p3")
    assert full.status_code == 409
    assert full.json()["error"] == "SessionFullError"
    assert full.json()["max_players"] == 2

    assert _join(client, session_id, "p2").json()["number"] == 2


def test_unknown_session_is_404(client: TestClient):
    assert client.get(f"{API}/sessions/-NoSuchSession000000").status_code == 404
    assert _join(client, "-NoSuchSession000000", "p2").status_code == 404
    assert client.get(f"{API}/sessions/-NoSuchSession000000/moves").status_code == 404


def test_lifecycle_conflicts(client: TestClient):
    lonely = _create(client)
    response = client.post(f"{API}/sessions/{lonely}/start")
    assert response.status_code == 409
    assert response.json()["error"] == "InsufficientPlayersError"

    session_id, _ = _started(client, players=2)
    assert client.post(f"{API}/sessions/{session_id}/start").status_code == 409
    cancelled = client.post(f"{API}/sessions/{session_id}/cancel")
    assert cancelled.json()["endReason"] == "cancelled"
    assert client.post(f"{API}/sessions/{session_id}/finish").status_code == 409

    assert client.delete(f"{API}/sessions/{session_id}").status_code == 204
    assert client.get(f"{API}/sessions/{session_id}").status_code == 404


def test_truth_or_dare_round_over_http(client: TestClient):
    session_id, session = _started(client, players=3)
    turn = session["currentTurn"]
    asker = _id_for(session, turn["asker"])
    target = _id_for(session, turn["target"])
    turn_url = f"{API}/sessions/{session_id}/turn"

    wrong = client.post(f"{turn_url}/choice", json={"player_id": asker, "choice": "truth"})
    assert wrong.status_code == 422
    assert wrong.json()["error"] == "NotYourTurnError"

    assert client.post(f"{turn_url}/choice", json={"player_id": target, "choice": "truth"}).json()["choice"] == "truth"
    assert client.post(f"{turn_url}/question", json={"player_id": asker, "question": "Best book?"}).status_code == 200
    answered = client.post(f"{turn_url}/answer", json={"player_id": target, "answer": "Dune"})
    assert answered.status_code == 200
    next_turn = answered.json()
    assert next_turn["asker"] != next_turn["target"]
    assert next_turn["choice"] is None

    stranger = client.post(f"{turn_url}/answer", json={"player_id": "nobody", "answer": "x"})
    assert stranger.status_code == 404

    moves = client.get(f"{API}/sessions/{session_id}/moves").json()
    assert [m["type"] for m in moves] == ["system", "choice", "question", "answer"]
    assert moves[-1]["payload"] == {"answer": "Dune"}
    assert client.get(f"{API}/sessions/{session_id}/moves", params={"limit": 1}).json() == moves[-1:]


def test_partial_write_then_retry(client: TestClient, mocker):
    session_id, session = _started(client, players=3)
    turn = session["currentTurn"]
    target = _id_for(session, turn["target"])
    asker = _id_for(session, turn["asker"])
    turn_url = f"{API}/sessions/{session_id}/turn"
    client.post(f"{turn_url}/choice", json={"player_id": target, "choice": "dare"})
    client.post(f"{turn_url}/question", json={"player_id": asker, "question": "Do ten jumps"})

    mocker.patch("classplay.services.move_log.MoveLog.append_move", side_effect=ConnectionError("offline"))
    failed = client.post(f"{turn_url}/answer", json={"player_id": target, "answer": "Done"})
    mocker.stopall()

    assert failed.status_code == 502
    body = failed.json()
    assert body["error"] == "PartialWriteError"
    published = client.get(f"{API}/sessions/{session_id}").json()["currentTurn"]
    assert published["asker"] == body["turn"]["asker"]
    assert published["target"] == body["turn"]["target"]

    retried = client.post(f"{turn_url}/retry-move", json={"move": body["move"]})
    assert retried.status_code == 200
    moves = client.get(f"{API}/sessions/{session_id}/moves").json()
    assert moves[-1]["id"] == retried.json()["move_id"]
    assert moves[-1]["payload"] == {"answer": "Done"}
    assert client.get(f"{API}/sessions/{session_id}").json()["currentTurn"] == published


def test_mafia_and_quiz_endpoints(client: TestClient):
    mafia_id, mafia_session = _started(client, players=4, game_type="mafia")
    roles = {pid: p["role"] for pid, p in mafia_session["players"].items()}
    assert sorted(roles.values()) == ["civilian", "detective", "doctor", "mafia"]
    civilian = next(pid for pid, role in roles.items() if role == "civilian")
    mafioso = next(pid for pid, role in roles.items() if role == "mafia")
    mafioso_number = mafia_session["players"][mafioso]["number"]

    vote = client.post(
        f"{API}/sessions/{mafia_id}/mafia/vote",
        json={"player_id": civilian, "target_number": mafioso_number, "phase": "day"},
    )
    assert vote.status_code == 200
    eliminated = client.post(f"{API}/sessions/{mafia_id}/mafia/eliminate", json={"player_number": mafioso_number})
    assert eliminated.json()["isAlive"] is False

    quiz_id, _ = _started(client, players=2, game_type="quiz")
    scored = client.post(
        f"{API}/sessions/{quiz_id}/quiz/answer",
        json={"player_id": "p2", "question_id": "q1", "answer": "42", "is_correct": True},
    )
    assert scored.json() == {"score": 1}


def test_mafia_day_tally_and_phase_endpoints(client: TestClient):
    session_id, session = _started(client, players=4, game_type="mafia")
    roles = {pid: p["role"] for pid, p in session["players"].items()}
    mafioso = next(pid for pid, role in roles.items() if role == "mafia")
    mafioso_number = session["players"][mafioso]["number"]

    tally_at_night = client.post(f"{API}/sessions/{session_id}/mafia/tally")
    assert tally_at_night.status_code == 422

    day = client.post(f"{API}/sessions/{session_id}/mafia/phase", json={"phase": "day"})
    assert day.status_code == 200, day.text
    assert day.json() == {"phase": "day", "round": 2}

    for voter in (pid for pid in roles if pid != mafioso):
        response = client.post(
            f"{API}/sessions/{session_id}/mafia/vote",
            json={"player_id": voter, "target_number": mafioso_number, "phase": "day"},
        )
        assert response.status_code == 200

    tally = client.post(f"{API}/sessions/{session_id}/mafia/tally")
    assert tally.status_code == 200, tally.text
    body = tally.json()
    assert body["eliminatedPlayer"] == mafioso_number
    assert body["voteCount"] == 3
    assert body["round"] == 2

    after = client.get(f"{API}/sessions/{session_id}").json()
    assert after["players"][mafioso]["isAlive"] is False

    redeal = client.post(f"{API}/sessions/{session_id}/mafia/roles")
    assert redeal.status_code == 409
    assert redeal.json()["error"] == "InvalidStatusTransitionError"


def test_mafia_start_needs_three_players(client: TestClient):
    session_id = _create(client, game_type="mafia")
    assert _join(client, session_id, "p2").status_code == 200

    response = client.post(f"{API}/sessions/{session_id}/start")

    assert response.status_code == 409
    assert response.json()["error"] == "InsufficientPlayersError"
    assert response.json()["required"] == 3
    assert client.get(f"{API}/sessions/{session_id}").json()["status"] == "waiting"


def test_quiz_master_endpoints(client: TestClient):
    session_id, _ = _started(client, players=2, game_type="quiz")
    question = {"id": "q1", "question": "6 x 7?", "options": ["42", "36"]}

    started = client.post(f"{API}/sessions/{session_id}/quiz/question", json={"player_id": "p1", "question": question})
    assert started.status_code == 200
    assert "move_id" in started.json()
    not_master = client.post(f"{API}/sessions/{session_id}/quiz/question", json={"player_id": "p2", "question": question})
    assert not_master.status_code == 422

    client.post(
        f"{API}/sessions/{session_id}/quiz/answer",
        json={"player_id": "p2", "question_id": "q1", "answer": "42", "is_correct": True},
    )
    ended = client.post(
        f"{API}/sessions/{session_id}/quiz/question/end",
        json={"player_id": "p1", "question_id": "q1", "correct_answer": 0},
    )
    assert ended.status_code == 200

    finished = client.post(f"{API}/sessions/{session_id}/quiz/finish", json={"player_id": "p1"})
    assert finished.status_code == 200
    assert finished.json() == [
        {"playerNumber": 1, "name": "Player 1", "score": 0},
        {"playerNumber": 2, "name": "P2", "score": 1},
    ]


def test_monitoring_endpoints(client: TestClient, db_session):
    _started(client, players=2)
    _create(client, game_type="quiz")

    live = client.get(f"{API}/monitoring/live").json()
    assert live["active_sessions"] == 2
    assert live["players_in_sessions"] == 3
    assert live["sessions_by_game_type"] == {"truth_or_dare": 1, "quiz": 1}

    alerts = client.get(f"{API}/monitoring/alerts")
    assert alerts.status_code == 200
    assert "alerts" in alerts.json()
