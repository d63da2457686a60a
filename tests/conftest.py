# tests/conftest.py
import logging
import os
import random
import tempfile

# Must be set before classplay.core.config is imported anywhere.
os.environ.setdefault("ALERTS_TO_DATABASE", "false")
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="classplay-test-logs-"))

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from classplay.main import app
from classplay.db.base import Base
from classplay.api import deps
from classplay.api.websockets import connection_manager
from classplay.core.config import Settings
from classplay.models.enums import GameType
from classplay.services.move_log import MoveLog
from classplay.services.session_service import SessionManager
from classplay.services.turn_service import TurnCoordinator
from classplay.store.memory_store import InMemoryStore

SQLALCHEMY_DATABASE_URL_TEST = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL_TEST,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

@pytest.fixture(scope="session", autouse=True)
def setup_test_db():
    """Create tables once for the entire test session."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)

def override_get_db():
    """Dependency override for test database sessions."""
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()

app.dependency_overrides[deps.get_db] = override_get_db

@pytest.fixture(scope="function")
def db_session():
    """
    Provides a clean, isolated database session for each test function
    by using transactions and rollbacks.
    """
    connection = engine.connect()
    transaction = connection.begin()
    session = TestingSessionLocal(bind=connection)
    yield session
    session.close()
    transaction.rollback()
    connection.close()

class FakeClock:
    """Millisecond clock that moves forward by `step` on every reading."""
    def __init__(self, start: int = 1_700_000_000_000, step: int = 1):
        self.now = start
        self.step = step

    def __call__(self) -> int:
        self.now += self.step
        return self.now

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()

@pytest.fixture
def test_settings() -> Settings:
    return Settings(ALERTS_TO_DATABASE=False)

@pytest.fixture
def store(clock) -> InMemoryStore:
    return InMemoryStore(clock=clock, rng=random.Random(1))

@pytest.fixture
def move_log(store, test_settings) -> MoveLog:
    return MoveLog(store, test_settings)

@pytest.fixture
def manager(store, test_settings, move_log) -> SessionManager:
    return SessionManager(store, test_settings, rng=random.Random(7), move_log=move_log)

@pytest.fixture
def turns(store, move_log, test_settings) -> TurnCoordinator:
    return TurnCoordinator(store, move_log, rng=random.Random(11), settings=test_settings)

@pytest.fixture
def seed_session(manager):
    """
    Async factory: creates a session with `players` members (creator included)
    and optionally starts it. Returns (session_id, [player ids in join order]).
    """
    async def _seed(players: int = 3, game_type: GameType = GameType.TRUTH_OR_DARE, start: bool = False, max_players=None):
        session_id = await manager.create_session("class-1", "p1", "Player 1", game_type, max_players)
        player_ids = ["p1"]
        for i in range(2, players + 1):
            await manager.join_session(session_id, f"p{i}", f"Player {i}")
            player_ids.append(f"p{i}")
        if start:
            await manager.start_session(session_id)
        return session_id, player_ids
    return _seed

@pytest.fixture(scope="function")
def client(store) -> TestClient:
    """Provides a TestClient whose realtime store is the test's fresh in-memory store."""
    app.dependency_overrides[deps.get_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.pop(deps.get_store, None)

@pytest.fixture(autouse=True)
def reset_in_memory_state():
    """Clears in-memory state before each test."""
    connection_manager.active_connections.clear()
    yield

def pytest_configure(config):
    """
    Hook to configure logging levels before tests are run.
    This silences noisy third-party libraries.
    """
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
