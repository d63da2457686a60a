# classplay/core/config.py
import pathlib
import logging
from typing import Literal
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache

logger = logging.getLogger("classplay.core.config")  # Logger for this module

BASE_DIR = pathlib.Path(__file__).resolve().parent.parent.parent

class Settings(BaseSettings):
    PROJECT_NAME: str = "Classroom Games Backend"
    API_V1_STR: str = "/api/v1"

    # Which realtime store backs the sessions: "memory" keeps everything in process,
    # "sql" persists the tree into DATABASE_URL through SQLAlchemy.
    STORE_BACKEND: Literal["memory", "sql"] = "memory"
    DATABASE_URL: str = f"sqlite:///{BASE_DIR / 'classplay.db'}"
    # Simulated network hop awaited before every store operation.
    STORE_LATENCY_SECONDS: float = 0.0

    DEFAULT_MAX_PLAYERS: int = 6
    MAX_PLAYERS_LIMIT: int = 30

    # Anti-repetition memory: at least this many recent answers are consulted,
    # or half the players when that is larger.
    RECENT_WINDOW_MIN: int = 2
    # How many old moves a late subscriber receives before live updates.
    MOVE_BACKLOG_LIMIT: int = 100

    # One mafioso for every N players (always at least one).
    MAFIA_PLAYERS_PER_MAFIOSO: int = 4
    # Fewest numbered players a mafia game can start with.
    MAFIA_MIN_PLAYERS: int = 3

    SYSTEM_PLAYER_ID: str = "system"
    SYSTEM_PLAYER_NAME: str = "System"

    LOG_DIR: pathlib.Path = BASE_DIR / "logs"
    ALERTS_TO_DATABASE: bool = True

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

@lru_cache()
def get_settings():
    settings_instance = Settings()
    settings_instance.LOG_DIR.mkdir(parents=True, exist_ok=True)
    logger.info(f"Store backend: {settings_instance.STORE_BACKEND}, log directory: {settings_instance.LOG_DIR}")
    return settings_instance

settings = get_settings()
