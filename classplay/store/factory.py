# classplay/store/factory.py
import logging

from classplay.core.config import Settings
from classplay.store.base import RealtimeStore
from classplay.store.memory_store import InMemoryStore

logger = logging.getLogger("classplay.store.factory")


def build_store(settings: Settings) -> RealtimeStore:
    if settings.STORE_BACKEND == "sql":
        from classplay.store.sql_store import SqlStore
        logger.info("Using the SQL-backed realtime store.")
        return SqlStore(latency=settings.STORE_LATENCY_SECONDS)
    logger.info("Using the in-memory realtime store.")
    return InMemoryStore(latency=settings.STORE_LATENCY_SECONDS)
