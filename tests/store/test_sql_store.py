# tests/store/test_sql_store.py
import json

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from classplay.core.errors import ValidationError
from classplay.db.base import Base
from classplay.schemas.store_document import StoreDocument
from classplay.store.sql_store import SqlStore


@pytest.fixture
def sql_session_factory():
    # A private database per test: the store commits, so a rollback fixture cannot isolate it.
    engine = create_engine("sqlite:///:memory:", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def sql_store(sql_session_factory, clock) -> SqlStore:
    return SqlStore(session_factory=sql_session_factory, clock=clock)


@pytest.mark.asyncio
async def test_documents_are_rows_with_json_values(sql_store: SqlStore, sql_session_factory):
    await sql_store.write("sessions/s1", {"status": "waiting", "players": {"p1": {"number": 1}}})
    await sql_store.write("sessions/s2/status", "active")

    db = sql_session_factory()
    rows = {(row.collection, row.doc_key): json.loads(row.value_json) for row in db.query(StoreDocument).all()}
    db.close()
    assert rows == {
        ("sessions", "s1"): {"status": "waiting", "players": {"p1": {"number": 1}}},
        ("sessions", "s2"): {"status": "active"},
    }


@pytest.mark.asyncio
async def test_reads_at_every_depth(sql_store: SqlStore):
    await sql_store.write("sessions/s1", {"status": "waiting", "players": {"p1": {"number": 1}}})

    assert await sql_store.read("") == {"sessions": {"s1": {"status": "waiting", "players": {"p1": {"number": 1}}}}}
    assert await sql_store.read("sessions") == {"s1": {"status": "waiting", "players": {"p1": {"number": 1}}}}
    assert await sql_store.read("sessions/s1/players/p1/number") == 1
    assert await sql_store.read("sessions/nope") is None
    assert await sql_store.read("empty") is None


@pytest.mark.asyncio
async def test_nested_update_and_removal(sql_store: SqlStore):
    await sql_store.write("sessions/s1", {"status": "waiting", "players": {"p1": {"number": 1}, "p2": {"number": 2}}})
    await sql_store.update("sessions/s1", {"status": "active", "players/p2": None})
    assert await sql_store.read("sessions/s1") == {"status": "active", "players": {"p1": {"number": 1}}}

    await sql_store.remove("sessions/s1")
    assert await sql_store.read("sessions") is None


@pytest.mark.asyncio
async def test_collection_rewrite_replaces_all_documents(sql_store: SqlStore):
    await sql_store.write("sessions/a", {"n": 1})
    await sql_store.write("sessions/b", {"n": 2})
    await sql_store.write("sessions", {"c": {"n": 3}})
    assert await sql_store.read("sessions") == {"c": {"n": 3}}


@pytest.mark.asyncio
async def test_push_transaction_and_listeners(sql_store: SqlStore):
    seen = []
    await sql_store.subscribe_children("sessions/s1/moves", lambda key, value: seen.append(value["n"]))
    for i in range(3):
        await sql_store.push("sessions/s1/moves", {"n": i})
    assert seen == [0, 1, 2]

    await sql_store.write("counters/c", {"value": 1})
    result = await sql_store.transaction("counters/c", lambda current: {"value": current["value"] + 1})
    assert result == {"value": 2}


@pytest.mark.asyncio
async def test_scalar_at_collection_level_is_rejected_and_rolled_back(sql_store: SqlStore):
    await sql_store.write("sessions/s1", {"status": "waiting"})
    with pytest.raises(ValidationError):
        await sql_store.write("sessions", "not-a-mapping")
    assert await sql_store.read("sessions/s1") == {"status": "waiting"}
