"""Shared fixtures."""

import pytest

from detective.services.session_store import SessionStore

from fakes import InMemoryAirtable


@pytest.fixture
async def session_store(tmp_path):
    store = SessionStore(db_path=str(tmp_path / "sessions.db"), ttl_seconds=3600)
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
def airtable():
    return InMemoryAirtable()
