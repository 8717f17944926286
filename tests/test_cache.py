from datetime import timezone

import pytest

from repbook.db import get_engine_url, init_db, make_engine, make_session_factory
from repbook.models import CacheEntry, Exercise
from repbook.services.cache import EXERCISES_KEY, LocalCache, dump_exercises, exercises_key, parse_exercises


def test_engine_url_uses_aiosqlite():
    assert get_engine_url("sqlite:///./x.db") == "sqlite+aiosqlite:///./x.db"
    assert get_engine_url("sqlite+aiosqlite:///./x.db") == "sqlite+aiosqlite:///./x.db"


@pytest.mark.asyncio
async def test_cache_overwrites_and_survives_restart(tmp_path):
    url = f"sqlite:///{tmp_path / 'cache.db'}"
    engine = make_engine(url)
    await init_db(engine)
    cache = LocalCache(make_session_factory(engine))

    assert await cache.get(EXERCISES_KEY) is None
    await cache.set(EXERCISES_KEY, "[1]")
    await cache.set(EXERCISES_KEY, "[2]")
    assert await cache.get(EXERCISES_KEY) == "[2]"
    await engine.dispose()

    # a fresh engine on the same file sees the last write
    engine = make_engine(url)
    reopened = LocalCache(make_session_factory(engine))
    assert await reopened.get(EXERCISES_KEY) == "[2]"
    await engine.dispose()


def test_exercise_snapshot_roundtrip():
    exercises = [Exercise(id="e1", user_id="u", name="Squat", category="legs")]
    assert parse_exercises(dump_exercises(exercises)) == exercises


def test_exercise_snapshot_key_is_per_user():
    assert exercises_key("user-a") == "exercises:user-a"
    assert exercises_key("user-a") != exercises_key("user-b")


def test_cache_entry_timestamp_is_utc():
    entry = CacheEntry(key="k", value="v")
    assert entry.updated_at.tzinfo is timezone.utc
