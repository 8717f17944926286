from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import TypeAdapter
from sqlalchemy.orm import sessionmaker

from ..db import AsyncSessionLocal
from ..models import CacheEntry, Exercise


EXERCISES_KEY = "exercises"

_exercise_list = TypeAdapter(List[Exercise])


def exercises_key(user_id: str) -> str:
    # one snapshot per user; sessions for different users share the cache DB
    return f"{EXERCISES_KEY}:{user_id}"


class LocalCache:
    """Key/value text store kept in the local SQLite cache database.

    Writes overwrite whatever was stored under the key; there is no locking,
    the last writer wins.
    """

    def __init__(self, session_factory: Optional[sessionmaker] = None) -> None:
        self._session_factory = session_factory or AsyncSessionLocal

    async def get(self, key: str) -> Optional[str]:
        async with self._session_factory() as session:
            entry = await session.get(CacheEntry, key)
            return entry.value if entry is not None else None

    async def set(self, key: str, value: str) -> None:
        async with self._session_factory() as session:
            entry = await session.get(CacheEntry, key)
            if entry is None:
                entry = CacheEntry(key=key, value=value)
            else:
                entry.value = value
                entry.updated_at = datetime.now(timezone.utc)
            session.add(entry)
            await session.commit()


def dump_exercises(exercises: List[Exercise]) -> str:
    return _exercise_list.dump_json(exercises).decode()


def parse_exercises(raw: str) -> List[Exercise]:
    return _exercise_list.validate_json(raw)
