import asyncio
import itertools
from datetime import date
from typing import Any, Dict, List, Optional

import pytest

from repbook.errors import CONFLICT_CODE, StoreError
from repbook.models import (
    Exercise,
    ExerciseRef,
    Identity,
    Profile,
    SetWithExercise,
    Workout,
    WorkoutSet,
    WorkoutWithSets,
)
from repbook.services.sync import DataSync

TODAY = date(2024, 3, 15)


class FakeStore:
    """In-memory stand-in for StoreClient with the same coroutine surface."""

    def __init__(self, user_id: str = "user-1", email: Optional[str] = "lifter@example.com") -> None:
        self.identity = Identity(id=user_id, email=email) if user_id else None
        self.profiles: Dict[str, Profile] = {}
        self.exercises: Dict[str, Exercise] = {}
        self.workouts: Dict[str, Workout] = {}
        self.sets: Dict[str, WorkoutSet] = {}
        self.calls: List[str] = []
        self.failures: Dict[str, StoreError] = {}
        self.closed = False
        self.access_token: Optional[str] = None
        self.payloads: List[Dict[str, Any]] = []
        self._ids = itertools.count(1)

    def _new_id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids)}"

    async def _call(self, name: str) -> None:
        self.calls.append(name)
        # let concurrent callers interleave like real round-trips would
        await asyncio.sleep(0)
        if name in self.failures:
            raise self.failures[name]

    # seeding helpers

    def seed_exercise(self, name: str, archived: bool = False) -> Exercise:
        ex = Exercise(id=self._new_id("ex"), user_id=self.identity.id, name=name, is_archived=archived)
        self.exercises[ex.id] = ex
        return ex

    def seed_workout(self, day: date) -> Workout:
        w = Workout(id=self._new_id("w"), user_id=self.identity.id, date=day)
        self.workouts[w.id] = w
        return w

    def seed_set(self, workout: Workout, exercise: Exercise, reps: int, weight=None) -> WorkoutSet:
        order_index = sum(1 for s in self.sets.values() if s.workout_id == workout.id)
        s = WorkoutSet(
            id=self._new_id("s"),
            workout_id=workout.id,
            exercise_id=exercise.id,
            reps=reps,
            weight=weight,
            order_index=order_index,
        )
        self.sets[s.id] = s
        return s

    def _with_exercise(self, s: WorkoutSet) -> SetWithExercise:
        ex = self.exercises.get(s.exercise_id)
        return SetWithExercise(**s.model_dump(), exercise=ExerciseRef(name=ex.name) if ex else None)

    # StoreClient surface

    async def close(self) -> None:
        self.closed = True

    def set_access_token(self, access_token: str) -> None:
        self.access_token = access_token

    async def get_current_identity(self) -> Optional[Identity]:
        await self._call("get_current_identity")
        return self.identity

    async def get_profile(self) -> Optional[Profile]:
        await self._call("get_profile")
        return self.profiles.get(self.identity.id)

    async def create_profile(self, fields: Dict[str, Any]) -> Profile:
        await self._call("create_profile")
        profile = Profile(**fields)
        self.profiles[profile.id] = profile
        return profile

    async def update_profile(self, profile_id: str, fields: Dict[str, Any]) -> Profile:
        await self._call("update_profile")
        profile = self.profiles[profile_id].model_copy(update=fields)
        self.profiles[profile_id] = profile
        return profile

    async def list_active_exercises(self) -> List[Exercise]:
        await self._call("list_active_exercises")
        active = [e for e in self.exercises.values() if not e.is_archived]
        return sorted(active, key=lambda e: e.name)

    async def create_exercise(self, fields: Dict[str, Any]) -> Exercise:
        await self._call("create_exercise")
        if any(e.name.lower() == fields["name"].lower() for e in self.exercises.values()):
            raise StoreError(CONFLICT_CODE, "duplicate key value violates unique constraint", status=409)
        ex = Exercise(id=self._new_id("ex"), user_id=self.identity.id, **fields)
        self.exercises[ex.id] = ex
        return ex

    async def archive_exercise(self, exercise_id: str) -> None:
        await self._call("archive_exercise")
        ex = self.exercises[exercise_id]
        self.exercises[exercise_id] = ex.model_copy(update={"is_archived": True})

    async def get_workout(self, day: date) -> Optional[Workout]:
        await self._call("get_workout")
        for w in self.workouts.values():
            if w.date == day:
                return w
        return None

    async def create_workout(self, day: date, note: Optional[str] = None) -> Workout:
        await self._call("create_workout")
        w = Workout(id=self._new_id("w"), user_id=self.identity.id, date=day, note=note)
        self.workouts[w.id] = w
        return w

    async def list_workouts(self, start: date, end: date) -> List[Workout]:
        await self._call("list_workouts")
        found = [w for w in self.workouts.values() if start <= w.date <= end]
        return sorted(found, key=lambda w: w.date, reverse=True)

    async def list_sets(self, workout_id: str) -> List[SetWithExercise]:
        await self._call("list_sets")
        found = [s for s in self.sets.values() if s.workout_id == workout_id]
        return [self._with_exercise(s) for s in sorted(found, key=lambda s: s.order_index)]

    async def create_set(self, fields: Dict[str, Any]) -> WorkoutSet:
        await self._call("create_set")
        self.payloads.append(fields)
        s = WorkoutSet(id=self._new_id("s"), **fields)
        self.sets[s.id] = s
        return s

    async def update_set(self, set_id: str, fields: Dict[str, Any]) -> WorkoutSet:
        await self._call("update_set")
        self.payloads.append(fields)
        s = WorkoutSet.model_validate({**self.sets[set_id].model_dump(), **fields})
        self.sets[set_id] = s
        return s

    async def delete_set(self, set_id: str) -> None:
        await self._call("delete_set")
        self.sets.pop(set_id, None)

    async def list_all_workouts_with_sets(self) -> List[WorkoutWithSets]:
        await self._call("list_all_workouts_with_sets")
        result = []
        for w in sorted(self.workouts.values(), key=lambda w: w.date, reverse=True):
            sets = [s for s in self.sets.values() if s.workout_id == w.id]
            result.append(
                WorkoutWithSets(
                    **w.model_dump(),
                    sets=[self._with_exercise(s) for s in sorted(sets, key=lambda s: s.order_index)],
                )
            )
        return result


class MemoryCache:
    def __init__(self, data: Optional[Dict[str, str]] = None) -> None:
        self.data: Dict[str, str] = dict(data or {})
        self.writes = 0

    async def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    async def set(self, key: str, value: str) -> None:
        self.writes += 1
        self.data[key] = value


@pytest.fixture(name="store")
def store_fixture():
    return FakeStore()


@pytest.fixture(name="cache")
def cache_fixture():
    return MemoryCache()


@pytest.fixture(name="errors")
def errors_fixture():
    return []


@pytest.fixture(name="data")
def data_fixture(store: FakeStore, cache: MemoryCache, errors: list):
    return DataSync(
        store,
        cache,
        store.identity.id,
        today=lambda: TODAY,
        on_error=lambda context, exc: errors.append((context, exc)),
    )
