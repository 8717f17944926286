from __future__ import annotations

import asyncio
import bisect
from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from typing import Any, Awaitable, Callable, Dict, Hashable, Iterator, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..errors import DuplicateExerciseError, RepbookError, StoreError, ValidationError
from ..logs import log, log_failure
from ..models import (
    Exercise,
    ExerciseCreate,
    ExerciseRef,
    SetWithExercise,
    TodayStats,
    Workout,
    WorkoutSet,
    WorkoutWithSets,
)
from .cache import LocalCache, dump_exercises, exercises_key, parse_exercises
from .export import UNKNOWN_EXERCISE, format_export
from .stats import compute_today_stats
from .store_client import StoreClient
from .validation import coerce_reps, coerce_weight, validate_exercise


ErrorChannel = Callable[[str, BaseException], None]

# Marks an update_set argument that was not passed (None clears the weight).
UNSET: Any = object()


class CancelToken:
    """Handed to an operation by its caller; once cancelled, the operation
    still finishes its remote calls but leaves in-memory state alone."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class SingleFlight:
    """Coalesce concurrent calls sharing a key into one running task."""

    def __init__(self) -> None:
        self._inflight: Dict[Hashable, asyncio.Future] = {}

    async def run(self, key: Hashable, factory: Callable[[], Awaitable[Any]]) -> Any:
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._inflight[key] = task

            def _forget(done: asyncio.Future, key: Hashable = key) -> None:
                if self._inflight.get(key) is done:
                    del self._inflight[key]

            task.add_done_callback(_forget)
        # A cancelled waiter must not cancel the shared task.
        return await asyncio.shield(task)


def _name_key(exercise: Exercise) -> tuple:
    return (exercise.name.casefold(), exercise.name)


def _sorted(exercises: List[Exercise]) -> List[Exercise]:
    return sorted(exercises, key=_name_key)


def _wire_weight(weight: Optional[Decimal]) -> Optional[str]:
    # numeric columns accept the decimal text as-is
    return format(weight, "f") if weight is not None else None


class DataSync:
    """In-memory view of one user's exercises and today's workout.

    The remote store stays the source of truth. Mutations go to the store
    first; only after the store accepted them are ``exercises``,
    ``today_workout`` and ``today_sets`` (and the cached exercise snapshot)
    updated. Reads of collections fall back to empty on failure.
    """

    def __init__(
        self,
        store: StoreClient,
        cache: LocalCache,
        user_id: str,
        today: Callable[[], date] = date.today,
        on_error: ErrorChannel = log_failure,
    ) -> None:
        self.store = store
        self.cache = cache
        self.user_id = user_id
        self._today = today
        self._on_error = on_error
        self._flights = SingleFlight()
        self._cache_key = exercises_key(user_id)
        self._closed = False

        self.exercises: List[Exercise] = []
        self.today_workout: Optional[Workout] = None
        self.today_sets: List[SetWithExercise] = []
        self.loading = False
        self.syncing = False

    # Lifecycle

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        self._closed = True

    def _live(self, token: Optional[CancelToken]) -> bool:
        return not self._closed and not (token is not None and token.cancelled)

    @contextmanager
    def _reporting(self, context: str) -> Iterator[None]:
        try:
            yield
        except StoreError as e:
            self._on_error(context, e)
            raise

    async def _write_cache(self) -> None:
        try:
            await self.cache.set(self._cache_key, dump_exercises(self.exercises))
        except SQLAlchemyError as e:
            self._on_error("cache", e)

    async def _read_cache(self) -> Optional[List[Exercise]]:
        try:
            raw = await self.cache.get(self._cache_key)
            cached = parse_exercises(raw) if raw else None
        except (SQLAlchemyError, ValueError) as e:
            self._on_error("cache", e)
            return None
        if cached is None:
            return None
        return [e for e in cached if e.user_id == self.user_id]

    # Loading

    async def initialize(self, token: Optional[CancelToken] = None) -> None:
        self.loading = True
        try:
            cached = await self._read_cache()
            if cached is not None and self._live(token):
                self.exercises = _sorted(cached)
            await self.synchronize(token)
        finally:
            self.loading = False

    async def synchronize(self, token: Optional[CancelToken] = None) -> None:
        self.syncing = True
        try:
            exercises = await self.store.list_active_exercises()
            if not self._live(token):
                return
            self.exercises = _sorted(exercises)
            await self._write_cache()
            await self.load_today_workout(token)
            log("sync", f"{len(self.exercises)} exercises, {len(self.today_sets)} sets today")
        except (RepbookError, ValueError) as e:
            self._on_error("sync", e)
        finally:
            self.syncing = False

    async def load_today_workout(self, token: Optional[CancelToken] = None) -> None:
        day = self._today()
        try:
            workout = await self.store.get_workout(day)
            sets = await self.store.list_sets(workout.id) if workout is not None else []
        except Exception:
            if self._live(token):
                self.today_sets = []
            raise
        if not self._live(token):
            return
        self.today_workout = workout
        self.today_sets = sets

    # Exercises

    async def create_exercise(
        self, data: ExerciseCreate | Dict[str, Any], token: Optional[CancelToken] = None
    ) -> Exercise:
        fields = validate_exercise(data)
        key = ("exercise", self.user_id, fields.name.casefold())
        with self._reporting("create exercise"):
            return await self._flights.run(key, lambda: self._create_exercise(fields, token))

    async def _create_exercise(self, fields: ExerciseCreate, token: Optional[CancelToken]) -> Exercise:
        wanted = fields.name.casefold()
        if any(e.name.casefold() == wanted for e in self.exercises):
            raise DuplicateExerciseError(fields.name)
        try:
            created = await self.store.create_exercise(fields.model_dump(exclude_none=True))
        except StoreError as e:
            if e.is_conflict:
                raise DuplicateExerciseError(fields.name) from e
            raise
        if self._live(token):
            exercises = list(self.exercises)
            bisect.insort(exercises, created, key=_name_key)
            self.exercises = exercises
            await self._write_cache()
        return created

    async def delete_exercise(self, exercise_id: str, token: Optional[CancelToken] = None) -> None:
        with self._reporting("delete exercise"):
            await self.store.archive_exercise(exercise_id)
        if self._live(token):
            self.exercises = [e for e in self.exercises if e.id != exercise_id]
            await self._write_cache()

    # Sets

    async def _ensure_today_workout(self, token: Optional[CancelToken]) -> Workout:
        day = self._today()
        current = self.today_workout
        if current is not None and current.date == day:
            return current
        key = ("workout", self.user_id, day.isoformat())
        workout = await self._flights.run(key, lambda: self._find_or_create_workout(day))
        if self._live(token) and (self.today_workout is None or self.today_workout.id != workout.id):
            if self.today_workout is not None:
                # the previous workout belongs to an earlier day
                self.today_sets = []
            self.today_workout = workout
        return workout

    async def _find_or_create_workout(self, day: date) -> Workout:
        existing = await self.store.get_workout(day)
        if existing is not None:
            return existing
        try:
            return await self.store.create_workout(day)
        except StoreError as e:
            if not e.is_conflict:
                raise
            log("sync", f"workout for {day.isoformat()} already exists, fetching it")
            existing = await self.store.get_workout(day)
            if existing is None:
                raise
            return existing

    def _exercise_name(self, exercise_id: str) -> str:
        for e in self.exercises:
            if e.id == exercise_id:
                return e.name
        return UNKNOWN_EXERCISE

    async def add_set(
        self,
        exercise_id: str,
        reps: Any,
        weight: Any = None,
        token: Optional[CancelToken] = None,
    ) -> WorkoutSet:
        reps = coerce_reps(reps)
        weight = coerce_weight(weight)
        with self._reporting("add set"):
            workout = await self._ensure_today_workout(token)
            created = await self.store.create_set(
                {
                    "workout_id": workout.id,
                    "exercise_id": exercise_id,
                    "reps": reps,
                    "weight": _wire_weight(weight),
                    "order_index": len(self.today_sets),
                }
            )
        if self._live(token):
            annotated = SetWithExercise(
                **created.model_dump(), exercise=ExerciseRef(name=self._exercise_name(exercise_id))
            )
            self.today_sets = [*self.today_sets, annotated]
        return created

    async def update_set(
        self,
        set_id: str,
        reps: Any = UNSET,
        weight: Any = UNSET,
        token: Optional[CancelToken] = None,
    ) -> WorkoutSet:
        fields: Dict[str, Any] = {}
        if reps is not UNSET:
            fields["reps"] = coerce_reps(reps)
        if weight is not UNSET:
            fields["weight"] = _wire_weight(coerce_weight(weight))
        if not fields:
            raise ValidationError("set", "nothing to update")
        with self._reporting("update set"):
            updated = await self.store.update_set(set_id, fields)
        if self._live(token):
            self.today_sets = [
                SetWithExercise(**updated.model_dump(), exercise=s.exercise) if s.id == set_id else s
                for s in self.today_sets
            ]
        return updated

    async def delete_set(self, set_id: str, token: Optional[CancelToken] = None) -> None:
        with self._reporting("delete set"):
            await self.store.delete_set(set_id)
        if self._live(token):
            self.today_sets = [s for s in self.today_sets if s.id != set_id]

    # History and export

    async def get_workout_history(self, start: date, end: date) -> List[WorkoutWithSets]:
        if start > end:
            raise ValidationError("start", "start date is after end date")
        with self._reporting("workout history"):
            workouts = await self.store.list_workouts(start, end)
            # one round-trip per workout
            set_lists = await asyncio.gather(*(self.store.list_sets(w.id) for w in workouts))
        history = [WorkoutWithSets(**w.model_dump(), sets=sets) for w, sets in zip(workouts, set_lists)]
        history.sort(key=lambda w: w.date, reverse=True)
        return history

    async def export_data(self) -> str:
        with self._reporting("export"):
            workouts = await self.store.list_all_workouts_with_sets()
        return format_export(workouts)

    def get_today_stats(self) -> TodayStats:
        return compute_today_stats(self.today_sets)
