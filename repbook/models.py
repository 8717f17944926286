from __future__ import annotations

import datetime as dt
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel
from sqlmodel import SQLModel, Field


# Remote store rows. Every table is owned by the remote store; these are
# the shapes the client reads back.


class Identity(BaseModel):
    id: str
    email: Optional[str] = None


class Profile(BaseModel):
    id: str
    display_name: Optional[str] = None


class Exercise(BaseModel):
    id: str
    user_id: str
    name: str
    category: Optional[str] = None
    notes: Optional[str] = None
    is_archived: bool = False


class Workout(BaseModel):
    id: str
    user_id: str
    date: dt.date
    note: Optional[str] = None


class WorkoutSet(BaseModel):
    id: str
    workout_id: str
    exercise_id: str
    reps: int
    weight: Optional[Decimal] = None
    order_index: int


class ExerciseRef(BaseModel):
    name: Optional[str] = None


class SetWithExercise(WorkoutSet):
    exercise: Optional[ExerciseRef] = None

    @property
    def exercise_name(self) -> Optional[str]:
        return self.exercise.name if self.exercise else None


class WorkoutWithSets(Workout):
    sets: List[SetWithExercise] = []


class TodayStats(BaseModel):
    total_sets: int = 0
    exercise_count: int = 0
    total_reps: int = 0


# Request bodies


class ExerciseCreate(BaseModel):
    name: str
    category: Optional[str] = None
    notes: Optional[str] = None


class ProfileUpdate(BaseModel):
    display_name: Optional[str] = None


# Local cache table


class CacheEntry(SQLModel, table=True):
    key: str = Field(primary_key=True)
    value: str
    updated_at: dt.datetime = Field(default_factory=lambda: dt.datetime.now(dt.timezone.utc))
