from __future__ import annotations

from datetime import date
from typing import List, Optional, Union

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel

from ..deps import SessionDep
from ..models import (
    Exercise,
    ExerciseCreate,
    Profile,
    ProfileUpdate,
    SetWithExercise,
    TodayStats,
    Workout,
    WorkoutSet,
    WorkoutWithSets,
)
from ..services.sync import UNSET

router = APIRouter()


class TodayRead(BaseModel):
    workout: Optional[Workout]
    sets: List[SetWithExercise]
    stats: TodayStats
    loading: bool
    syncing: bool


class SetCreateBody(BaseModel):
    exercise_id: str
    reps: Union[int, str]
    weight: Union[float, str, None] = None


class SetUpdateBody(BaseModel):
    reps: Union[int, str, None] = None
    weight: Union[float, str, None] = None


@router.get("/profile", response_model=Optional[Profile])
async def get_profile(session: SessionDep):
    return session.profile


@router.patch("/profile", response_model=Profile)
async def update_profile(body: ProfileUpdate, session: SessionDep):
    return await session.update_profile(body.model_dump())


@router.get("/exercises", response_model=List[Exercise])
async def list_exercises(session: SessionDep):
    return session.data.exercises


@router.post("/exercises", response_model=Exercise, status_code=201)
async def create_exercise(body: ExerciseCreate, session: SessionDep):
    return await session.data.create_exercise(body)


@router.delete("/exercises/{exercise_id}", status_code=204)
async def delete_exercise(exercise_id: str, session: SessionDep) -> None:
    await session.data.delete_exercise(exercise_id)


@router.get("/today", response_model=TodayRead)
async def today(session: SessionDep):
    data = session.data
    return TodayRead(
        workout=data.today_workout,
        sets=data.today_sets,
        stats=data.get_today_stats(),
        loading=data.loading,
        syncing=data.syncing,
    )


@router.get("/today/stats", response_model=TodayStats)
async def today_stats(session: SessionDep):
    return session.data.get_today_stats()


@router.post("/sync", response_model=TodayRead)
async def sync_now(session: SessionDep):
    await session.data.synchronize()
    return await today(session)


@router.post("/sets", response_model=WorkoutSet, status_code=201)
async def add_set(body: SetCreateBody, session: SessionDep):
    return await session.data.add_set(body.exercise_id, body.reps, body.weight)


@router.patch("/sets/{set_id}", response_model=WorkoutSet)
async def update_set(set_id: str, body: SetUpdateBody, session: SessionDep):
    passed = body.model_fields_set
    return await session.data.update_set(
        set_id,
        reps=body.reps if "reps" in passed else UNSET,
        weight=body.weight if "weight" in passed else UNSET,
    )


@router.delete("/sets/{set_id}", status_code=204)
async def delete_set(set_id: str, session: SessionDep) -> None:
    await session.data.delete_set(set_id)


@router.get("/history", response_model=List[WorkoutWithSets])
async def history(start: date, end: date, session: SessionDep):
    return await session.data.get_workout_history(start, end)


@router.get("/export", response_class=PlainTextResponse)
async def export(session: SessionDep):
    csv_text = await session.data.export_data()
    return PlainTextResponse(
        csv_text,
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="workouts.csv"'},
    )
