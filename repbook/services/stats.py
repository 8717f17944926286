from __future__ import annotations

from typing import Iterable

from ..models import TodayStats, WorkoutSet


def compute_today_stats(sets: Iterable[WorkoutSet]) -> TodayStats:
    """Totals over the given sets; recomputed on every call, never cached."""
    total_sets = 0
    total_reps = 0
    exercise_ids = set()
    for s in sets:
        total_sets += 1
        total_reps += s.reps
        exercise_ids.add(s.exercise_id)
    return TodayStats(total_sets=total_sets, exercise_count=len(exercise_ids), total_reps=total_reps)
