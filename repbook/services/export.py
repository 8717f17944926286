from __future__ import annotations

import csv
import io
from collections import Counter
from decimal import Decimal
from typing import Iterable, Optional

from ..models import WorkoutWithSets


EXPORT_HEADER = ["Date", "Exercise", "Set", "Reps", "Weight"]
UNKNOWN_EXERCISE = "Unknown"


def format_weight(weight: Optional[Decimal]) -> str:
    if weight is None:
        return ""
    return format(weight.normalize(), "f")


def format_export(workouts: Iterable[WorkoutWithSets]) -> str:
    """Render workouts as ``Date,Exercise,Set,Reps,Weight`` rows.

    Rows follow the given workout order, then set order within each workout.
    ``Set`` counts from 1 within each exercise of a workout.
    """
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(EXPORT_HEADER)
    for workout in workouts:
        position: Counter = Counter()
        for s in sorted(workout.sets, key=lambda s: s.order_index):
            position[s.exercise_id] += 1
            writer.writerow(
                [
                    workout.date.isoformat(),
                    s.exercise_name or UNKNOWN_EXERCISE,
                    position[s.exercise_id],
                    s.reps,
                    format_weight(s.weight),
                ]
            )
    return buf.getvalue()
