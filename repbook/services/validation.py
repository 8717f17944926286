from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional, Union

from ..errors import ValidationError
from ..models import ExerciseCreate


NAME_MAX_LENGTH = 100
NOTES_MAX_LENGTH = 500
REPS_MAX = 999
WEIGHT_MAX = Decimal(9999)


def coerce_reps(value: Any) -> int:
    if isinstance(value, bool) or value is None:
        raise ValidationError("reps", "reps is required")
    if isinstance(value, int):
        reps = value
    else:
        try:
            number = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValidationError("reps", f"not a number: {value!r}") from None
        if not number.is_finite() or number != number.to_integral_value():
            raise ValidationError("reps", f"not a whole number: {value!r}")
        reps = int(number)
    if reps <= 0:
        raise ValidationError("reps", "reps must be greater than zero")
    if reps > REPS_MAX:
        raise ValidationError("reps", f"reps must be at most {REPS_MAX}")
    return reps


def coerce_weight(value: Any) -> Optional[Decimal]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if isinstance(value, bool):
        raise ValidationError("weight", f"not a number: {value!r}")
    try:
        weight = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError("weight", f"not a number: {value!r}") from None
    if not weight.is_finite():
        raise ValidationError("weight", f"not a number: {value!r}")
    if weight < 0:
        raise ValidationError("weight", "weight cannot be negative")
    if weight > WEIGHT_MAX:
        raise ValidationError("weight", f"weight must be at most {WEIGHT_MAX}")
    return weight


def validate_exercise(data: Union[ExerciseCreate, Dict[str, Any]]) -> ExerciseCreate:
    if isinstance(data, dict):
        data = ExerciseCreate(
            name=str(data.get("name") or ""),
            category=data.get("category"),
            notes=data.get("notes"),
        )
    name = (data.name or "").strip()
    if not name:
        raise ValidationError("name", "name is required")
    if len(name) > NAME_MAX_LENGTH:
        raise ValidationError("name", f"name must be at most {NAME_MAX_LENGTH} characters")
    notes = data.notes.strip() if data.notes else None
    if notes and len(notes) > NOTES_MAX_LENGTH:
        raise ValidationError("notes", f"notes must be at most {NOTES_MAX_LENGTH} characters")
    category = data.category.strip() if data.category else None
    return ExerciseCreate(name=name, category=category or None, notes=notes or None)
