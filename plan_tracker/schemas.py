"""Plan file schema shared by file uploads and manual entry.

A plan uploaded as JSON, built from CSV rows, or posted from the manual entry
form is only accepted once it validates against :class:`PlanFile`.
"""

from typing import Annotated, Any, List, Optional

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    StrictInt,
    StrictStr,
    ValidationError,
    model_validator,
)


def _whole_number(value: Any) -> Any:
    # JSON writers often emit 7.0 for 7; other floats still fail as non-integers.
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


PlanInt = Annotated[StrictInt, BeforeValidator(_whole_number)]


class ExerciseRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: StrictStr
    sets: PlanInt = Field(gt=0)
    # Free text on purpose: "8-12", "30s", "AMRAP" are all valid.
    reps: StrictStr
    notes: Optional[StrictStr] = None


class DayRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    day: PlanInt = Field(gt=0)
    name: StrictStr
    notes: Optional[StrictStr] = None
    exercises: List[ExerciseRecord]


class PlanFile(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: StrictStr
    total_days: PlanInt = Field(alias='totalDays', gt=0)
    workouts: List[DayRecord]

    @model_validator(mode='after')
    def check_unique_days(self) -> 'PlanFile':
        seen = set()
        for record in self.workouts:
            if record.day in seen:
                raise ValueError(f'day {record.day} appears more than once')
            seen.add(record.day)
        return self

    def to_document(self) -> dict:
        """Return the plan in its file shape (camelCase keys, unset notes omitted)."""
        return self.model_dump(by_alias=True, exclude_unset=True)


def format_validation_error(exc: ValidationError) -> str:
    """Flatten a pydantic error into ``path: message`` pairs."""
    parts = []
    for err in exc.errors():
        path = '.'.join(str(p) for p in err['loc']) or '<root>'
        parts.append(f"{path}: {err['msg']}")
    return '; '.join(parts)


def validate_plan(data: object) -> PlanFile:
    """Validate a decoded document; raises pydantic's ValidationError."""
    return PlanFile.model_validate(data)
