from __future__ import annotations

import uuid
from datetime import datetime, time
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator


class GenerateSeniorTimetableRequest(BaseModel):
    academic_term_id: uuid.UUID

    # Grid. Range checks live in the engine so they surface as invalid_input.
    day_template: Literal["continuous", "kenya_fixed"] = "continuous"
    period_minutes: int = 40
    start_time: time | None = None
    periods_per_day: int | None = None

    # Scope
    subject_scope: Literal["core", "assigned", "full"] = "core"
    elective_subject_ids: list[uuid.UUID] = Field(default_factory=list)

    # Staffing
    max_periods_per_teacher_week: int | None = None
    fallback_teacher_by_subject: dict[uuid.UUID, uuid.UUID] = Field(default_factory=dict)

    # Regeneration: drop this term's slots for the generated classes first.
    replace_existing: bool = False
    room: str | None = Field(default=None, max_length=50)

    @field_validator("start_time")
    @classmethod
    def _reject_offset(cls, v: time | None) -> time | None:
        return _naive_time(v)


class GenerationResultOut(BaseModel):
    created: int
    skipped: int
    skipped_missing_teacher: int
    skipped_conflict: int
    skipped_workload_cap: int
    periods_per_day: int
    replaced: int = 0
    message: str


def _naive_time(v: time | None) -> time | None:
    # Slots are wall-clock school times; stored values carry no offset.
    if v is not None and v.tzinfo is not None:
        raise ValueError("Times must not include a UTC offset.")
    return v


def _clean_room(v: str | None) -> str | None:
    if v is None:
        return None
    v = v.strip()
    return v or None


class TimetableSlotCreate(BaseModel):
    academic_term_id: uuid.UUID
    teacher_id: uuid.UUID
    class_id: uuid.UUID
    subject_id: uuid.UUID
    day_of_week: int = Field(ge=1, le=5)
    start_time: time
    end_time: time
    room: str | None = Field(default=None, max_length=50)

    @field_validator("room")
    @classmethod
    def _normalize_room(cls, v: str | None) -> str | None:
        return _clean_room(v)

    @field_validator("start_time", "end_time")
    @classmethod
    def _reject_offset(cls, v: time | None) -> time | None:
        return _naive_time(v)


class TimetableSlotUpdate(BaseModel):
    academic_term_id: uuid.UUID | None = None
    teacher_id: uuid.UUID | None = None
    class_id: uuid.UUID | None = None
    subject_id: uuid.UUID | None = None
    day_of_week: int | None = Field(default=None, ge=1, le=5)
    start_time: time | None = None
    end_time: time | None = None
    room: str | None = Field(default=None, max_length=50)

    @field_validator("room")
    @classmethod
    def _normalize_room(cls, v: str | None) -> str | None:
        return _clean_room(v)

    @field_validator("start_time", "end_time")
    @classmethod
    def _reject_offset(cls, v: time | None) -> time | None:
        return _naive_time(v)


class TimetableSlotOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    academic_term_id: uuid.UUID
    teacher_id: uuid.UUID
    class_id: uuid.UUID
    subject_id: uuid.UUID
    day_of_week: int
    start_time: time
    end_time: time
    room: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_serializer("start_time", "end_time")
    def _hhmm(self, value: time) -> str:
        return value.strftime("%H:%M")
