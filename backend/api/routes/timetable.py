from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from api.deps import require_admin, require_staff
from core.database import get_db
from models.user import User
from schemas.timetable import (
    GenerateSeniorTimetableRequest,
    GenerationResultOut,
    TimetableSlotCreate,
    TimetableSlotOut,
    TimetableSlotUpdate,
)
from services import timetable_service


router = APIRouter()


@router.post("/generate-senior", response_model=GenerationResultOut)
def generate_senior_timetable(
    payload: GenerateSeniorTimetableRequest,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> GenerationResultOut:
    result = timetable_service.build_timetable(db, actor=admin, payload=payload)
    return GenerationResultOut(
        created=result.created,
        skipped=result.skipped,
        skipped_missing_teacher=result.skipped_missing_teacher,
        skipped_conflict=result.skipped_conflict,
        skipped_workload_cap=result.skipped_workload_cap,
        periods_per_day=result.periods_per_day,
        replaced=result.replaced,
        message=result.message,
    )


@router.get("/slots", response_model=list[TimetableSlotOut])
def list_slots(
    academic_term_id: uuid.UUID = Query(...),
    class_id: uuid.UUID | None = Query(default=None),
    teacher_id: uuid.UUID | None = Query(default=None),
    user: User = Depends(require_staff),
    db: Session = Depends(get_db),
) -> list[TimetableSlotOut]:
    return timetable_service.list_slots(
        db,
        actor=user,
        term_id=academic_term_id,
        class_id=class_id,
        teacher_id=teacher_id,
    )


@router.post("/slots", response_model=TimetableSlotOut, status_code=201)
def create_slot(
    payload: TimetableSlotCreate,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> TimetableSlotOut:
    return timetable_service.create_slot(db, actor=admin, payload=payload)


@router.patch("/slots/{slot_id}", response_model=TimetableSlotOut)
def update_slot(
    slot_id: uuid.UUID,
    payload: TimetableSlotUpdate,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> TimetableSlotOut:
    return timetable_service.update_slot(db, actor=admin, slot_id=slot_id, payload=payload)


@router.delete("/slots/{slot_id}", response_model=TimetableSlotOut)
def delete_slot(
    slot_id: uuid.UUID,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> TimetableSlotOut:
    return timetable_service.delete_slot(db, actor=admin, slot_id=slot_id)
