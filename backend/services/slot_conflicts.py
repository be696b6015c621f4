from __future__ import annotations

import logging
import uuid
from datetime import time

from sqlalchemy import select
from sqlalchemy.orm import Session

from api.tenant import where_tenant
from core.errors import ClassConflictError, TeacherConflictError
from models.timetable_slot import TimetableSlot


logger = logging.getLogger(__name__)


def ranges_overlap(existing_start: time, existing_end: time, new_start: time, new_end: time) -> bool:
    # Half-open [start, end): back-to-back periods do not collide.
    return existing_start < new_end and new_start < existing_end


def _has_overlap(
    db: Session,
    *,
    tenant_id: uuid.UUID,
    term_id: uuid.UUID,
    column,
    owner_id: uuid.UUID,
    day_of_week: int,
    start_time: time,
    end_time: time,
    exclude_slot_id: uuid.UUID | None,
) -> TimetableSlot | None:
    q = (
        select(TimetableSlot)
        .where(TimetableSlot.academic_term_id == term_id)
        .where(column == owner_id)
        .where(TimetableSlot.day_of_week == int(day_of_week))
    )
    if exclude_slot_id is not None:
        q = q.where(TimetableSlot.id != exclude_slot_id)
    q = where_tenant(q, TimetableSlot, tenant_id)

    for slot in db.execute(q).scalars().all():
        if ranges_overlap(slot.start_time, slot.end_time, start_time, end_time):
            return slot
    return None


def check_slot_conflicts(
    db: Session,
    *,
    tenant_id: uuid.UUID,
    term_id: uuid.UUID,
    teacher_id: uuid.UUID,
    class_id: uuid.UUID,
    day_of_week: int,
    start_time: time,
    end_time: time,
    exclude_slot_id: uuid.UUID | None = None,
) -> None:
    """Reject a single slot that would double-book its teacher or class.

    Checks persisted slots of the same term and day. The teacher is checked
    first and wins when both collide. Pass ``exclude_slot_id`` when re-validating
    an edit so the row does not collide with its own previous version.
    """

    common = dict(
        tenant_id=tenant_id,
        term_id=term_id,
        day_of_week=day_of_week,
        start_time=start_time,
        end_time=end_time,
        exclude_slot_id=exclude_slot_id,
    )

    clash = _has_overlap(db, column=TimetableSlot.teacher_id, owner_id=teacher_id, **common)
    if clash is not None:
        logger.info("Teacher conflict teacher=%s day=%s against slot=%s", teacher_id, day_of_week, clash.id)
        raise TeacherConflictError(
            "Teacher is double-booked at that time.",
            details={"conflicting_slot_id": str(clash.id)},
        )

    clash = _has_overlap(db, column=TimetableSlot.class_id, owner_id=class_id, **common)
    if clash is not None:
        logger.info("Class conflict class=%s day=%s against slot=%s", class_id, day_of_week, clash.id)
        raise ClassConflictError(
            "Class is double-booked at that time.",
            details={"conflicting_slot_id": str(clash.id)},
        )
