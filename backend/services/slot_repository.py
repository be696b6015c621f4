from __future__ import annotations

import uuid
from typing import Sequence

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from api.tenant import get_by_id, where_tenant
from models.timetable_slot import TimetableSlot
from scheduling.allocator import PlannedSlot


def get_slot(
    db: Session,
    *,
    tenant_id: uuid.UUID,
    slot_id: uuid.UUID,
    fresh: bool = False,
) -> TimetableSlot | None:
    if not fresh:
        return get_by_id(db, TimetableSlot, slot_id, tenant_id)
    # Reload from the database even if the session already holds the row.
    q = where_tenant(select(TimetableSlot).where(TimetableSlot.id == slot_id), TimetableSlot, tenant_id)
    q = q.with_for_update().execution_options(populate_existing=True)
    return db.execute(q).scalars().first()


def list_slots(
    db: Session,
    *,
    tenant_id: uuid.UUID,
    term_id: uuid.UUID,
    class_id: uuid.UUID | None = None,
    teacher_id: uuid.UUID | None = None,
) -> list[TimetableSlot]:
    q = select(TimetableSlot).where(TimetableSlot.academic_term_id == term_id)
    if class_id is not None:
        q = q.where(TimetableSlot.class_id == class_id)
    if teacher_id is not None:
        q = q.where(TimetableSlot.teacher_id == teacher_id)
    q = where_tenant(q, TimetableSlot, tenant_id).order_by(
        TimetableSlot.day_of_week.asc(),
        TimetableSlot.start_time.asc(),
    )
    return list(db.execute(q).scalars().all())


def upsert_slots(
    db: Session,
    *,
    tenant_id: uuid.UUID,
    term_id: uuid.UUID,
    planned: Sequence[PlannedSlot],
    room: str | None = None,
) -> list[TimetableSlot]:
    """Insert or overwrite slots by natural key (term, teacher, class, subject, day, start).

    An existing row keeps its id; end_time and room are overwritten (last write
    wins). Nothing is committed here.
    """

    if not planned:
        return []

    class_ids = {p.class_id for p in planned}
    q = (
        select(TimetableSlot)
        .where(TimetableSlot.academic_term_id == term_id)
        .where(TimetableSlot.class_id.in_(class_ids))
    )
    existing = {
        (s.teacher_id, s.class_id, s.subject_id, int(s.day_of_week), s.start_time): s
        for s in db.execute(where_tenant(q, TimetableSlot, tenant_id)).scalars().all()
    }

    rows: list[TimetableSlot] = []
    for p in planned:
        key = (p.teacher_id, p.class_id, p.subject_id, p.day_of_week, p.start_time)
        slot = existing.get(key)
        if slot is None:
            slot = TimetableSlot(
                tenant_id=tenant_id,
                academic_term_id=term_id,
                teacher_id=p.teacher_id,
                class_id=p.class_id,
                subject_id=p.subject_id,
                day_of_week=p.day_of_week,
                start_time=p.start_time,
                end_time=p.end_time,
                room=room,
            )
            db.add(slot)
            existing[key] = slot
        else:
            slot.end_time = p.end_time
            slot.room = room
        rows.append(slot)

    db.flush()
    return rows


def delete_term_slots(
    db: Session,
    *,
    tenant_id: uuid.UUID,
    term_id: uuid.UUID,
    class_ids: Sequence[uuid.UUID],
) -> int:
    if not class_ids:
        return 0
    stmt = (
        delete(TimetableSlot)
        .where(TimetableSlot.tenant_id == tenant_id)
        .where(TimetableSlot.academic_term_id == term_id)
        .where(TimetableSlot.class_id.in_(list(class_ids)))
        .execution_options(synchronize_session=False)
    )
    return int(db.execute(stmt).rowcount or 0)
