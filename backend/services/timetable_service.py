from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from api.tenant import get_by_id, where_tenant
from core.config import settings
from core.errors import ForbiddenError, InvalidInputError, NoClassesError, NotFoundError
from core.locks import term_write_lock, term_write_locks
from core.tenancy import tenant_context
from models.academic_term import AcademicTerm
from models.class_section import ClassSection
from models.subject import Subject
from models.teacher import Teacher
from models.timetable_slot import TimetableSlot
from models.user import User
from scheduling.allocator import allocate
from scheduling.time_grid import MAX_PERIOD_MINUTES, MIN_PERIOD_MINUTES, GridConfig, build_time_grid
from schemas.timetable import (
    GenerateSeniorTimetableRequest,
    TimetableSlotCreate,
    TimetableSlotOut,
    TimetableSlotUpdate,
)
from services import slot_repository
from services.audit import AuditEvent, emit_audit_event
from services.slot_conflicts import check_slot_conflicts
from services.subject_scope import load_senior_classes, resolve_subject_scope
from services.teacher_assignment import load_teacher_resolver


logger = logging.getLogger(__name__)


MIN_TEACHER_WEEKLY_CAP = 1
MAX_TEACHER_WEEKLY_CAP = 60

_EMPTY_RUN_MESSAGE = "No slots created. Check teacher assignments or subject setup."
_GENERATED_MESSAGE = "Starter timetable generated."

# Columns a manual edit may change. Everything except room is mandatory on a slot.
_EDITABLE_FIELDS = (
    "academic_term_id",
    "teacher_id",
    "class_id",
    "subject_id",
    "day_of_week",
    "start_time",
    "end_time",
    "room",
)


@dataclass(frozen=True)
class GenerationResult:
    created: int
    skipped_missing_teacher: int
    skipped_conflict: int
    skipped_workload_cap: int
    periods_per_day: int
    message: str
    replaced: int = 0

    @property
    def skipped(self) -> int:
        return self.skipped_missing_teacher + self.skipped_conflict + self.skipped_workload_cap


def get_owned_term(db: Session, *, tenant_id: uuid.UUID, term_id: uuid.UUID) -> AcademicTerm:
    term = db.get(AcademicTerm, term_id)
    if term is None:
        raise NotFoundError("Academic term not found.")
    if term.tenant_id != tenant_id:
        raise ForbiddenError("Term does not belong to your school.")
    return term


def _validate_generation_limits(payload: GenerateSeniorTimetableRequest) -> int:
    if not (MIN_PERIOD_MINUTES <= int(payload.period_minutes) <= MAX_PERIOD_MINUTES):
        raise InvalidInputError(
            f"Period length must be between {MIN_PERIOD_MINUTES} and {MAX_PERIOD_MINUTES} minutes."
        )

    cap = payload.max_periods_per_teacher_week
    if cap is None:
        cap = settings.default_max_periods_per_teacher_week
    if not (MIN_TEACHER_WEEKLY_CAP <= int(cap) <= MAX_TEACHER_WEEKLY_CAP):
        raise InvalidInputError(
            f"Max periods per teacher/week must be between {MIN_TEACHER_WEEKLY_CAP} and {MAX_TEACHER_WEEKLY_CAP}."
        )
    return int(cap)


def build_timetable(db: Session, *, actor: User, payload: GenerateSeniorTimetableRequest) -> GenerationResult:
    """Generate the senior-school starter timetable for one term.

    Everything written (full-scope class-subject links, replaced rows, upserted
    slots) commits in one transaction or not at all. Runs for the same
    (school, term) are serialized.
    """

    tenant_id = actor.tenant_id
    term = get_owned_term(db, tenant_id=tenant_id, term_id=payload.academic_term_id)

    cap = _validate_generation_limits(payload)
    grid = build_time_grid(
        GridConfig(
            day_template=payload.day_template,
            period_minutes=int(payload.period_minutes),
            start_time=payload.start_time,
            periods_per_day=payload.periods_per_day,
        )
    )
    logger.debug("Generation grid template=%s periods=%s", payload.day_template, [r.label() for r in grid])

    with tenant_context(tenant_id), term_write_lock(db, tenant_id=tenant_id, term_id=term.id):
        try:
            classes = load_senior_classes(db, tenant_id=tenant_id)
            if not classes:
                raise NoClassesError("No active Grade 10-12 classes found.")
            class_ids = [c.id for c in classes]

            subjects_by_class = resolve_subject_scope(
                db,
                tenant_id=tenant_id,
                class_ids=class_ids,
                scope=payload.subject_scope,
                elective_subject_ids=payload.elective_subject_ids,
            )
            resolver = load_teacher_resolver(
                db,
                tenant_id=tenant_id,
                term_id=term.id,
                class_ids=class_ids,
                fallback=payload.fallback_teacher_by_subject,
            )

            allocation = allocate(
                class_ids=class_ids,
                subjects_by_class=subjects_by_class,
                grid=grid,
                resolve_teacher=resolver,
                max_periods_per_teacher_week=cap,
            )

            replaced = 0
            if payload.replace_existing:
                replaced = slot_repository.delete_term_slots(
                    db, tenant_id=tenant_id, term_id=term.id, class_ids=class_ids
                )

            rows = slot_repository.upsert_slots(
                db,
                tenant_id=tenant_id,
                term_id=term.id,
                planned=allocation.slots,
                room=payload.room,
            )
            db.commit()
        except Exception:
            db.rollback()
            raise

        result = GenerationResult(
            created=len(rows),
            skipped_missing_teacher=allocation.skipped_missing_teacher,
            skipped_conflict=allocation.skipped_conflict,
            skipped_workload_cap=allocation.skipped_workload_cap,
            periods_per_day=len(grid),
            message=_GENERATED_MESSAGE if rows else _EMPTY_RUN_MESSAGE,
            replaced=replaced,
        )
        loads = allocation.teacher_loads()
        max_teacher_load = max(loads.values(), default=0)
        logger.info(
            "Senior timetable generated term=%s classes=%d created=%d teachers=%d max_load=%d "
            "missing_teacher=%d conflict=%d workload_cap=%d replaced=%d",
            term.id,
            len(class_ids),
            result.created,
            len(loads),
            max_teacher_load,
            result.skipped_missing_teacher,
            result.skipped_conflict,
            result.skipped_workload_cap,
            result.replaced,
        )

        emit_audit_event(
            db,
            AuditEvent(
                tenant_id=tenant_id,
                user_id=actor.id,
                action="timetable:generate_senior",
                resource_type="timetable_slots",
                changes={
                    "academic_term_id": term.id,
                    "created": result.created,
                    "replaced": result.replaced,
                    "skipped_missing_teacher": result.skipped_missing_teacher,
                    "skipped_conflict": result.skipped_conflict,
                    "skipped_workload_cap": result.skipped_workload_cap,
                    "subject_scope": payload.subject_scope,
                    "day_template": payload.day_template,
                    "period_minutes": payload.period_minutes,
                    "periods_generated_per_day": len(grid),
                    "periods": [r.label() for r in grid],
                    "max_teacher_load": max_teacher_load,
                    "max_periods_per_teacher_week": cap,
                },
            ),
        )
    return result


def _check_references(
    db: Session,
    *,
    tenant_id: uuid.UUID,
    teacher_id: uuid.UUID,
    class_id: uuid.UUID,
    subject_id: uuid.UUID,
) -> None:
    missing: list[str] = []
    if get_by_id(db, Teacher, teacher_id, tenant_id) is None:
        missing.append("teacher_id")
    if get_by_id(db, ClassSection, class_id, tenant_id) is None:
        missing.append("class_id")
    if get_by_id(db, Subject, subject_id, tenant_id) is None:
        missing.append("subject_id")
    if missing:
        raise InvalidInputError("Referenced records not found in your school.", details={"fields": missing})


def _check_time_range(start_time, end_time) -> None:
    if not start_time < end_time:
        raise InvalidInputError("Start time must be before end time.")


def create_slot(db: Session, *, actor: User, payload: TimetableSlotCreate) -> TimetableSlot:
    tenant_id = actor.tenant_id
    term = get_owned_term(db, tenant_id=tenant_id, term_id=payload.academic_term_id)
    _check_time_range(payload.start_time, payload.end_time)
    _check_references(
        db,
        tenant_id=tenant_id,
        teacher_id=payload.teacher_id,
        class_id=payload.class_id,
        subject_id=payload.subject_id,
    )

    with tenant_context(tenant_id), term_write_lock(db, tenant_id=tenant_id, term_id=term.id):
        try:
            check_slot_conflicts(
                db,
                tenant_id=tenant_id,
                term_id=term.id,
                teacher_id=payload.teacher_id,
                class_id=payload.class_id,
                day_of_week=payload.day_of_week,
                start_time=payload.start_time,
                end_time=payload.end_time,
            )
            slot = TimetableSlot(tenant_id=tenant_id, **payload.model_dump())
            db.add(slot)
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(slot)

        emit_audit_event(
            db,
            AuditEvent(
                tenant_id=tenant_id,
                user_id=actor.id,
                action="timetable:create",
                resource_type="timetable_slots",
                resource_id=slot.id,
                changes=payload.model_dump(),
            ),
        )
    return slot


def update_slot(
    db: Session,
    *,
    actor: User,
    slot_id: uuid.UUID,
    payload: TimetableSlotUpdate,
) -> TimetableSlot:
    """Apply a partial edit as a full, re-validated replacement of the slot.

    The slot is read again once the write locks are held, so the merge and the
    conflict check see the row as it is at commit time. Moving a slot to another
    term locks both terms.
    """

    tenant_id = actor.tenant_id
    updates: dict[str, Any] = payload.model_dump(exclude_unset=True)
    nulled = [k for k, v in updates.items() if v is None and k != "room"]
    if nulled:
        raise InvalidInputError("Fields cannot be cleared.", details={"fields": sorted(nulled)})
    if "academic_term_id" in updates:
        get_owned_term(db, tenant_id=tenant_id, term_id=updates["academic_term_id"])

    while True:
        current = slot_repository.get_slot(db, tenant_id=tenant_id, slot_id=slot_id)
        if current is None:
            raise NotFoundError("Timetable slot not found.")
        locked_terms = {current.academic_term_id, updates.get("academic_term_id", current.academic_term_id)}

        with tenant_context(tenant_id), term_write_locks(db, tenant_id=tenant_id, term_ids=locked_terms):
            try:
                slot = slot_repository.get_slot(db, tenant_id=tenant_id, slot_id=slot_id, fresh=True)
                if slot is None:
                    raise NotFoundError("Timetable slot not found.")
                if slot.academic_term_id not in locked_terms:
                    # Moved to another term while we waited; lock again.
                    db.rollback()
                    continue

                merged = {name: updates.get(name, getattr(slot, name)) for name in _EDITABLE_FIELDS}
                _check_time_range(merged["start_time"], merged["end_time"])
                _check_references(
                    db,
                    tenant_id=tenant_id,
                    teacher_id=merged["teacher_id"],
                    class_id=merged["class_id"],
                    subject_id=merged["subject_id"],
                )
                check_slot_conflicts(
                    db,
                    tenant_id=tenant_id,
                    term_id=merged["academic_term_id"],
                    teacher_id=merged["teacher_id"],
                    class_id=merged["class_id"],
                    day_of_week=merged["day_of_week"],
                    start_time=merged["start_time"],
                    end_time=merged["end_time"],
                    exclude_slot_id=slot.id,
                )
                for name, value in merged.items():
                    setattr(slot, name, value)
                db.commit()
            except Exception:
                db.rollback()
                raise
            db.refresh(slot)

            emit_audit_event(
                db,
                AuditEvent(
                    tenant_id=tenant_id,
                    user_id=actor.id,
                    action="timetable:update",
                    resource_type="timetable_slots",
                    resource_id=slot.id,
                    changes=updates,
                ),
            )
        return slot



def delete_slot(db: Session, *, actor: User, slot_id: uuid.UUID) -> TimetableSlotOut:
    tenant_id = actor.tenant_id
    slot = slot_repository.get_slot(db, tenant_id=tenant_id, slot_id=slot_id)
    if slot is None:
        raise NotFoundError("Timetable slot not found.")

    with tenant_context(tenant_id), term_write_lock(db, tenant_id=tenant_id, term_id=slot.academic_term_id):
        try:
            slot = slot_repository.get_slot(db, tenant_id=tenant_id, slot_id=slot_id, fresh=True)
            if slot is None:
                raise NotFoundError("Timetable slot not found.")
            deleted = TimetableSlotOut.model_validate(slot)
            db.delete(slot)
            db.commit()
        except Exception:
            db.rollback()
            raise

        emit_audit_event(
            db,
            AuditEvent(
                tenant_id=tenant_id,
                user_id=actor.id,
                action="timetable:delete",
                resource_type="timetable_slots",
                resource_id=deleted.id,
                changes={"id": deleted.id},
            ),
        )
    return deleted


def list_slots(
    db: Session,
    *,
    actor: User,
    term_id: uuid.UUID,
    class_id: uuid.UUID | None = None,
    teacher_id: uuid.UUID | None = None,
) -> list[TimetableSlot]:
    tenant_id = actor.tenant_id
    get_owned_term(db, tenant_id=tenant_id, term_id=term_id)

    if (actor.role or "").upper() == "TEACHER":
        # Teachers only ever see their own timetable, whatever filter they pass.
        q = where_tenant(select(Teacher.id).where(Teacher.user_id == actor.id), Teacher, tenant_id)
        own_teacher_id = db.execute(q).scalars().first()
        if own_teacher_id is None:
            raise ForbiddenError("Teacher profile not found for current user.")
        teacher_id = own_teacher_id

    return slot_repository.list_slots(
        db,
        tenant_id=tenant_id,
        term_id=term_id,
        class_id=class_id,
        teacher_id=teacher_id,
    )
