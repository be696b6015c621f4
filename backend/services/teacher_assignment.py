from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Mapping, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from api.tenant import ids_in_tenant, where_tenant
from core.errors import InvalidInputError
from models.teacher import Teacher
from models.teacher_term_assignment import TeacherTermAssignment


# subject_id -> teacher_id. A subject missing from the map has no fallback.
FallbackTeacherMap = Mapping[uuid.UUID, uuid.UUID]


@dataclass(frozen=True)
class TeacherResolver:
    """Authoritative term assignment first, then the caller's per-subject fallback."""

    assignments: Mapping[tuple[uuid.UUID, uuid.UUID], uuid.UUID] = field(default_factory=dict)
    fallback: FallbackTeacherMap = field(default_factory=dict)

    def resolve(self, class_id: uuid.UUID, subject_id: uuid.UUID) -> uuid.UUID | None:
        teacher_id = self.assignments.get((class_id, subject_id))
        if teacher_id is not None:
            return teacher_id
        return self.fallback.get(subject_id)

    __call__ = resolve


def load_teacher_resolver(
    db: Session,
    *,
    tenant_id: uuid.UUID,
    term_id: uuid.UUID,
    class_ids: Sequence[uuid.UUID],
    fallback: FallbackTeacherMap | None = None,
) -> TeacherResolver:
    fallback = dict(fallback or {})
    if fallback:
        known = ids_in_tenant(db, Teacher, fallback.values(), tenant_id)
        unknown = sorted(str(t) for t in set(fallback.values()) - known)
        if unknown:
            raise InvalidInputError(
                "Fallback teachers not found in your school.",
                details={"teacher_ids": unknown},
            )

    assignments: dict[tuple[uuid.UUID, uuid.UUID], uuid.UUID] = {}
    if class_ids:
        q = (
            select(
                TeacherTermAssignment.class_id,
                TeacherTermAssignment.subject_id,
                TeacherTermAssignment.teacher_id,
            )
            .where(TeacherTermAssignment.academic_term_id == term_id)
            .where(TeacherTermAssignment.class_id.in_(list(class_ids)))
            .order_by(TeacherTermAssignment.created_at.asc(), TeacherTermAssignment.id.asc())
        )
        q = where_tenant(q, TeacherTermAssignment, tenant_id)
        for class_id, subject_id, teacher_id in db.execute(q).all():
            # Duplicates are tolerated; the earliest binding wins.
            assignments.setdefault((class_id, subject_id), teacher_id)

    return TeacherResolver(assignments=assignments, fallback=fallback)
