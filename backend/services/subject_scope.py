from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from typing import Literal, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from api.tenant import ids_in_tenant, where_tenant
from core.config import settings
from core.errors import InvalidInputError, MissingSubjectsError
from models.class_section import ClassSection
from models.class_subject import ClassSubject
from models.subject import Subject


logger = logging.getLogger(__name__)


SubjectScope = Literal["core", "assigned", "full"]

REQUIRED_ELECTIVE_COUNT = 3


def load_senior_classes(db: Session, *, tenant_id: uuid.UUID) -> list[ClassSection]:
    q = (
        select(ClassSection)
        .where(ClassSection.grade_level.in_(settings.senior_grade_level_list))
        .where(ClassSection.is_active.is_(True))
        .order_by(ClassSection.grade_level.asc(), ClassSection.name.asc(), ClassSection.id.asc())
    )
    q = where_tenant(q, ClassSection, tenant_id)
    return list(db.execute(q).scalars().all())


def _core_subject_ids(db: Session, *, tenant_id: uuid.UUID) -> list[uuid.UUID]:
    codes = settings.core_subject_code_list
    rows = db.execute(where_tenant(select(Subject.code, Subject.id).where(Subject.code.in_(codes)), Subject, tenant_id)).all()
    by_code = {code: subject_id for code, subject_id in rows}

    missing = [c for c in codes if c not in by_code]
    if missing:
        raise MissingSubjectsError(missing)
    return [by_code[c] for c in codes]


def _dedupe(ids: Sequence[uuid.UUID]) -> list[uuid.UUID]:
    seen: set[uuid.UUID] = set()
    out: list[uuid.UUID] = []
    for i in ids:
        if i not in seen:
            seen.add(i)
            out.append(i)
    return out


def _link_subjects_to_classes(
    db: Session,
    *,
    tenant_id: uuid.UUID,
    class_ids: Sequence[uuid.UUID],
    subject_ids: Sequence[uuid.UUID],
) -> int:
    existing = set(
        db.execute(
            where_tenant(
                select(ClassSubject.class_id, ClassSubject.subject_id).where(ClassSubject.class_id.in_(list(class_ids))),
                ClassSubject,
                tenant_id,
            )
        )
        .tuples()
        .all()
    )

    added = 0
    for class_id in class_ids:
        for subject_id in subject_ids:
            if (class_id, subject_id) in existing:
                continue
            db.add(ClassSubject(tenant_id=tenant_id, class_id=class_id, subject_id=subject_id))
            added += 1
    return added


def resolve_subject_scope(
    db: Session,
    *,
    tenant_id: uuid.UUID,
    class_ids: Sequence[uuid.UUID],
    scope: SubjectScope,
    elective_subject_ids: Sequence[uuid.UUID] = (),
) -> dict[uuid.UUID, list[uuid.UUID]]:
    """Subjects to rotate through, per class.

    ``full`` also links the combined subject set to every given class. Those rows
    are only added to the session; the caller's transaction decides whether they
    are kept.
    """

    if scope == "assigned":
        subjects_by_class: dict[uuid.UUID, list[uuid.UUID]] = defaultdict(list)
        if class_ids:
            q = (
                select(ClassSubject.class_id, ClassSubject.subject_id)
                .join(Subject, Subject.id == ClassSubject.subject_id)
                .where(ClassSubject.class_id.in_(list(class_ids)))
                .order_by(Subject.code.asc())
            )
            q = where_tenant(q, ClassSubject, tenant_id)
            for class_id, subject_id in db.execute(q).all():
                subjects_by_class[class_id].append(subject_id)
        return {class_id: list(subjects_by_class.get(class_id, [])) for class_id in class_ids}

    if scope not in ("core", "full"):
        raise InvalidInputError(f"Unknown subject scope: {scope!r}.")

    core_ids = _core_subject_ids(db, tenant_id=tenant_id)
    combined = core_ids

    if scope == "full":
        electives = list(elective_subject_ids or [])
        if len(electives) != REQUIRED_ELECTIVE_COUNT:
            raise InvalidInputError(f"Select exactly {REQUIRED_ELECTIVE_COUNT} elective subjects.")
        unknown = set(electives) - ids_in_tenant(db, Subject, electives, tenant_id)
        if unknown:
            raise InvalidInputError(
                "Elective subjects not found in your school.",
                details={"subject_ids": sorted(str(s) for s in unknown)},
            )

        combined = _dedupe([*core_ids, *electives])
        added = _link_subjects_to_classes(db, tenant_id=tenant_id, class_ids=class_ids, subject_ids=combined)
        logger.info("Full subject scope linked %d new class-subject rows across %d classes", added, len(class_ids))

    return {class_id: list(combined) for class_id in class_ids}
