from __future__ import annotations

import uuid

from sqlalchemy import select
from sqlalchemy.orm import Session


def where_tenant(stmt, model, tenant_id: uuid.UUID):
    # Every catalog/timetable row belongs to one school; there is no shared scope.
    return stmt.where(model.tenant_id == tenant_id)


def get_by_id(db: Session, model, obj_id: uuid.UUID, tenant_id: uuid.UUID):
    q = select(model).where(model.id == obj_id)
    q = where_tenant(q, model, tenant_id)
    return db.execute(q).scalars().first()


def ids_in_tenant(db: Session, model, obj_ids, tenant_id: uuid.UUID) -> set[uuid.UUID]:
    """Subset of ``obj_ids`` that exist and belong to ``tenant_id``."""

    wanted = set(obj_ids)
    if not wanted:
        return set()
    q = where_tenant(select(model.id).where(model.id.in_(wanted)), model, tenant_id)
    return set(db.execute(q).scalars().all())
