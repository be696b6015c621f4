from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, time
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from models.audit_log import AuditLog


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuditEvent:
    tenant_id: uuid.UUID
    user_id: uuid.UUID | None
    action: str
    resource_type: str
    resource_id: uuid.UUID | None = None
    changes: dict[str, Any] = field(default_factory=dict)


def _jsonable(value: Any) -> Any:
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, time):
        return value.strftime("%H:%M")
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_jsonable(v) for v in value]
    return value


def emit_audit_event(db: Session, event: AuditEvent) -> None:
    """Record an audit event after the audited change has been committed.

    Fire-and-forget: a failure here is logged and rolled back, never raised, so
    it cannot undo or fail the operation being audited.
    """

    changes = _jsonable(event.changes)
    logger.info(
        "audit action=%s resource=%s:%s tenant=%s user=%s changes=%s",
        event.action,
        event.resource_type,
        event.resource_id,
        event.tenant_id,
        event.user_id,
        json.dumps(changes, sort_keys=True),
    )

    db.add(
        AuditLog(
            tenant_id=event.tenant_id,
            user_id=event.user_id,
            action=event.action,
            resource_type=event.resource_type,
            resource_id=event.resource_id,
            changes=changes,
        )
    )
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.warning("Failed to persist audit event action=%s", event.action, exc_info=True)
