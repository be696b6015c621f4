from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from core.config import settings
from core.database import ENGINE, SessionLocal
from core.security import hash_password
from core.tenancy import tenant_context
# Registers every table on Base.metadata.
import models  # noqa: F401
from models.base import Base
from models.tenant import Tenant
from models.user import User


logger = logging.getLogger(__name__)


def _ensure_schema() -> None:
    # create_all only adds missing tables; it never alters existing ones.
    Base.metadata.create_all(ENGINE)


def _seed_admin_if_configured(db: Session) -> None:
    username = settings.seed_admin_username
    password = settings.seed_admin_password
    if not username or not password:
        return

    slug = settings.seed_tenant_slug
    tenant = db.execute(select(Tenant).where(Tenant.slug == slug)).scalar_one_or_none()
    if tenant is None:
        tenant = Tenant(slug=slug, name=slug.replace("-", " ").title())
        db.add(tenant)
        db.flush()

    existing = db.execute(
        select(User.id)
        .where(User.tenant_id == tenant.id)
        .where(func.lower(User.username) == func.lower(username))
    ).first()
    if existing is not None:
        db.commit()
        return

    with tenant_context(tenant.id):
        db.add(
            User(
                tenant_id=tenant.id,
                username=username,
                password_hash=hash_password(password),
                role="ADMIN",
                is_active=True,
            )
        )
        db.commit()

    logger.warning(
        "Seeded initial admin user from env (username=%r, school=%r). Change the password after first login.",
        username,
        slug,
    )


def bootstrap_schema() -> None:
    """Create missing tables and optionally seed a school admin.

    Runs on startup when AUTO_CREATE_SCHEMA is set. Safe to run on every start.
    """

    _ensure_schema()
    db = SessionLocal()
    try:
        _seed_admin_if_configured(db)
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
