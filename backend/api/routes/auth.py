from __future__ import annotations

import logging
import threading
import time
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from api.deps import get_current_user
from core.config import settings
from core.database import get_db
from core.errors import ForbiddenError, NotAuthenticatedError
from core.security import create_access_token, verify_password
from models.tenant import Tenant
from models.user import User
from schemas.auth import LoginRequest, LoginResponse, MeResponse


router = APIRouter()

logger = logging.getLogger(__name__)


# Simple in-memory rate limiting for login.
# NOTE: In multi-worker deployments this is per-worker.
_LOGIN_WINDOW_SECONDS = 60
_LOGIN_MAX_ATTEMPTS_PER_KEY = 12
_login_attempts: dict[str, list[float]] = {}
_login_attempts_lock = threading.Lock()


def _rate_limit_key(request: Request, username: str) -> str:
    ip = request.client.host if request.client else "unknown"
    return f"{ip}:{username.lower().strip()}"


def _prune_login_attempts(now: float) -> None:
    stale = [k for k, h in _login_attempts.items() if not h or now - h[-1] >= _LOGIN_WINDOW_SECONDS]
    for key in stale:
        del _login_attempts[key]


def _enforce_login_rate_limit(request: Request, username: str) -> None:
    key = _rate_limit_key(request, username)
    now = time.time()
    with _login_attempts_lock:
        _prune_login_attempts(now)
        history = [t for t in _login_attempts.get(key, []) if now - t < _LOGIN_WINDOW_SECONDS]
        history.append(now)
        _login_attempts[key] = history
    if len(history) > _LOGIN_MAX_ATTEMPTS_PER_KEY:
        raise HTTPException(status_code=429, detail="RATE_LIMITED")


def _resolve_tenant_id_for_auth(db: Session, tenant_hint: str | None, *, username_hint: str):
    hint = (tenant_hint or "").strip()
    if not hint:
        # Login without a school field works when the username exists in exactly one school.
        rows = db.execute(
            select(User.tenant_id).where(func.lower(User.username) == func.lower(username_hint))
        ).all()
        distinct = {r[0] for r in rows}
        if len(distinct) == 1:
            return distinct.pop()
        if len(distinct) > 1:
            raise NotAuthenticatedError("School is required for this username.")
        hint = settings.seed_tenant_slug

    row = db.execute(select(Tenant.id).where(func.lower(Tenant.slug) == func.lower(hint))).first()
    if row is None:
        row = db.execute(select(Tenant.id).where(func.lower(Tenant.name) == func.lower(hint))).first()
    if row is None:
        raise NotAuthenticatedError("Invalid username or password.")
    return row[0]


@router.post("/login", response_model=LoginResponse)
def login(
    payload: LoginRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
) -> LoginResponse:
    username = str(payload.username or "").strip()
    _enforce_login_rate_limit(request, username)

    tenant_id = _resolve_tenant_id_for_auth(db, payload.tenant, username_hint=username)
    ip = request.client.host if request.client else "unknown"

    q_user = (
        select(User)
        .where(func.lower(User.username) == func.lower(username))
        .where(User.tenant_id == tenant_id)
    )
    user = db.execute(q_user).scalar_one_or_none()
    if user is None:
        logger.warning("Login failed (unknown user) ip=%s username=%r", ip, username)
        raise NotAuthenticatedError("Invalid username or password.")
    if not user.is_active:
        logger.warning("Login failed (disabled user) ip=%s username=%r", ip, username)
        raise ForbiddenError("User account is disabled.")

    password = str(payload.password or "")
    password_ok = verify_password(password, user.password_hash)
    if not password_ok and password != password.strip():
        # Copy/paste often adds a trailing newline or space.
        password_ok = verify_password(password.strip(), user.password_hash)

    if not password_ok:
        logger.warning("Login failed (bad password) ip=%s username=%r", ip, username)
        raise NotAuthenticatedError("Invalid username or password.")

    token = create_access_token(
        user_id=str(user.id),
        username=user.username,
        role=user.role,
        tenant_id=str(user.tenant_id),
    )

    response.set_cookie(
        key="access_token",
        value=token,
        httponly=True,
        secure=settings.environment == "production",
        samesite="lax",
        max_age=settings.access_token_expire_minutes * 60,
        path="/",
    )
    logger.info("Login success ip=%s username=%r tenant=%s", ip, user.username, user.tenant_id)
    return LoginResponse(ok=True, access_token=token)


@router.post("/logout")
def logout(response: Response) -> dict[str, Any]:
    response.delete_cookie(key="access_token", path="/")
    return {"ok": True}


@router.get("/me", response_model=MeResponse)
def me(current_user: User = Depends(get_current_user)) -> MeResponse:
    return MeResponse(
        id=current_user.id,
        tenant_id=current_user.tenant_id,
        username=current_user.username,
        role=current_user.role,
        is_active=current_user.is_active,
        created_at=current_user.created_at,
    )
