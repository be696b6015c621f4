from __future__ import annotations

import uuid

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.orm import Session

from core.database import get_db
from core.errors import ForbiddenError, NotAuthenticatedError
from core.security import decode_token
from models.user import User


bearer_scheme = HTTPBearer(auto_error=False)


def _extract_token(request: Request, creds: HTTPAuthorizationCredentials | None) -> str | None:
    if creds is not None and creds.credentials:
        return creds.credentials
    cookie_token = request.cookies.get("access_token")
    return cookie_token or None


def get_current_user(
    request: Request,
    creds: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    cached = getattr(request.state, "current_user", None)
    if isinstance(cached, User):
        return cached

    token = _extract_token(request, creds)
    if not token:
        raise NotAuthenticatedError("Not authenticated.")
    try:
        payload = decode_token(token)
    except JWTError:
        raise NotAuthenticatedError("Invalid or expired token.")

    try:
        user_uuid = uuid.UUID(str(payload.get("sub")))
    except ValueError:
        raise NotAuthenticatedError("Invalid or expired token.")

    user = db.get(User, user_uuid)
    if user is None:
        raise NotAuthenticatedError("Invalid or expired token.")
    if not user.is_active:
        raise ForbiddenError("User account is disabled.")

    # A token is only valid for the school it was issued for.
    token_tenant_id = payload.get("tenant_id")
    if not token_tenant_id or str(user.tenant_id) != str(token_tenant_id):
        raise NotAuthenticatedError("Invalid or expired token.")

    request.state.current_user = user
    return user


def require_admin(current_user: User = Depends(get_current_user)) -> User:
    role = (current_user.role or "").upper()
    if role != "ADMIN":
        raise ForbiddenError("School admin access required.")
    return current_user


def require_staff(current_user: User = Depends(get_current_user)) -> User:
    """Admins and teachers. Teachers are narrowed to their own slots downstream."""

    role = (current_user.role or "").upper()
    if role not in {"ADMIN", "TEACHER"}:
        raise ForbiddenError("Staff access required.")
    return current_user

