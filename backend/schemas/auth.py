from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, Field


class LoginRequest(BaseModel):
    # School slug or name. Optional when the username is unique across schools.
    tenant: str | None = Field(default=None, max_length=100)
    username: str = Field(min_length=1, max_length=100)
    password: str = Field(min_length=1, max_length=256)


class LoginResponse(BaseModel):
    ok: bool = True
    access_token: str
    token_type: str = "bearer"


class MeResponse(BaseModel):
    id: uuid.UUID
    tenant_id: uuid.UUID
    username: str
    role: str
    is_active: bool
    created_at: datetime | None = None
