from __future__ import annotations

from fastapi import APIRouter

from api.routes import auth, timetable


api_router = APIRouter()
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])

# Role checks are per endpoint: teachers may read slots, only admins write.
api_router.include_router(timetable.router, prefix="/timetable", tags=["timetable"])
