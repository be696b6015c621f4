from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse

from sqlalchemy import text
from sqlalchemy.exc import OperationalError as SAOperationalError
from sqlalchemy.exc import SQLAlchemyError

from api.router import api_router
from core.bootstrap import bootstrap_schema
from core.config import settings
from core.database import DatabaseUnavailableError, ENGINE, is_transient_db_connectivity_error
from core.errors import TimetableError
from core.logging import setup_logging


logger = logging.getLogger(__name__)


def _error(status_code: int, code: str, message: str, details: dict | None = None) -> JSONResponse:
    content: dict = {"code": code, "message": message}
    if details:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


def _db_unavailable_response() -> JSONResponse:
    return _error(503, "DATABASE_UNAVAILABLE", "Database temporarily unavailable. Please retry.")


@asynccontextmanager
async def _lifespan(_app: FastAPI):
    if settings.auto_create_schema:
        bootstrap_schema()
    yield


def create_app() -> FastAPI:
    setup_logging(environment=settings.environment)
    is_production = settings.environment == "production"
    app = FastAPI(
        title="Senior Timetable API",
        version="0.1.0",
        docs_url=None if is_production else "/docs",
        redoc_url=None if is_production else "/redoc",
        openapi_url=None if is_production else "/openapi.json",
        lifespan=_lifespan,
    )

    @app.exception_handler(TimetableError)
    def _timetable_error(_request: Request, exc: TimetableError):
        return _error(exc.status_code, exc.code, exc.message, exc.details)

    @app.exception_handler(RequestValidationError)
    def _validation_error(_request: Request, exc: RequestValidationError):
        errors = [
            {"loc": [str(p) for p in e.get("loc", ())], "msg": str(e.get("msg", ""))}
            for e in exc.errors()
        ]
        return _error(422, "invalid_input", "Request validation failed.", {"errors": errors})

    @app.exception_handler(DatabaseUnavailableError)
    def _db_unavailable(_request: Request, exc: DatabaseUnavailableError):
        logger.warning("Database unavailable (503)", exc_info=exc)
        return _db_unavailable_response()

    @app.exception_handler(SAOperationalError)
    def _sqlalchemy_operational_error(_request: Request, exc: SAOperationalError):
        if is_transient_db_connectivity_error(exc):
            logger.warning("Database transient connectivity error (503)", exc_info=exc)
            return _db_unavailable_response()
        logger.error("Database operation failed", exc_info=exc)
        return _error(500, "unknown_error", "Database operation failed.")

    @app.exception_handler(SQLAlchemyError)
    def _sqlalchemy_error(_request: Request, exc: SQLAlchemyError):
        logger.error("Unhandled database error", exc_info=exc)
        return _error(500, "unknown_error", "Database operation failed.")

    @app.exception_handler(Exception)
    def _unhandled_error(request: Request, exc: Exception):
        logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        return _error(500, "unknown_error", "Unexpected server error.")

    allow_origins = [settings.frontend_origin]
    allow_origin_regex = None
    if not is_production:
        # Dev-friendly: allow the configured origin and any localhost port.
        allow_origin_regex = r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$"

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_origin_regex=allow_origin_regex,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health() -> dict:
        # Always respond; reflect DB availability without crashing.
        db_status = "ok"
        try:
            with ENGINE.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError:
            db_status = "down"

        return {"app": "ok", "database": db_status}

    app.include_router(api_router, prefix="/api")
    return app


app = create_app()
