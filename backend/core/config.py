from __future__ import annotations

import json
from pathlib import Path

from pydantic import Field, field_validator
from pydantic.aliases import AliasChoices
from pydantic_settings import BaseSettings, SettingsConfigDict


BACKEND_DIR = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=BACKEND_DIR / ".env", env_file_encoding="utf-8")

    database_url: str

    # Auth
    jwt_secret_key: str = Field(
        validation_alias=AliasChoices("jwt_secret_key", "jwt_secret", "JWT_SECRET_KEY", "JWT_SECRET")
    )
    jwt_algorithm: str = Field(default="HS256", validation_alias=AliasChoices("jwt_algorithm", "JWT_ALGORITHM"))
    access_token_expire_minutes: int = Field(
        default=480,
        validation_alias=AliasChoices("access_token_expire_minutes", "ACCESS_TOKEN_EXPIRE_MINUTES"),
    )

    # Optional bootstrap: create tables and seed a school + admin on startup.
    # The admin is only seeded if BOTH username + password are provided.
    auto_create_schema: bool = Field(
        default=False,
        validation_alias=AliasChoices("auto_create_schema", "AUTO_CREATE_SCHEMA"),
    )
    seed_tenant_slug: str = Field(
        default="default",
        validation_alias=AliasChoices("seed_tenant_slug", "SEED_TENANT_SLUG"),
    )
    seed_admin_username: str | None = Field(
        default=None,
        validation_alias=AliasChoices("seed_admin_username", "SEED_ADMIN_USERNAME"),
    )
    seed_admin_password: str | None = Field(
        default=None,
        validation_alias=AliasChoices("seed_admin_password", "SEED_ADMIN_PASSWORD"),
    )

    # Runtime
    environment: str = Field(default="development", validation_alias=AliasChoices("environment", "ENVIRONMENT"))
    frontend_origin: str = Field(
        default="http://localhost:3000",
        validation_alias=AliasChoices("frontend_origin", "FRONTEND_ORIGIN"),
    )

    # Senior-school timetable generation
    # Comma separated so the values can be set from a plain env var.
    core_subject_codes: str = Field(
        default="ENG,KIS,MATH,CSL",
        validation_alias=AliasChoices("core_subject_codes", "CORE_SUBJECT_CODES"),
    )
    senior_grade_levels: str = Field(
        default="10,11,12",
        validation_alias=AliasChoices("senior_grade_levels", "SENIOR_GRADE_LEVELS"),
    )
    default_max_periods_per_teacher_week: int = Field(
        default=28,
        ge=1,
        le=60,
        validation_alias=AliasChoices(
            "default_max_periods_per_teacher_week",
            "DEFAULT_MAX_PERIODS_PER_TEACHER_WEEK",
        ),
    )

    @field_validator("frontend_origin")
    @classmethod
    def _normalize_frontend_origin(cls, v: str) -> str:
        # Starlette CORS expects the Origin to match exactly (no trailing slash).
        return v.strip().rstrip("/")

    @field_validator("environment")
    @classmethod
    def _normalize_environment(cls, v: str) -> str:
        return (v or "development").strip().lower()

    @field_validator("core_subject_codes")
    @classmethod
    def _normalize_core_subject_codes(cls, v: str) -> str:
        raw = (v or "").strip()
        # Accept a JSON list as well as a comma separated string.
        items = json.loads(raw) if raw.startswith("[") else raw.split(",")
        codes = [str(c).strip().upper() for c in items if str(c).strip()]
        if not codes:
            raise ValueError("CORE_SUBJECT_CODES must list at least one subject code")
        return ",".join(codes)

    @field_validator("senior_grade_levels")
    @classmethod
    def _normalize_senior_grade_levels(cls, v: str) -> str:
        try:
            levels = sorted({int(x) for x in (v or "").split(",") if x.strip()})
        except ValueError as exc:
            raise ValueError("SENIOR_GRADE_LEVELS must be a comma separated list of integers") from exc
        if not levels:
            raise ValueError("SENIOR_GRADE_LEVELS must list at least one grade level")
        return ",".join(str(x) for x in levels)

    @field_validator("seed_admin_username")
    @classmethod
    def _normalize_seed_admin_username(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip()
        return v or None

    @property
    def core_subject_code_list(self) -> list[str]:
        return self.core_subject_codes.split(",")

    @property
    def senior_grade_level_list(self) -> list[int]:
        return [int(x) for x in self.senior_grade_levels.split(",")]


settings = Settings()
