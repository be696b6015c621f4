import os
import uuid
from datetime import date

# Settings are read at import time; point them at a throwaway database first.
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import models  # noqa: F401
from api.routes import auth as auth_routes
from core.database import get_db
from core.security import create_access_token, hash_password
from main import app
from models.academic_term import AcademicTerm
from models.base import Base
from models.class_section import ClassSection
from models.class_subject import ClassSubject
from models.subject import Subject
from models.teacher import Teacher
from models.teacher_term_assignment import TeacherTermAssignment
from models.tenant import Tenant
from models.user import User


CORE_SUBJECTS = [("ENG", "English"), ("KIS", "Kiswahili"), ("MATH", "Mathematics"), ("CSL", "Community Service Learning")]


class SchoolFactory:
    """Creates committed catalog rows for one school (tenant)."""

    def __init__(self, db, slug: str):
        self.db = db
        self.tenant = Tenant(slug=slug, name=slug.title())
        db.add(self.tenant)
        db.commit()
        self.tenant_id = self.tenant.id

    def save(self, obj):
        self.db.add(obj)
        self.db.commit()
        return obj

    def user(self, username: str = "admin", role: str = "ADMIN", password: str = "secret-pass", is_active: bool = True) -> User:
        return self.save(
            User(
                tenant_id=self.tenant_id,
                username=username,
                password_hash=hash_password(password),
                role=role,
                is_active=is_active,
            )
        )

    def headers(self, user: User) -> dict[str, str]:
        token = create_access_token(
            user_id=str(user.id),
            username=user.username,
            role=user.role,
            tenant_id=str(user.tenant_id),
        )
        return {"Authorization": f"Bearer {token}"}

    def term(self, year: int = 2026, term: int = 1) -> AcademicTerm:
        return self.save(
            AcademicTerm(
                tenant_id=self.tenant_id,
                year=year,
                term=term,
                term_name=f"Term {term}",
                start_date=date(year, 1, 6),
                end_date=date(year, 4, 3),
                is_current=True,
            )
        )

    def school_class(self, name: str, grade_level: int = 10, is_active: bool = True) -> ClassSection:
        return self.save(
            ClassSection(tenant_id=self.tenant_id, name=name, grade_level=grade_level, is_active=is_active)
        )

    def subject(self, code: str, name: str | None = None, is_compulsory: bool = True) -> Subject:
        return self.save(
            Subject(tenant_id=self.tenant_id, code=code, name=name or code.title(), is_compulsory=is_compulsory)
        )

    def core_subjects(self) -> dict[str, Subject]:
        return {code: self.subject(code, name) for code, name in CORE_SUBJECTS}

    def teacher(self, code: str, user: User | None = None) -> Teacher:
        return self.save(
            Teacher(
                tenant_id=self.tenant_id,
                code=code,
                full_name=f"Teacher {code}",
                user_id=user.id if user is not None else None,
            )
        )

    def assign(self, teacher: Teacher, school_class: ClassSection, subject: Subject, term: AcademicTerm):
        return self.save(
            TeacherTermAssignment(
                tenant_id=self.tenant_id,
                teacher_id=teacher.id,
                class_id=school_class.id,
                subject_id=subject.id,
                academic_term_id=term.id,
            )
        )

    def link(self, school_class: ClassSection, subject: Subject) -> ClassSubject:
        return self.save(ClassSubject(tenant_id=self.tenant_id, class_id=school_class.id, subject_id=subject.id))


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture()
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def client(session_factory):
    auth_routes._login_attempts.clear()

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture()
def school(db_session):
    return SchoolFactory(db_session, "greenhill")


@pytest.fixture()
def other_school(db_session):
    return SchoolFactory(db_session, "riverside")


@pytest.fixture()
def admin(school):
    return school.user("admin", role="ADMIN")


@pytest.fixture()
def admin_headers(school, admin):
    return school.headers(admin)


@pytest.fixture()
def term(school):
    return school.term()


@pytest.fixture()
def random_id():
    return uuid.uuid4()
