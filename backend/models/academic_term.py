from __future__ import annotations

import uuid

from sqlalchemy import Boolean, CheckConstraint, Column, Date, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from models.base import Base


class AcademicTerm(Base):
    __tablename__ = "academic_terms"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    year = Column(Integer, nullable=False)
    term = Column(Integer, nullable=False)
    term_name = Column(String(100), nullable=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    is_current = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        CheckConstraint("term >= 1 and term <= 3", name="ck_academic_terms_term"),
        CheckConstraint("start_date <= end_date", name="ck_academic_terms_date_range"),
        UniqueConstraint("tenant_id", "year", "term", name="uq_academic_terms_tenant_year_term"),
    )
