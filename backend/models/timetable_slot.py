from __future__ import annotations

import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, String, Time, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from models.base import Base


class TimetableSlot(Base):
    __tablename__ = "timetable_slots"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    academic_term_id = Column(
        UUID(as_uuid=True),
        ForeignKey("academic_terms.id", ondelete="CASCADE"),
        nullable=False,
    )
    teacher_id = Column(UUID(as_uuid=True), ForeignKey("teachers.id", ondelete="CASCADE"), nullable=False)
    class_id = Column(UUID(as_uuid=True), ForeignKey("classes.id", ondelete="CASCADE"), nullable=False)
    subject_id = Column(UUID(as_uuid=True), ForeignKey("subjects.id", ondelete="CASCADE"), nullable=False)
    day_of_week = Column(Integer, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    room = Column(String(50), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint("day_of_week >= 1 and day_of_week <= 5", name="ck_timetable_slots_day"),
        CheckConstraint("start_time < end_time", name="ck_timetable_slots_time_range"),
        # Natural key: drives generator upserts.
        UniqueConstraint(
            "academic_term_id",
            "teacher_id",
            "class_id",
            "subject_id",
            "day_of_week",
            "start_time",
            name="uq_timetable_slots_natural_key",
        ),
        Index("ix_timetable_slots_term_teacher_day", "academic_term_id", "teacher_id", "day_of_week"),
        Index("ix_timetable_slots_term_class_day", "academic_term_id", "class_id", "day_of_week"),
    )
