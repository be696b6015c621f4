from models.academic_term import AcademicTerm
from models.audit_log import AuditLog
from models.class_section import ClassSection
from models.class_subject import ClassSubject
from models.subject import Subject
from models.teacher import Teacher
from models.teacher_term_assignment import TeacherTermAssignment
from models.tenant import Tenant
from models.timetable_slot import TimetableSlot
from models.user import User

__all__ = [
	"AcademicTerm",
	"AuditLog",
	"ClassSection",
	"ClassSubject",
	"Subject",
	"Teacher",
	"TeacherTermAssignment",
	"Tenant",
	"TimetableSlot",
	"User",
]
