from enum import Enum


class UserRole(str, Enum):
    ADMIN = "ADMIN"
    REGISTRAR = "REGISTRAR"
    STAFF = "STAFF"
    STUDENT = "STUDENT"


class RegistrationStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class NotificationType(str, Enum):
    INFO = "INFO"
    REGISTRATION = "REGISTRATION"
    COURSE_APPROVAL = "COURSE_APPROVAL"
    COURSE_REJECTION = "COURSE_REJECTION"


APPROVER_ROLES = (UserRole.ADMIN.value, UserRole.REGISTRAR.value)
TIMETABLE_EDITOR_ROLES = (UserRole.STAFF.value, UserRole.REGISTRAR.value)
