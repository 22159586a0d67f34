from app.auth.models import User
from app.core.models.academic_year import AcademicYear
from app.core.models.semester import Semester
from app.core.models.course import Course, LecturerCourse
from app.core.models.registration import Approval, CourseUpload, Registration
from app.core.models.registration_card import CardSequence, RegistrationCard
from app.core.models.timetable import Timetable, TimetableSlot
from app.core.models.notification import Notification

__all__ = [
    "AcademicYear",
    "Approval",
    "CardSequence",
    "Course",
    "CourseUpload",
    "LecturerCourse",
    "Notification",
    "Registration",
    "RegistrationCard",
    "Semester",
    "Timetable",
    "TimetableSlot",
    "User",
]
