"""Course catalog rows consumed by registration and timetabling. Catalog CRUD lives elsewhere."""

import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, String, UniqueConstraint, Uuid

from app.db.session import Base


class Course(Base):
    __tablename__ = "courses"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    code = Column(String(20), nullable=False, unique=True)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)


class LecturerCourse(Base):
    """A staff member assigned to teach a course in a semester."""

    __tablename__ = "lecturer_courses"
    __table_args__ = (
        UniqueConstraint("lecturer_id", "course_id", "semester_id", name="uq_lecturer_course_semester"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    lecturer_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    course_id = Column(Uuid, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    semester_id = Column(Uuid, ForeignKey("semesters.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
