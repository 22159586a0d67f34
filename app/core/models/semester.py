import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, String, Uuid
from sqlalchemy.orm import relationship

from app.db.session import Base


class Semester(Base):
    """
    Semester. Name and code are unique; at most one semester is active system-wide.
    Never hard-deleted while registrations reference it (FK RESTRICT).
    """

    __tablename__ = "semesters"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    academic_year_id = Column(Uuid, ForeignKey("academic_years.id", ondelete="RESTRICT"), nullable=True)
    name = Column(String(100), nullable=False, unique=True)
    # Short code embedded in registration card numbers, e.g. "S1"
    code = Column(String(20), nullable=False, unique=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    registration_deadline = Column(Date, nullable=True)
    course_upload_deadline = Column(Date, nullable=True)
    is_active = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    academic_year = relationship("AcademicYear", back_populates="semesters")
