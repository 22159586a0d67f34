import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, Date, DateTime, String, Uuid
from sqlalchemy.orm import relationship

from app.db.session import Base


class AcademicYear(Base):
    """
    Academic year. At most one has is_active = true; the activation write path
    deactivates every other year in the same transaction.
    """

    __tablename__ = "academic_years"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(50), nullable=False, unique=True)  # e.g. "2025/2026"
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    is_active = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    semesters = relationship("Semester", back_populates="academic_year")
