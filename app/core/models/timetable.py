"""
Timetable per semester and its slots. At most one timetable per semester is published.
Within a timetable no two slots on the same day overlap, whatever the room.
"""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Time, Uuid
from sqlalchemy.orm import relationship

from app.db.session import Base


class Timetable(Base):
    __tablename__ = "timetables"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    semester_id = Column(Uuid, ForeignKey("semesters.id", ondelete="RESTRICT"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    is_published = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    semester = relationship("Semester")
    slots = relationship(
        "TimetableSlot",
        back_populates="timetable",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class TimetableSlot(Base):
    __tablename__ = "timetable_slots"
    __table_args__ = (Index("ix_timetable_slots_timetable_day", "timetable_id", "day_of_week"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    timetable_id = Column(Uuid, ForeignKey("timetables.id", ondelete="CASCADE"), nullable=False)
    course_id = Column(Uuid, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    lecturer_course_id = Column(Uuid, ForeignKey("lecturer_courses.id", ondelete="SET NULL"), nullable=True)
    day_of_week = Column(Integer, nullable=False)  # 0=Monday .. 6=Sunday
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    room_number = Column(String(50), nullable=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    timetable = relationship("Timetable", back_populates="slots")
