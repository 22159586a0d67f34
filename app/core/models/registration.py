"""
Semester registration and its course uploads.
Registration status and the status of every child course upload are written in one
transaction; a registrar decision on the registration overrides per-course decisions.
Approval rows are an append-only history of per-course decisions.
"""

import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Index, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from app.db.session import Base


class Registration(Base):
    __tablename__ = "registrations"
    __table_args__ = (
        UniqueConstraint("user_id", "semester_id", name="uq_registration_user_semester"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    semester_id = Column(Uuid, ForeignKey("semesters.id", ondelete="RESTRICT"), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="PENDING")  # PENDING | APPROVED | REJECTED
    rejection_reason = Column(Text, nullable=True)  # set iff REJECTED
    decided_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    decided_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    course_uploads = relationship(
        "CourseUpload",
        back_populates="registration",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class CourseUpload(Base):
    __tablename__ = "course_uploads"
    __table_args__ = (
        UniqueConstraint("user_id", "semester_id", "course_id", name="uq_course_upload_user_semester_course"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    registration_id = Column(Uuid, ForeignKey("registrations.id", ondelete="CASCADE"), nullable=False, index=True)
    course_id = Column(Uuid, ForeignKey("courses.id", ondelete="RESTRICT"), nullable=False)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    semester_id = Column(Uuid, ForeignKey("semesters.id", ondelete="RESTRICT"), nullable=False)
    status = Column(String(20), nullable=False, default="PENDING")
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    registration = relationship("Registration", back_populates="course_uploads")
    # No delete cascade: withdrawing a course detaches its history, the rows stay
    approvals = relationship(
        "Approval",
        back_populates="course_upload",
        cascade="save-update, merge",
        passive_deletes=True,
        order_by="Approval.created_at",
    )


class Approval(Base):
    """
    Immutable record of one approve/reject decision. Carries its own course, student and
    semester so the history outlives the course upload (course_upload_id is then NULL).
    """

    __tablename__ = "approvals"
    __table_args__ = (Index("ix_approvals_course_upload_created", "course_upload_id", "created_at"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    course_upload_id = Column(Uuid, ForeignKey("course_uploads.id", ondelete="SET NULL"), nullable=True)
    course_id = Column(Uuid, ForeignKey("courses.id", ondelete="RESTRICT"), nullable=False)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    semester_id = Column(Uuid, ForeignKey("semesters.id", ondelete="RESTRICT"), nullable=False)
    approver_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    status = Column(String(20), nullable=False)  # APPROVED | REJECTED
    comments = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    course_upload = relationship("CourseUpload", back_populates="approvals")
