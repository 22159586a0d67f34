import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint, Uuid

from app.db.session import Base


class RegistrationCard(Base):
    """
    Proof of registration. One per (user, semester); issued only for an APPROVED registration.
    card_number is globally unique; the constraint is what protects concurrent issuance.
    """

    __tablename__ = "registration_cards"
    __table_args__ = (
        UniqueConstraint("user_id", "semester_id", name="uq_registration_card_user_semester"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    semester_id = Column(Uuid, ForeignKey("semesters.id", ondelete="RESTRICT"), nullable=False)
    card_number = Column(String(50), nullable=False, unique=True)
    issued_date = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)


class CardSequence(Base):
    """Per-semester counter for card numbers. Incremented in the issuing transaction."""

    __tablename__ = "card_sequences"

    semester_id = Column(Uuid, ForeignKey("semesters.id", ondelete="CASCADE"), primary_key=True)
    last_value = Column(Integer, nullable=False, default=0)
