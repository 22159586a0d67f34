import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, String, Uuid

from app.db.session import Base


class User(Base):
    """
    Portal user. Accounts and credentials are owned by the external auth system;
    this table mirrors the identity and role the workflow engine needs.
    """

    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    full_name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    # ADMIN | REGISTRAR | STAFF | STUDENT
    role = Column(String(50), nullable=False)
    status = Column(String(20), nullable=False, default="ACTIVE")
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
