from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


# ----- Requests -----

class RegistrationSubmit(BaseModel):
    """Student submits a semester registration with the courses they want."""

    semester_id: UUID
    course_ids: List[UUID] = Field(default_factory=list, description="At least one course, no duplicates")


class RegistrationReject(BaseModel):
    reason: Optional[str] = Field(None, max_length=2000, description="Required; shown to the student")


class CourseDecision(BaseModel):
    comments: Optional[str] = Field(None, max_length=2000)


class CourseAdd(BaseModel):
    course_id: UUID


# ----- Responses -----

class ApprovalResponse(BaseModel):
    id: UUID
    course_upload_id: Optional[UUID] = None  # None once the course was withdrawn
    course_id: UUID
    user_id: UUID
    semester_id: UUID
    approver_id: Optional[UUID] = None
    status: str
    comments: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class CourseUploadResponse(BaseModel):
    id: UUID
    registration_id: UUID
    course_id: UUID
    user_id: UUID
    semester_id: UUID
    status: str
    created_at: datetime
    updated_at: datetime
    approvals: List[ApprovalResponse] = []

    class Config:
        from_attributes = True


class RegistrationResponse(BaseModel):
    id: UUID
    user_id: UUID
    semester_id: UUID
    status: str
    rejection_reason: Optional[str] = None
    decided_by: Optional[UUID] = None
    decided_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    course_uploads: List[CourseUploadResponse] = []

    class Config:
        from_attributes = True


class RegistrationCardResponse(BaseModel):
    id: UUID
    user_id: UUID
    semester_id: UUID
    card_number: str
    issued_date: datetime

    class Config:
        from_attributes = True


class RegistrationDecisionResponse(BaseModel):
    """Result of approve/reject. registration_card is set on approval."""

    registration: RegistrationResponse
    registration_card: Optional[RegistrationCardResponse] = None
