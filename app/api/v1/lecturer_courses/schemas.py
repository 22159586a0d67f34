from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class LecturerCourseCreate(BaseModel):
    lecturer_id: UUID = Field(..., description="A STAFF user")
    course_id: UUID
    semester_id: UUID


class LecturerCourseResponse(BaseModel):
    id: UUID
    lecturer_id: UUID
    course_id: UUID
    semester_id: UUID
    created_at: datetime

    class Config:
        from_attributes = True
