from datetime import date, datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class SemesterCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, description="Unique, e.g. 'Semester I 2025/2026'")
    code: str = Field(..., min_length=1, max_length=20, description="Short unique code used in card numbers, e.g. S1")
    academic_year_id: Optional[UUID] = None
    start_date: date
    end_date: date
    registration_deadline: Optional[date] = None
    course_upload_deadline: Optional[date] = None
    is_active: bool = Field(False, description="If true, every other semester is deactivated")


class SemesterResponse(BaseModel):
    id: UUID
    academic_year_id: Optional[UUID] = None
    name: str
    code: str
    start_date: date
    end_date: date
    registration_deadline: Optional[date] = None
    course_upload_deadline: Optional[date] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
