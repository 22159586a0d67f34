from datetime import date, datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class AcademicYearCreate(BaseModel):
    """Create academic year. name must be unique."""

    name: str = Field(..., min_length=1, max_length=50, description="e.g. 2025/2026")
    start_date: date = Field(..., description="Academic year start date")
    end_date: date = Field(..., description="Academic year end date (must be after start_date)")
    is_active: bool = Field(False, description="If true, every other academic year is deactivated")


class AcademicYearResponse(BaseModel):
    id: UUID
    name: str
    start_date: date
    end_date: date
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
