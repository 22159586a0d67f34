from datetime import datetime, time
from typing import List, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field, field_serializer, field_validator

from .conflicts import parse_time_24


class TimetableCreate(BaseModel):
    semester_id: UUID
    name: str = Field(..., min_length=1, max_length=255)


class TimetablePublish(BaseModel):
    is_published: bool = Field(True, description="true publishes (unpublishing siblings), false unpublishes")


class TimetableSlotCreate(BaseModel):
    course_id: UUID
    lecturer_course_id: Optional[UUID] = None
    day_of_week: int = Field(..., ge=0, le=6, description="0=Monday .. 6=Sunday")
    start_time: Union[str, time] = Field(..., description="24-hour format, e.g. 09:00")
    end_time: Union[str, time] = Field(..., description="24-hour format, e.g. 09:45")
    room_number: str = Field(..., min_length=1, max_length=50)

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def parse_time(cls, v: Union[str, time]) -> time:
        return parse_time_24(v)


class TimetableSlotUpdate(BaseModel):
    course_id: Optional[UUID] = None
    lecturer_course_id: Optional[UUID] = None
    day_of_week: Optional[int] = Field(None, ge=0, le=6)
    start_time: Optional[Union[str, time]] = Field(None, description="24-hour format, e.g. 09:00")
    end_time: Optional[Union[str, time]] = Field(None, description="24-hour format, e.g. 09:45")
    room_number: Optional[str] = Field(None, min_length=1, max_length=50)

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def parse_time(cls, v: Optional[Union[str, time]]) -> Optional[time]:
        if v is None:
            return None
        return parse_time_24(v)


class TimetableSlotResponse(BaseModel):
    id: UUID
    timetable_id: UUID
    course_id: UUID
    lecturer_course_id: Optional[UUID] = None
    day_of_week: int
    start_time: time
    end_time: time
    room_number: str
    created_at: datetime

    class Config:
        from_attributes = True

    @field_serializer("start_time", "end_time")
    def serialize_time_24(self, t: time) -> str:
        """Output as 24-hour string HH:MM (e.g. 09:00, 09:45)."""
        return t.strftime("%H:%M")


class TimetableResponse(BaseModel):
    id: UUID
    semester_id: UUID
    name: str
    is_published: bool
    created_at: datetime
    updated_at: datetime
    slots: List[TimetableSlotResponse] = []

    class Config:
        from_attributes = True


class UserTimetableResponse(BaseModel):
    """Published timetable of the active semester, filtered to the caller's courses."""

    semester_id: UUID
    timetable_id: UUID
    timetable_name: str
    slots: List[TimetableSlotResponse] = []
