from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.schemas import CurrentUser
from app.core.exceptions import ServiceError, error_detail
from app.db.session import get_db

from .schemas import (
    TimetableCreate,
    TimetablePublish,
    TimetableResponse,
    TimetableSlotCreate,
    TimetableSlotResponse,
    TimetableSlotUpdate,
    UserTimetableResponse,
)
from . import service

router = APIRouter(prefix="/api/v1/timetables", tags=["timetables"])


@router.post("", response_model=TimetableResponse, status_code=status.HTTP_201_CREATED)
async def create_timetable(
    payload: TimetableCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> TimetableResponse:
    try:
        return await service.create_timetable(db, current_user, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=error_detail(e))


@router.get("", response_model=List[TimetableResponse])
async def list_timetables(
    semester_id: Optional[UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[TimetableResponse]:
    """Timetables without their slots; fetch one by id for the slots."""
    return await service.list_timetables(db, semester_id=semester_id)


@router.get("/published", response_model=TimetableResponse)
async def get_published_timetable(
    semester_id: UUID = Query(...),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> TimetableResponse:
    try:
        return await service.get_published(db, semester_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=error_detail(e))


@router.get("/me", response_model=UserTimetableResponse)
async def get_my_timetable(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> UserTimetableResponse:
    """Published timetable of the active semester filtered to the caller's courses."""
    try:
        return await service.get_user_timetable(db, current_user)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=error_detail(e))


@router.get("/{timetable_id}", response_model=TimetableResponse)
async def get_timetable(
    timetable_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> TimetableResponse:
    try:
        return await service.get_timetable(db, timetable_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=error_detail(e))


@router.delete("/{timetable_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_timetable(
    timetable_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> Response:
    try:
        await service.delete_timetable(db, current_user, timetable_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=error_detail(e))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{timetable_id}/slots",
    response_model=TimetableSlotResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_slot(
    timetable_id: UUID,
    payload: TimetableSlotCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> TimetableSlotResponse:
    """Add a slot. 409 lists every overlapping slot on that day, whatever the room."""
    try:
        return await service.add_slot(db, current_user, timetable_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=error_detail(e))


@router.put("/{timetable_id}/slots/{slot_id}", response_model=TimetableSlotResponse)
async def update_slot(
    timetable_id: UUID,
    slot_id: UUID,
    payload: TimetableSlotUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> TimetableSlotResponse:
    try:
        return await service.update_slot(db, current_user, timetable_id, slot_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=error_detail(e))


@router.delete("/{timetable_id}/slots/{slot_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_slot(
    timetable_id: UUID,
    slot_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> Response:
    try:
        await service.delete_slot(db, current_user, timetable_id, slot_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=error_detail(e))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/{timetable_id}/publish", response_model=TimetableResponse)
async def publish_timetable(
    timetable_id: UUID,
    payload: TimetablePublish,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> TimetableResponse:
    """Publish (unpublishing the semester's other timetables) or unpublish. Registrar only."""
    try:
        return await service.set_published(db, current_user, timetable_id, payload.is_published)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=error_detail(e))
