from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.schemas import CurrentUser
from app.core.exceptions import ServiceError
from app.db.session import get_db

from .schemas import SemesterCreate, SemesterResponse
from . import service

router = APIRouter(prefix="/api/v1/semesters", tags=["semesters"])


@router.post("", response_model=SemesterResponse, status_code=status.HTTP_201_CREATED)
async def create_semester(
    payload: SemesterCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> SemesterResponse:
    try:
        return await service.create_semester(db, current_user, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("", response_model=List[SemesterResponse])
async def list_semesters(
    academic_year_id: Optional[UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[SemesterResponse]:
    return await service.list_semesters(db, academic_year_id=academic_year_id)


@router.get("/active", response_model=SemesterResponse)
async def get_active_semester(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> SemesterResponse:
    sem = await service.get_active_semester(db)
    if not sem:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No active semester")
    return service._to_response(sem)


@router.post("/{semester_id}/activate", response_model=SemesterResponse)
async def activate_semester(
    semester_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> SemesterResponse:
    try:
        return await service.activate_semester(db, current_user, semester_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
