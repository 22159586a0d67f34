from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.schemas import CurrentUser
from app.core.exceptions import ServiceError
from app.db.session import get_db

from .schemas import AcademicYearCreate, AcademicYearResponse
from . import service

router = APIRouter(prefix="/api/v1/academic-years", tags=["academic-years"])


@router.post("", response_model=AcademicYearResponse, status_code=status.HTTP_201_CREATED)
async def create_academic_year(
    payload: AcademicYearCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> AcademicYearResponse:
    try:
        return await service.create_academic_year(db, current_user, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("", response_model=List[AcademicYearResponse])
async def list_academic_years(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[AcademicYearResponse]:
    return await service.list_academic_years(db)


@router.get("/active", response_model=AcademicYearResponse)
async def get_active_academic_year(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> AcademicYearResponse:
    ay = await service.get_active_academic_year(db)
    if not ay:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No active academic year")
    return ay


@router.post("/{academic_year_id}/activate", response_model=AcademicYearResponse)
async def activate_academic_year(
    academic_year_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> AcademicYearResponse:
    """Activate this academic year; every other year becomes inactive."""
    try:
        return await service.activate_academic_year(db, current_user, academic_year_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
