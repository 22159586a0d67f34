from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.schemas import CurrentUser
from app.core.exceptions import ServiceError, error_detail
from app.db.session import get_db

from .schemas import LecturerCourseCreate, LecturerCourseResponse
from . import service

router = APIRouter(prefix="/api/v1/lecturer-courses", tags=["lecturer-courses"])


@router.post("", response_model=LecturerCourseResponse, status_code=status.HTTP_201_CREATED)
async def create_lecturer_course(
    payload: LecturerCourseCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> LecturerCourseResponse:
    try:
        return await service.create_lecturer_course(db, current_user, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=error_detail(e))


@router.get("", response_model=List[LecturerCourseResponse])
async def list_lecturer_courses(
    lecturer_id: Optional[UUID] = Query(None),
    course_id: Optional[UUID] = Query(None),
    semester_id: Optional[UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[LecturerCourseResponse]:
    return await service.list_lecturer_courses(
        db, lecturer_id=lecturer_id, course_id=course_id, semester_id=semester_id
    )


@router.delete("/{lecturer_course_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_lecturer_course(
    lecturer_course_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> Response:
    try:
        await service.delete_lecturer_course(db, current_user, lecturer_course_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=error_detail(e))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
