from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.schemas import CurrentUser
from app.core.exceptions import ServiceError, error_detail
from app.db.session import get_db

from app.api.v1.registrations.schemas import ApprovalResponse, CourseDecision, CourseUploadResponse
from . import service

router = APIRouter(prefix="/api/v1/course-uploads", tags=["course-uploads"])


@router.get("", response_model=List[CourseUploadResponse])
async def list_course_uploads(
    user_id: Optional[UUID] = Query(None),
    semester_id: Optional[UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[CourseUploadResponse]:
    """Course uploads with their approval history. Students only see their own."""
    return await service.list_course_uploads(db, current_user, user_id=user_id, semester_id=semester_id)


@router.get("/approvals", response_model=List[ApprovalResponse])
async def list_approvals(
    user_id: Optional[UUID] = Query(None),
    semester_id: Optional[UUID] = Query(None),
    course_id: Optional[UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[ApprovalResponse]:
    """Approval history, including decisions on courses that were later withdrawn."""
    return await service.list_approvals(
        db, current_user, user_id=user_id, semester_id=semester_id, course_id=course_id
    )


@router.post("/{course_upload_id}/approve", response_model=CourseUploadResponse)
async def approve_course(
    course_upload_id: UUID,
    payload: Optional[CourseDecision] = None,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> CourseUploadResponse:
    """Registrar or the course lecturer approves one course of a pending registration."""
    try:
        return await service.approve_course(
            db, current_user, course_upload_id, payload.comments if payload else None
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=error_detail(e))


@router.post("/{course_upload_id}/reject", response_model=CourseUploadResponse)
async def reject_course(
    course_upload_id: UUID,
    payload: Optional[CourseDecision] = None,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> CourseUploadResponse:
    try:
        return await service.reject_course(
            db, current_user, course_upload_id, payload.comments if payload else None
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=error_detail(e))


@router.delete("/{course_upload_id}", status_code=status.HTTP_204_NO_CONTENT)
async def withdraw_course(
    course_upload_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> Response:
    """Withdraw a course. Approved courses can only be withdrawn by the registrar."""
    try:
        await service.withdraw(db, current_user, course_upload_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=error_detail(e))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
